"""
OpenAPI request validation.

ValidationInstaller compiles the declared API document into per-operation
jsonschema validators and installs OpenApiValidationMiddleware on the API
application. Requests that do not match a declared operation, or whose
parameters/body violate its schemas, are rejected before any route
handler runs. Responses are not validated.

The document is registered once as a `referencing` resource; every
validator points into it by JSON pointer, so `$ref`s (and keywords written
next to them) are evaluated by jsonschema itself.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote, unquote

from fastapi import FastAPI
from jsonschema import Draft202012Validator
from referencing import Registry
from referencing._core import Resolver
from referencing.jsonschema import DRAFT202012
from starlette.datastructures import Headers, QueryParams
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from api.body import BODY_LENGTH_STATE_KEY, JSON_BODY_STATE_KEY, is_json_media_type
from api.middleware import use_middleware
from core.logging import get_logger


logger = get_logger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

# Base URI the API document is registered under
API_DOCUMENT_URI = "https://bif.local/openapi.json"


def _pointer(*tokens: Any) -> str:
    return "".join("/" + str(t).replace("~", "~0").replace("/", "~1") for t in tokens)


def _document_registry(api_spec: dict[str, Any]) -> Registry:
    return Registry().with_resource(API_DOCUMENT_URI, DRAFT202012.create_resource(api_spec))


def _validator(schema: dict[str, Any], registry: Registry, pointer: str) -> Draft202012Validator:
    """Validator for the schema found at `pointer` inside the API document."""
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(
        {"$ref": f"{API_DOCUMENT_URI}#{quote(pointer)}"},
        registry=registry,
        format_checker=Draft202012Validator.FORMAT_CHECKER,
    )


def _follow(resolver: Resolver, node: Any, pointer: str) -> tuple[Any, str]:
    """Follow local $refs on an OpenAPI object, returning its target and pointer."""
    seen = set()
    while isinstance(node, dict) and isinstance(node.get("$ref"), str):
        ref = node["$ref"]
        if not ref.startswith("#"):
            raise ValueError(f"Only local $refs are supported, got {ref!r}")
        if ref in seen:
            raise ValueError(f"Circular $ref: {ref}")
        seen.add(ref)
        node = resolver.lookup(ref).contents
        pointer = unquote(ref[1:])
    return node, pointer


def _coerce(value: str, schema: dict[str, Any]) -> Any:
    """Convert a raw path/query string to the primitive its schema declares."""
    declared = schema.get("type")
    types = declared if isinstance(declared, list) else [declared]
    try:
        if "integer" in types:
            return int(value)
        if "number" in types:
            return float(value)
    except ValueError:
        return value
    if "boolean" in types and value in ("true", "false"):
        return value == "true"
    return value


@dataclass
class ParameterRule:
    name: str
    location: str
    required: bool
    validator: Optional[Draft202012Validator]
    schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class OperationRule:
    method: str
    parameters: list[ParameterRule]
    body_required: bool = False
    body_validator: Optional[Draft202012Validator] = None
    accepts_json: bool = False


class PathTemplate:
    """Matches concrete paths against an OpenAPI path template."""

    def __init__(self, template: str):
        self.template = template
        self.segments = template.strip("/").split("/")
        self.param_count = sum(1 for s in self.segments if self._is_param(s))

    @staticmethod
    def _is_param(segment: str) -> bool:
        return segment.startswith("{") and segment.endswith("}")

    def match(self, path: str) -> Optional[dict[str, str]]:
        parts = path.strip("/").split("/")
        if len(parts) != len(self.segments):
            return None
        params = {}
        for segment, part in zip(self.segments, parts):
            if self._is_param(segment):
                if not part:
                    return None
                params[segment[1:-1]] = part
            elif segment != part:
                return None
        return params


@dataclass
class CompiledPath:
    template: PathTemplate
    operations: dict[str, OperationRule]


class ValidationError(Exception):
    """A request violated the declared API contract."""

    def __init__(self, status_code: int, message: str, errors: list[dict[str, str]]):
        self.status_code = status_code
        self.message = message
        self.errors = errors
        super().__init__(message)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            {"message": self.message, "errors": self.errors},
            status_code=self.status_code,
        )


def _schema_errors(validator: Draft202012Validator, instance: Any, prefix: str) -> list[dict[str, str]]:
    errors = []
    for error in sorted(validator.iter_errors(instance), key=lambda e: list(e.absolute_path)):
        location = "".join(f".{p}" for p in error.absolute_path)
        errors.append(
            {
                "path": f"{prefix}{location}",
                "message": error.message,
                "errorCode": f"{error.validator}.openapi.validation",
            }
        )
    return errors


def compile_api_spec(api_spec: dict[str, Any]) -> list[CompiledPath]:
    """
    Compile an OpenAPI 3 document into matchable path rules.

    Templates with fewer parameters are tried first so literal paths win
    over templated ones.
    """
    registry = _document_registry(api_spec)
    resolver = registry.resolver(API_DOCUMENT_URI)

    def parameters_of(owner: dict[str, Any], pointer: str) -> dict[tuple[str, str], tuple[dict, str]]:
        found = {}
        for index, param in enumerate(owner.get("parameters", [])):
            param, param_pointer = _follow(resolver, param, f"{pointer}{_pointer('parameters', index)}")
            found[(param["name"], param["in"])] = (param, param_pointer)
        return found

    compiled = []
    for template, path_item in (api_spec.get("paths") or {}).items():
        path_item, item_pointer = _follow(resolver, path_item, _pointer("paths", template))
        shared_params = parameters_of(path_item, item_pointer)

        operations = {}
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if operation is None:
                continue
            operation_pointer = f"{item_pointer}{_pointer(method)}"

            # Operation-level parameters override path-level ones
            merged = dict(shared_params)
            merged.update(parameters_of(operation, operation_pointer))

            parameters = []
            for param, param_pointer in merged.values():
                if param["in"] not in ("path", "query"):
                    continue
                schema = param.get("schema") or {}
                schema_pointer = f"{param_pointer}{_pointer('schema')}"
                if schema and "type" not in schema:
                    type_schema, _ = _follow(resolver, schema, schema_pointer)
                else:
                    type_schema = schema
                parameters.append(
                    ParameterRule(
                        name=param["name"],
                        location=param["in"],
                        required=param.get("required", param["in"] == "path"),
                        validator=_validator(schema, registry, schema_pointer) if schema else None,
                        schema=type_schema,
                    )
                )

            rule = OperationRule(method=method.upper(), parameters=parameters)
            request_body = operation.get("requestBody")
            if request_body:
                request_body, body_pointer = _follow(
                    resolver, request_body, f"{operation_pointer}{_pointer('requestBody')}"
                )
                rule.body_required = request_body.get("required", False)
                for media_type, media in (request_body.get("content") or {}).items():
                    if is_json_media_type(media_type):
                        rule.accepts_json = True
                        if media.get("schema"):
                            rule.body_validator = _validator(
                                media["schema"],
                                registry,
                                f"{body_pointer}{_pointer('content', media_type, 'schema')}",
                            )
                        break
            operations[rule.method] = rule

        compiled.append(CompiledPath(PathTemplate(template), operations))

    compiled.sort(key=lambda c: c.template.param_count)
    return compiled


class OpenApiValidationMiddleware:
    """ASGI middleware rejecting requests that violate the compiled API rules."""

    def __init__(self, app: ASGIApp, paths: list[CompiledPath]) -> None:
        self.app = app
        self.paths = paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            self.validate(scope)
        except ValidationError as e:
            logger.info(
                "Request rejected by API validation",
                path=scope.get("path"),
                method=scope.get("method"),
                status_code=e.status_code,
                reason=e.message,
            )
            await e.to_response()(scope, receive, send)
            return

        await self.app(scope, receive, send)

    def validate(self, scope: Scope) -> None:
        path = scope["path"]
        method = scope["method"].upper()

        for compiled in self.paths:
            path_params = compiled.template.match(path)
            if path_params is not None:
                break
        else:
            raise ValidationError(
                404, "not found", [{"path": path, "message": "not found", "errorCode": "not_found"}]
            )

        rule = compiled.operations.get(method)
        if rule is None:
            message = f"{method} method not allowed"
            raise ValidationError(
                405, message, [{"path": path, "message": message, "errorCode": "method_not_allowed"}]
            )

        errors = self._parameter_errors(rule, path_params, QueryParams(scope.get("query_string", b"")))
        errors.extend(self._body_errors(rule, scope))
        if errors:
            status_code = max(int(e.pop("status", 400)) for e in errors)
            raise ValidationError(status_code, errors[0]["message"], errors)

    def _parameter_errors(
        self,
        rule: OperationRule,
        path_params: dict[str, str],
        query: QueryParams,
    ) -> list[dict[str, Any]]:
        errors = []
        for param in rule.parameters:
            source = path_params if param.location == "path" else query
            prefix = f".{param.location}.{param.name}"
            if param.name not in source:
                if param.required:
                    errors.append(
                        {
                            "path": prefix,
                            "message": f"must have required property '{param.name}'",
                            "errorCode": "required.openapi.validation",
                        }
                    )
                continue
            if param.validator is not None:
                value = _coerce(source[param.name], param.schema)
                errors.extend(_schema_errors(param.validator, value, prefix))
        return errors

    def _body_errors(self, rule: OperationRule, scope: Scope) -> list[dict[str, Any]]:
        headers = Headers(scope=scope)
        state = scope.get("state") or {}
        if BODY_LENGTH_STATE_KEY in state:
            has_body = state[BODY_LENGTH_STATE_KEY] > 0
        else:
            content_length = headers.get("content-length", "")
            has_body = JSON_BODY_STATE_KEY in state or (content_length.isdigit() and int(content_length) > 0)

        if not has_body:
            if rule.body_required:
                return [
                    {
                        "path": ".body",
                        "message": "request.body is required",
                        "errorCode": "required.openapi.validation",
                    }
                ]
            return []

        if not rule.accepts_json:
            return []

        content_type = headers.get("content-type", "")
        if not is_json_media_type(content_type):
            return [
                {
                    "path": ".body",
                    "message": f"unsupported media type {content_type or 'none'}",
                    "errorCode": "media_type.openapi.validation",
                    "status": 415,
                }
            ]

        if rule.body_validator is None:
            return []
        return _schema_errors(rule.body_validator, state.get(JSON_BODY_STATE_KEY), ".body")


class ValidationInstaller:
    """
    Installs request validation against an OpenAPI document.

    Must run before any route is registered on the application.

    Usage:
        installer = ValidationInstaller(BIF_OPEN_API_JSON)
        await installer.install(app)
    """

    def __init__(
        self,
        api_spec: dict[str, Any],
        validate_requests: bool = True,
        validate_responses: bool = False,
    ):
        if validate_responses:
            raise NotImplementedError("Response validation is not supported")
        self.api_spec = api_spec
        self.validate_requests = validate_requests
        self.validate_responses = validate_responses

    async def install(self, app: FastAPI) -> None:
        if app.router.routes:
            raise RuntimeError(
                "Request validation must be installed before any route is registered"
            )
        if not self.validate_requests:
            logger.warning("Request validation disabled")
            return

        paths = compile_api_spec(self.api_spec)
        use_middleware(app, OpenApiValidationMiddleware, paths=paths)

        logger.info(
            "Request validation installed",
            paths=len(paths),
            operations=sum(len(p.operations) for p in paths),
        )
