"""
Size-limited JSON body parser.

Buffers the request body, enforces the configured size limit and decodes
JSON payloads once. The decoded value and the received byte count are
published in the request state so later layers do not read the body again.
"""

import json

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send


JSON_BODY_STATE_KEY = "json_body"
BODY_LENGTH_STATE_KEY = "body_length"


def is_json_media_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _error(status_code: int, message: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        {
            "message": message,
            "errors": [{"path": ".body", "message": message, "errorCode": error_code}],
        },
        status_code=status_code,
    )


class JsonBodyMiddleware:
    """ASGI middleware limiting body size and decoding JSON bodies."""

    def __init__(self, app: ASGIApp, limit: int) -> None:
        self.app = app
        self.limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        too_large = _error(
            413, f"request entity too large (limit {self.limit} bytes)", "entity.too.large"
        )

        content_length = headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.limit:
            await too_large(scope, receive, send)
            return

        chunks = []
        received = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            chunk = message.get("body", b"")
            received += len(chunk)
            if received > self.limit:
                await too_large(scope, receive, send)
                return
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        body = b"".join(chunks)
        state = scope.setdefault("state", {})
        state[BODY_LENGTH_STATE_KEY] = len(body)

        if body and is_json_media_type(headers.get("content-type", "")):
            try:
                parsed = json.loads(body)
            except (UnicodeDecodeError, ValueError) as e:
                await _error(400, f"malformed JSON body: {e}", "parse.failed")(
                    scope, receive, send
                )
                return
            state[JSON_BODY_STATE_KEY] = parsed

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            return await receive()

        await self.app(scope, replay, send)
