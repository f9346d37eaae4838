"""
Server lifecycle orchestrator.

Owns the two listeners of the process (cockpit file server and API server)
and the storage plugin shared by the API routes. Starts them in a fixed
order, and shuts everything down concurrently, collecting failures
instead of stopping at the first one.

Design principles:
- Ordered startup: the file server binds before the API app is built
- Contained failures: start() and shutdown() report, they do not raise
- Single owner: only the lifecycle closes its listeners and plugin
"""

import asyncio
import signal
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from api.body import JsonBodyMiddleware
from api.cors import CorsPolicy, install_cors
from api.dependencies import set_storage
from api.file_server import create_file_server_app
from api.middleware import use_middleware
from api.openapi_spec import BIF_OPEN_API_JSON
from api.routes import consortium_router, health_router
from api.validation import ValidationInstaller
from core.config import ServerConfig
from core.logging import get_logger
from core.storage import KVStoragePlugin, PluginLoadError, PluginLoader, PluginRegistry
from manager.listener import ListenerBindError, ListenerHandle


COCKPIT = "cockpit"
API = "api"


@dataclass
class StartupResult:
    """Outcome of start(); error is the failure that aborted startup."""

    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ShutdownResult:
    """
    Aggregate of every close attempted by shutdown().

    closed lists the resources that were open and closed cleanly;
    errors maps resource names to the exception their close raised.
    """

    closed: list[str] = field(default_factory=list)
    errors: dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def error(self) -> Optional[BaseException]:
        """The first failure encountered, if any."""
        return next(iter(self.errors.values()), None)


class ServerLifecycle:
    """
    Starts and stops the cockpit and API listeners.

    Usage:
        lifecycle = ServerLifecycle(settings.to_server_config())
        result = await lifecycle.start()
        ...
        await lifecycle.shutdown()
    """

    def __init__(
        self,
        config: ServerConfig,
        logger: Any = None,
        registry: Optional[PluginRegistry] = None,
        api_spec: Optional[dict[str, Any]] = None,
    ):
        """
        Args:
            config: Immutable server configuration
            logger: Structured logger, defaults to one labelled "api-server"
            registry: Storage plugin registry, defaults to the process-wide one
            api_spec: OpenAPI document requests are validated against
        """
        if not config:
            raise ValueError("ServerLifecycle config was falsy")
        if not isinstance(config, ServerConfig):
            raise ValueError(
                f"ServerLifecycle config must be a ServerConfig, got {type(config).__name__}"
            )

        self.config = config
        self.log = logger or get_logger(__name__, label="api-server")
        self.api_spec = api_spec or BIF_OPEN_API_JSON
        self.plugin_loader = PluginLoader(
            config.storage_plugin_package,
            config.storage_plugin_options_json,
            registry=registry,
        )

        self.cockpit_listener: Optional[ListenerHandle] = None
        self.api_listener: Optional[ListenerHandle] = None
        self.storage: Optional[KVStoragePlugin] = None

    @property
    def listeners(self) -> list[ListenerHandle]:
        return [listener for listener in (self.cockpit_listener, self.api_listener) if listener is not None]

    async def start(self) -> StartupResult:
        """
        Start the cockpit file server, then the API server.

        A failure at any step is logged and followed by a best-effort
        shutdown; it is reported through the returned StartupResult, never
        raised.
        """
        listener = COCKPIT
        try:
            await self.start_cockpit_file_server()
            listener = API
            await self.start_api_server()
        except Exception as e:
            context = {"listener": listener, "error": str(e)}
            if isinstance(e, ListenerBindError):
                context.update(host=e.host, port=e.port)
            elif isinstance(e, PluginLoadError):
                context.update(plugin=e.identifier, step=e.step)
            self.log.error("Failed to start ApiServer", **context, exc_info=True)
            self.log.error("Attempting shutdown...")
            result = await self.shutdown()
            if not result.ok:
                self.log.error(
                    "Shutdown after failed start was incomplete",
                    errors={name: str(err) for name, err in result.errors.items()},
                )
            return StartupResult(error=e)

        return StartupResult()

    async def shutdown(self) -> ShutdownResult:
        """
        Close every bound listener concurrently, then the storage plugin.

        Listeners that never bound are skipped. Never raises: close
        failures are collected in the returned ShutdownResult.
        """
        result = ShutdownResult()

        bound = [listener for listener in self.listeners if listener.is_bound]
        outcomes = await asyncio.gather(*(listener.close() for listener in bound), return_exceptions=True)
        for listener, outcome in zip(bound, outcomes):
            if isinstance(outcome, BaseException):
                self.log.error(
                    "Listener failed to close",
                    listener=listener.name,
                    error=str(outcome),
                )
                result.errors[listener.name] = outcome
            elif outcome:
                result.closed.append(listener.name)

        if self.storage is not None:
            storage, self.storage = self.storage, None
            try:
                await storage.close()
                result.closed.append("storage")
            except Exception as e:
                self.log.error("Storage plugin failed to close", error=str(e))
                result.errors["storage"] = e

        if result.closed or result.errors:
            self.log.info("Shutdown complete", closed=result.closed, failed=list(result.errors))
        return result

    async def start_cockpit_file_server(self) -> None:
        app = create_file_server_app(self.config.cockpit_www_root)

        self.cockpit_listener = ListenerHandle(
            COCKPIT,
            app,
            self.config.cockpit_host,
            self.config.cockpit_port,
        )
        await self.cockpit_listener.bind()
        self.log.info("BIF Cockpit UI reachable", port=self.cockpit_listener.port)

    async def start_api_server(self) -> None:
        app = await self.create_api_app()

        self.log.info("Binding API", port=self.config.api_port)
        self.api_listener = ListenerHandle(
            API,
            app,
            self.config.api_host,
            self.config.api_port,
        )
        await self.api_listener.bind()
        self.log.info(
            "Successfully bound API",
            host=self.api_listener.host,
            port=self.api_listener.port,
        )

    async def create_api_app(self) -> FastAPI:
        """
        Build the API application.

        Layers are installed in request-processing order: compression,
        CORS, body parsing, validation, then routes. The storage plugin is
        loaded after validation is in place and before business routes
        are registered.
        """
        app = FastAPI(
            title=self.api_spec["info"]["title"],
            version=self.api_spec["info"]["version"],
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )

        use_middleware(app, GZipMiddleware)
        install_cors(app, self.create_cors_policy())
        use_middleware(app, JsonBodyMiddleware, limit=self.config.api_body_limit_bytes)
        await self.create_validation_installer().install(app)

        app.include_router(health_router)

        self.storage = await self.plugin_loader.load()
        set_storage(app, self.storage)
        app.include_router(consortium_router)

        @app.exception_handler(Exception)
        async def global_exception_handler(request: Request, exc: Exception):
            self.log.error(
                "Unhandled exception",
                path=request.url.path,
                method=request.method,
                error=str(exc),
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"},
            )

        return app

    def create_cors_policy(self) -> CorsPolicy:
        return CorsPolicy.from_csv(self.config.api_cors_domain_csv)

    def create_validation_installer(self) -> ValidationInstaller:
        return ValidationInstaller(
            self.api_spec,
            validate_requests=True,
            validate_responses=False,
        )

    async def run(self) -> StartupResult:
        """
        Start, serve until SIGINT/SIGTERM or until a listener stops, then
        shut down.

        A failed start returns immediately; the failure has already been
        logged and cleaned up by start().
        """
        result = await self.start()
        if not result.ok:
            return result

        loop = asyncio.get_running_loop()
        stop = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        stop_waiter = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait(
                [stop_waiter, *(listener.serve_task for listener in self.listeners)],
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stop_waiter.cancel()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

        self.log.info("Shutting down ApiServer...")
        await self.shutdown()
        return result
