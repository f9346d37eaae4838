"""
Network listener handle.

Wraps one uvicorn server serving one ASGI application. The handle binds
the listening socket itself so that address errors surface as exceptions
to the caller instead of terminating the process, and tracks the
listener's state:

    UNBOUND -> BINDING -> BOUND | BIND_FAILED
    BOUND -> CLOSING -> CLOSED | CLOSE_FAILED
"""

import asyncio
import contextlib
import socket
from enum import Enum
from typing import Iterator, Optional

import uvicorn
from starlette.types import ASGIApp

from core.logging import get_logger


logger = get_logger(__name__)


class ListenerState(str, Enum):
    UNBOUND = "unbound"
    BINDING = "binding"
    BOUND = "bound"
    BIND_FAILED = "bind_failed"
    CLOSING = "closing"
    CLOSED = "closed"
    CLOSE_FAILED = "close_failed"


class ListenerBindError(RuntimeError):
    """The listener could not resolve or bind its address."""

    def __init__(self, name: str, host: str, port: int, cause: BaseException):
        self.name = name
        self.host = host
        self.port = port
        super().__init__(f"Failed to bind {name} listener to {host}:{port}: {cause}")


class _ListenerServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the process owner."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


class ListenerHandle:
    """
    One bound HTTP listener.

    Usage:
        listener = ListenerHandle("api", app, "127.0.0.1", 4000)
        await listener.bind()
        ...
        await listener.close()
    """

    # Seconds between checks while waiting for uvicorn to report readiness
    STARTUP_POLL_INTERVAL = 0.01

    def __init__(self, name: str, app: ASGIApp, host: str, port: int):
        self.name = name
        self.app = app
        self.host = host
        self.port = port
        self.state = ListenerState.UNBOUND
        self._server: Optional[_ListenerServer] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._socket: Optional[socket.socket] = None

    @property
    def is_bound(self) -> bool:
        return self.state == ListenerState.BOUND

    @property
    def serve_task(self) -> Optional[asyncio.Task]:
        return self._serve_task

    def __repr__(self) -> str:
        return f"ListenerHandle(name={self.name!r}, host={self.host!r}, port={self.port}, state={self.state.value})"

    async def bind(self) -> None:
        """
        Bind the socket and start serving.

        Returns once the server accepts connections.

        Raises:
            ListenerBindError: address resolution or bind failed
        """
        if self.state != ListenerState.UNBOUND:
            raise RuntimeError(f"{self.name} listener cannot bind from state {self.state.value}")

        self.state = ListenerState.BINDING
        logger.info("Binding listener", listener=self.name, host=self.host, port=self.port)

        try:
            self._socket = await self._bind_socket()
        except OSError as e:
            self.state = ListenerState.BIND_FAILED
            raise ListenerBindError(self.name, self.host, self.port, e) from e

        self.port = self._socket.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            lifespan="off",
            log_config=None,
            access_log=False,
        )
        self._server = _ListenerServer(config)
        self._serve_task = asyncio.create_task(
            self._server.serve(sockets=[self._socket]),
            name=f"listener-{self.name}",
        )

        while not self._server.started:
            if self._serve_task.done():
                self.state = ListenerState.BIND_FAILED
                self._socket.close()
                error = self._serve_task.exception() or RuntimeError("server exited during startup")
                raise ListenerBindError(self.name, self.host, self.port, error) from error
            await asyncio.sleep(self.STARTUP_POLL_INTERVAL)

        self.state = ListenerState.BOUND
        logger.info("Listener bound", listener=self.name, host=self.host, port=self.port)

    async def _bind_socket(self) -> socket.socket:
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(
            self.host,
            self.port,
            type=socket.SOCK_STREAM,
            flags=socket.AI_PASSIVE,
        )
        family, sock_type, proto, _, address = infos[0]

        sock = socket.socket(family, sock_type, proto)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(address)
        except OSError:
            sock.close()
            raise
        sock.set_inheritable(True)
        return sock

    async def close(self) -> bool:
        """
        Stop serving and wait for open connections to drain.

        Returns True if a bound listener was closed, False if there was
        nothing to close.
        """
        if self.state != ListenerState.BOUND:
            return False

        self.state = ListenerState.CLOSING
        logger.info("Closing listener", listener=self.name)

        self._server.should_exit = True
        try:
            await self._serve_task
        except Exception:
            self.state = ListenerState.CLOSE_FAILED
            raise
        finally:
            self._socket.close()

        self.state = ListenerState.CLOSED
        logger.info("Listener closed", listener=self.name)
        return True
