"""
Cross-origin policy for the API listener.

CorsPolicy is a pure allow-list check. CorsGateMiddleware applies it to
every inbound HTTP request and rejects disallowed origins before any other
layer (body parsing included) does work; FastAPI's CORSMiddleware, installed
right behind it, writes the CORS response headers and answers preflights.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from api.middleware import use_middleware
from core.logging import get_logger


logger = get_logger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class CorsDecision:
    """Outcome of evaluating one request origin."""

    allowed: bool
    origin: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class CorsPolicy:
    """Exact-match origin allow-list; "*" allows every origin."""

    allowed_origins: frozenset[str]

    @classmethod
    def from_csv(cls, csv: str) -> "CorsPolicy":
        origins = (part.strip() for part in csv.split(","))
        return cls(frozenset(o for o in origins if o))

    @property
    def allows_all(self) -> bool:
        return WILDCARD in self.allowed_origins

    def evaluate(self, origin: Optional[str]) -> CorsDecision:
        if self.allows_all or (origin and origin in self.allowed_origins):
            return CorsDecision(allowed=True, origin=origin)
        shown = "<none>" if origin is None else origin
        return CorsDecision(
            allowed=False,
            origin=origin,
            error=f'CORS not allowed for Origin "{shown}".',
        )


class CorsGateMiddleware:
    """
    ASGI middleware enforcing a CorsPolicy.

    Denied requests get a 403 naming the origin and never reach the
    wrapped app.
    """

    def __init__(self, app: ASGIApp, policy: CorsPolicy) -> None:
        self.app = app
        self.policy = policy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        decision = self.policy.evaluate(origin)

        if not decision.allowed:
            logger.warning(
                "CORS request rejected",
                origin=origin,
                path=scope.get("path"),
                method=scope.get("method"),
            )
            response = JSONResponse({"message": decision.error}, status_code=403)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


def install_cors(app: FastAPI, policy: CorsPolicy) -> None:
    """Install the origin gate followed by the CORS header middleware."""
    use_middleware(app, CorsGateMiddleware, policy=policy)
    use_middleware(
        app,
        CORSMiddleware,
        allow_origins=[WILDCARD] if policy.allows_all else sorted(policy.allowed_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
