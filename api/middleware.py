"""
Helpers for composing the API middleware stack.
"""

from typing import Any

from fastapi import FastAPI
from starlette.middleware import Middleware


def use_middleware(app: FastAPI, middleware_class: type, **options: Any) -> None:
    """
    Append a middleware as the innermost layer so far.

    FastAPI.add_middleware() prepends, which makes the last installed layer
    the first to see a request. Appending keeps installation order equal to
    request processing order: the first installed layer runs first.
    """
    if app.middleware_stack is not None:
        raise RuntimeError("Cannot add middleware after the application has started")
    app.user_middleware.append(Middleware(middleware_class, **options))
