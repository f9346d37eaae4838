"""
FastAPI dependencies for dependency injection.

Provides the storage plugin owned by the server lifecycle to route
handlers. The lifecycle stores it on the application state before the
API listener binds.
"""

from fastapi import FastAPI, Request

from core.storage import KVStoragePlugin


def set_storage(app: FastAPI, storage: KVStoragePlugin) -> None:
    """Attach the storage plugin to the application."""
    app.state.storage = storage


async def get_storage(request: Request) -> KVStoragePlugin:
    """
    Dependency that provides the storage plugin.

    Usage:
        @router.get("/things/{key}")
        async def get_thing(
            key: str,
            storage: KVStoragePlugin = Depends(get_storage),
        ):
            ...
    """
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise RuntimeError("Storage plugin not initialized")
    return storage
