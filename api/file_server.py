"""
Static file server for the cockpit single-page app.

Serves the configured document root; any GET that does not match a file
falls back to index.html so client-side routes survive a reload.
"""

from pathlib import Path
from typing import Union

from fastapi import FastAPI
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException
from starlette.responses import FileResponse, Response
from starlette.types import Scope

from core.logging import get_logger


logger = get_logger(__name__)


class SinglePageAppFiles(StaticFiles):
    """StaticFiles that serves index.html instead of a 404."""

    def __init__(self, directory: Union[str, Path], index_file: Union[str, Path]):
        super().__init__(directory=directory, html=True, check_dir=True)
        self.index_file = Path(index_file)

    async def get_response(self, path: str, scope: Scope) -> Response:
        try:
            response = await super().get_response(path, scope)
        except HTTPException as e:
            if e.status_code != 404:
                raise
            return FileResponse(self.index_file)
        if response.status_code == 404:
            return FileResponse(self.index_file)
        return response


def resolve_www_root(www_root: str) -> Path:
    """Resolve the document root against the working directory."""
    return (Path.cwd() / www_root).resolve()


def create_file_server_app(www_root: str) -> FastAPI:
    """
    Build the cockpit application.

    Raises:
        RuntimeError: the document root does not exist
    """
    resolved_www_root = resolve_www_root(www_root)
    resolved_index_html = resolved_www_root / "index.html"
    logger.info(
        "Cockpit document root",
        www_root=www_root,
        resolved_www_root=str(resolved_www_root),
        resolved_index_html=str(resolved_index_html),
    )

    app = FastAPI(
        title="BIF Cockpit",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(GZipMiddleware)
    app.mount(
        "/",
        SinglePageAppFiles(directory=resolved_www_root, index_file=resolved_index_html),
        name="cockpit",
    )
    return app
