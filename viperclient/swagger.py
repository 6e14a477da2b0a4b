"""Serving of Swagger UI files."""

from __future__ import annotations

from http import HTTPStatus
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import FileResponse, PlainTextResponse, Response

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def swagger_ui(swagger_dir: str | Path) -> Callable[[Request], Awaitable[Response]]:
    """An endpoint serving files of ``swagger_dir`` from the ``path`` path parameter."""
    root = Path(swagger_dir)

    async def endpoint(request: Request) -> Response:
        relative = str(request.path_params.get("path", "")).lstrip("/") or "index.html"
        if ".." in PurePosixPath(relative).parts:
            return PlainTextResponse("invalid URL path", status_code=HTTPStatus.BAD_REQUEST)

        if relative.endswith("index.html"):
            target, headers = root / "index.html", NO_CACHE_HEADERS
        else:
            target, headers = root / relative, None

        if not target.is_file():
            return PlainTextResponse("404 page not found", status_code=HTTPStatus.NOT_FOUND)
        return FileResponse(target, headers=headers)

    return endpoint