"""Cross-origin resource sharing headers."""

from __future__ import annotations

from http import HTTPStatus

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

DEFAULT_ALLOW_ORIGIN = "http://localhost:5173"
ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, X-Cosmos-Address, X-Cosmos-Signature"


class CORSMiddleware(BaseHTTPMiddleware):
    """Adds CORS headers to every response and answers preflight requests."""

    def __init__(self, app: ASGIApp, allow_origin: str = DEFAULT_ALLOW_ORIGIN) -> None:
        super().__init__(app)
        self.headers = {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
            "Access-Control-Allow-Credentials": "true",
        }

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=HTTPStatus.NO_CONTENT, headers=self.headers)
        response = await call_next(request)
        response.headers.update(self.headers)
        return response