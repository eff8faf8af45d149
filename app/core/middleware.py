"""HTTP middleware for request logging and request body size limits."""

from __future__ import annotations

import logging
import time

from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.base import RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp
from starlette.types import Message
from starlette.types import Receive
from starlette.types import Scope
from starlette.types import Send

from app.core.errors import HTTP_413_CONTENT_TOO_LARGE

logger = logging.getLogger("app.access")

TOO_LARGE_MESSAGE = "Request entity too large"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request: method, path, status and duration."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s %d %.1f ms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_body_bytes``.

    The declared ``Content-Length`` is checked up front; bodies without one
    (chunked uploads) are counted as they are received. Either way a 413
    ``HTTPException`` is raised and rendered by the error boundary.
    """

    def __init__(self, app: ASGIApp, *, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = dict(scope.get("headers") or []).get(b"content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_body_bytes:
            self._reject(scope, int(declared))

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    self._reject(scope, received)
            return message

        await self.app(scope, limited_receive, send)

    def _reject(self, scope: Scope, size: int) -> None:
        logger.warning("%s %s rejected: body of at least %d bytes", scope.get("method"), scope.get("path"), size)
        raise StarletteHTTPException(status_code=HTTP_413_CONTENT_TOO_LARGE, detail=TOO_LARGE_MESSAGE)
