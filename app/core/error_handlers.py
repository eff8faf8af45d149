"""Terminal exception handler that renders every error as the API error envelope."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import requests
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp
from starlette.types import Message
from starlette.types import Receive
from starlette.types import Scope
from starlette.types import Send

from app.core.config import Settings
from app.core.config import get_settings
from app.core.errors import NO_RESPONSE_STATUS
from app.core.errors import ApiError
from app.core.errors import ErrorKind
from app.core.errors import classify
from app.db.validation import RecordValidationError
from app.schemas.error import ErrorResponse

logger = logging.getLogger(__name__)

# A missing upstream response cannot be written as status 0.
NO_RESPONSE_HTTP_STATUS = status.HTTP_502_BAD_GATEWAY

_FALLBACK_BODY = {
    "success": False,
    "message": "Unknown error occurred",
    "errorType": ErrorKind.UNKNOWN_ERROR.value,
}

HANDLED_EXCEPTIONS: tuple[type[BaseException], ...] = (
    ApiError,
    RequestValidationError,
    ValidationError,
    RecordValidationError,
    requests.RequestException,
    StarletteHTTPException,
    Exception,
)


def build_error_payload(error: ApiError, *, development: bool) -> dict[str, Any]:
    """Build the wire body; debug fields only exist in development mode."""
    payload = ErrorResponse(
        message=error.message,
        error_type=error.kind.value,
        errors=list(error.errors) or None,
    )
    if development:
        payload.stack = error.diagnostic_snapshot or None
        if error.cause is not None:
            payload.original_error = str(error.cause) or type(error.cause).__name__
    return payload.model_dump(by_alias=True, exclude_none=True)


def response_status(error: ApiError) -> int:
    if error.status_code == NO_RESPONSE_STATUS:
        return NO_RESPONSE_HTTP_STATUS
    return error.status_code


def render_error(error: ApiError, *, development: bool) -> JSONResponse:
    """Return the JSON response for a classified error."""
    return JSONResponse(
        status_code=response_status(error),
        content=build_error_payload(error, development=development),
    )


def _settings_for(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    return settings if isinstance(settings, Settings) else get_settings()


def _log_error(request: Request, error: ApiError) -> None:
    status_code = response_status(error)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        cause = error.cause
        logger.error(
            "%s %s failed with %s: %s",
            request.method,
            request.url.path,
            error.kind.value,
            error.message,
            exc_info=(type(cause), cause, cause.__traceback__) if cause is not None else None,
        )
    else:
        logger.warning(
            "%s %s rejected with %s (%d): %s",
            request.method,
            request.url.path,
            error.kind.value,
            status_code,
            error.message,
        )


async def boundary_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Classify any propagated error and answer with the shared envelope."""

    try:
        api_error = classify(exc)
        _log_error(request, api_error)
        return render_error(api_error, development=_settings_for(request).is_development)
    except Exception:
        logger.exception("Failed to render error response")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=dict(_FALLBACK_BODY))


class ErrorBoundaryMiddleware:
    """Answer any exception escaping routes or inner middleware with the envelope.

    Must sit inside CORS and access logging so error responses keep their
    headers and are logged. Nothing is re-raised to the server.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception as exc:
            if response_started:
                logger.exception("%s %s failed after the response started", scope.get("method"), scope.get("path"))
                return
            response = await boundary_exception_handler(Request(scope, receive), exc)
            await response(scope, receive, send)


def register_error_handlers(app: FastAPI) -> None:
    """Attach the boundary handler for every error type that can reach it."""

    for exc_class in HANDLED_EXCEPTIONS:
        app.add_exception_handler(exc_class, boundary_exception_handler)
