"""FastAPI application entrypoint.

Wires CORS, cookie sessions, body size limits, request logging, static files,
the auth routes and the error boundary. No business logic belongs here.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from app.api.auth import router as auth_router
from app.core.config import Settings
from app.core.config import get_settings
from app.core.error_handlers import ErrorBoundaryMiddleware
from app.core.error_handlers import register_error_handlers
from app.core.logging import configure_logging
from app.core.middleware import BodySizeLimitMiddleware
from app.core.middleware import RequestLoggingMiddleware
from app.db.base import build_engine
from app.db.base import build_session_factory
from app.db.models import Base

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "PUT", "DELETE"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create tables on startup and release pooled connections on shutdown."""
    settings: Settings = app.state.settings
    logger.info("Starting API server with settings=%s", settings.safe_for_logging())
    Base.metadata.create_all(app.state.engine)
    yield
    app.state.engine.dispose()
    logger.info("API server stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the application."""
    settings = settings or get_settings()
    configure_logging(level=settings.log_level)

    app = FastAPI(
        title="API Server",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url)
    app.state.session_factory = build_session_factory(app.state.engine)

    # Added last runs first: logging wraps everything, CORS answers preflight early.
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        max_age=settings.session_max_age_seconds,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)
    # Inside CORS and logging so error responses keep CORS headers and get logged.
    app.add_middleware(ErrorBoundaryMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_origin],
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(auth_router)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Health check endpoint for service readiness."""
        return {"status": "ok"}

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "API server is running"

    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=static_dir), name="static")

    # Registered last so errors from every route, dependency and mount reach it.
    register_error_handlers(app)
    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port, log_config=None)


if __name__ == "__main__":
    run()
