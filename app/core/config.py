"""Application configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os

DEVELOPMENT = "development"
PRODUCTION = "production"

DEFAULT_PORT = 7000
DEFAULT_CLIENT_ORIGIN = "http://localhost:4000"
DEFAULT_SESSION_SECRET_KEY = "defaultSecretKey"
DEFAULT_SESSION_MAX_AGE_SECONDS = 24 * 60 * 60
DEFAULT_DATABASE_URL = "sqlite:///./app.db"
DEFAULT_MAX_BODY_BYTES = 16 * 1024
DEFAULT_STATIC_DIR = "public"


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def redact_secret(secret: str) -> str:
    """Return a non-recoverable placeholder for sensitive values."""
    if not secret:
        return "<empty>"
    return "<redacted>"


@dataclass(frozen=True)
class Settings:
    """Process-wide runtime settings, read once at startup."""

    environment: str = PRODUCTION
    port: int = DEFAULT_PORT
    client_origin: str = DEFAULT_CLIENT_ORIGIN
    session_secret_key: str = DEFAULT_SESSION_SECRET_KEY
    session_max_age_seconds: int = DEFAULT_SESSION_MAX_AGE_SECONDS
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    static_dir: str = DEFAULT_STATIC_DIR

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    def safe_for_logging(self) -> dict[str, str | int]:
        """Return settings safe for logs."""
        return {
            "environment": self.environment,
            "port": self.port,
            "client_origin": self.client_origin,
            "session_secret_key": redact_secret(self.session_secret_key),
            "session_max_age_seconds": self.session_max_age_seconds,
            "database_url": self.database_url,
            "log_level": self.log_level,
            "max_body_bytes": self.max_body_bytes,
            "static_dir": self.static_dir,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment."""
    return Settings(
        environment=os.getenv("APP_ENV", PRODUCTION).strip().lower(),
        port=_get_int_env("PORT", DEFAULT_PORT),
        client_origin=os.getenv("CLIENT_ORIGIN", DEFAULT_CLIENT_ORIGIN),
        session_secret_key=os.getenv("SESSION_SECRET_KEY", DEFAULT_SESSION_SECRET_KEY),
        session_max_age_seconds=_get_int_env("SESSION_MAX_AGE_SECONDS", DEFAULT_SESSION_MAX_AGE_SECONDS),
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        max_body_bytes=_get_int_env("MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES),
        static_dir=os.getenv("STATIC_DIR", DEFAULT_STATIC_DIR),
    )
