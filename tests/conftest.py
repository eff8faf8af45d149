"""Shared pytest fixtures for the API test suites."""

from collections.abc import Callable
from collections.abc import Generator
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import Settings  # noqa: E402


@pytest.fixture
def static_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "public"
    directory.mkdir()
    (directory / "hello.txt").write_text("hello from static")
    return directory


@pytest.fixture
def make_settings(static_dir: Path) -> Callable[..., Settings]:
    """Build settings backed by an in-memory database."""

    def _make(environment: str = "development", **overrides) -> Settings:
        values = {
            "environment": environment,
            "database_url": "sqlite://",
            "session_secret_key": "test-secret",
            "static_dir": str(static_dir),
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def client(make_settings: Callable[..., Settings]) -> Generator[TestClient, None, None]:
    """Provide a development-mode API test client with tables created."""
    from app.main import create_app

    with TestClient(create_app(make_settings("development"))) as test_client:
        yield test_client


@pytest.fixture
def production_client(make_settings: Callable[..., Settings]) -> Generator[TestClient, None, None]:
    """Provide a production-mode API test client."""
    from app.main import create_app

    app = create_app(make_settings("production"))
    with TestClient(app, base_url="https://testserver", raise_server_exceptions=False) as test_client:
        yield test_client
