"""Pytest configuration and fixtures for DevCollab tests.

Test isolation strategy:
- Every test gets its own database: a fresh SQLite file, or the database in
  TEST_DATABASE_URL (PostgreSQL) with the schema created and dropped around it
- The app's session factory is rebound to that database, so request handlers,
  the auth bootstrap and realtime handlers all see the test data
- Tokens are HS256 JWTs signed with TEST_JWT_SECRET (see tests.helpers)
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from devcollab.app import create_app
from devcollab.config import clear_settings_cache
from devcollab.db.engine import create_db_engine
from devcollab.db.models import Base
from devcollab.db.session import create_session_factory, set_session_factory
from devcollab.storage import FakeStorageClient
from tests.helpers import TEST_JWT_SECRET


@pytest.fixture(autouse=True)
def settings_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Point settings at per-test resources and reset the settings cache."""
    database_url = os.environ.get("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'test.db'}"
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("DEVCOLLAB_ENV", "test")
    monkeypatch.setenv("LOG_JSON", "false")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "uploads"))
    monkeypatch.delenv("JWT_ISSUER", raising=False)
    monkeypatch.delenv("JWT_AUDIENCE", raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def engine(settings_env) -> Generator[Engine, None, None]:
    """Create the schema in the test database and bind the app to it."""
    engine = create_db_engine(os.environ["DATABASE_URL"])
    Base.metadata.create_all(engine)
    set_session_factory(create_session_factory(engine))
    yield engine
    set_session_factory(None)
    if engine.dialect.name != "sqlite":
        Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a database session for direct service calls and fixtures."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage() -> FakeStorageClient:
    return FakeStorageClient()


@pytest.fixture
def app(engine: Engine, storage: FakeStorageClient) -> FastAPI:
    """Full application: auth middleware, request-id middleware, fake storage."""
    return create_app(storage=storage, log_requests=False)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Test client for the full app.

    Used as a context manager so HTTP requests, background broadcasts and
    WebSocket sessions all run on one event loop.
    """
    with TestClient(app) as client:
        yield client
