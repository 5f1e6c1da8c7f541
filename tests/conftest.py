"""
Pytest fixtures for the test suite.

Every test gets its own in-memory SQLite database. ``StaticPool`` keeps the
single connection alive for the whole test so the FastAPI ``TestClient``
(which runs handlers in another thread) sees the same data. Code under test
commits for real; isolation comes from the throwaway engine.
"""
from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from coreops import models  # noqa: F401  (register mappers)
from coreops.db.base import Base
from coreops.db.init_db import seed
from coreops.db.session import get_db
from coreops.main import create_app
from coreops.models.governance import Project
from coreops.models.security import Division, User
from coreops.settings import Settings

TEST_DB_URL = "sqlite://"
REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(tables):
    return sessionmaker(bind=tables, autocommit=False, autoflush=False, class_=Session)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(db_session):
    """Demo divisions, roles, users and projects (see coreops.db.init_db.seed)."""
    seed(db_session)
    return db_session


@pytest.fixture
def user_ids(seeded) -> dict[str, int]:
    return {u.username: u.id for u in seeded.scalars(select(User)).all()}


@pytest.fixture
def division_ids(seeded) -> dict[str, int]:
    return {d.code: d.id for d in seeded.scalars(select(Division)).all()}


@pytest.fixture
def project_ids(seeded) -> dict[str, int]:
    return {p.code: p.id for p in seeded.scalars(select(Project)).all()}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        security_config_path=str(REPO_ROOT / "config" / "security_config.yaml"),
        capability_secret="test-capability-secret",
        export_storage_root=str(tmp_path / "exports"),
        month_close_enabled=False,
    )


@pytest.fixture
def app(settings, session_factory, seeded):
    application = create_app(settings, seed=False)

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = _get_db
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_header(user_ids):
    """`auth_header("nora_north")` -> headers for the dummy bearer provider."""

    def _header(username: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {user_ids[username]}"}

    return _header
