"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of clanquest.api.security which
# validates the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from clanquest.config import ClanQuestConfig  # noqa: E402
from clanquest.database.models import Base  # noqa: E402

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all ClanQuest tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in :func:`run_db`).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def app_config() -> ClanQuestConfig:
    return ClanQuestConfig(app_name="ClanQuest Test", frontend_url="https://clanquest.test")


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
@pytest.fixture
def make_user(db_engine):
    """Register a user and return it: ``make_user("alice")``."""
    from clanquest.services import user_service

    def _make(display_name: str, **kwargs):
        return user_service.register_user(db_engine, display_name=display_name, **kwargs).user

    return _make


@pytest.fixture
def make_campaign(db_engine, now):
    """Create a campaign running ``[now - 1 day, now + 1 day]`` by default."""
    from clanquest.services import campaign_service

    def _make(title: str = "Spring Sprint", **kwargs):
        kwargs.setdefault("start_date", now - timedelta(days=1))
        kwargs.setdefault("end_date", now + timedelta(days=1))
        return campaign_service.create_campaign(db_engine, title=title, **kwargs)

    return _make


@pytest.fixture
def make_clan(db_engine):
    from clanquest.services import clan_service

    def _make(title: str = "Night Owls", **kwargs):
        return clan_service.create_clan(db_engine, title=title, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
def make_token(sub: int = 99999, username: str = "FixtureAdmin", is_admin: bool = True) -> str:
    """Create a JWT.  Usable as both a fixture helper and a factory function."""
    from clanquest.api.security import issue_token

    return issue_token(user_id=sub, username=username, is_admin=is_admin, ttl_days=1)


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_token() -> str:
    return make_token()


@pytest.fixture
def client(db_engine, app_config):
    """FastAPI TestClient bound to the in-memory database."""
    from fastapi.testclient import TestClient

    from clanquest.api.deps import get_config, get_engine
    from clanquest.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: app_config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
