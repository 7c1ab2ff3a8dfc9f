"""
RestGate Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every API test gets a fresh SQLite file (aiosqlite) with all tables
       created, and an app built by `create_app()` around it.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── test_settings:     Settings pointing at a temporary SQLite database
    ├── engine:            AsyncEngine with every table created
    ├── session_factory:   async_sessionmaker bound to that engine
    ├── session_provider:  Accepts "Bearer test-token", rejects everything else
    ├── app:               FastAPI app wired to the above
    ├── client:            Authenticated HTTPX AsyncClient
    └── anon_client:       HTTPX AsyncClient without credentials
"""

import os
from typing import Any, Dict, List, Mapping, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Must be set before restgate.main is imported: its module-level app reads them
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from restgate.config import Settings  # noqa: E402
from restgate.database import (  # noqa: E402
    create_all,
    create_engine_from_settings,
    create_session_factory,
    dispose_engine,
)
from restgate.services.auth_gate import AuthSession  # noqa: E402

TEST_TOKEN = "test-token"


# ══════════════════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════════════════

class StaticSessionProvider:
    """Session provider that knows exactly one bearer token."""

    def __init__(self, token: str = TEST_TOKEN):
        self.token = token
        self.calls = 0

    async def get_session(self, headers: Mapping[str, str]) -> Optional[AuthSession]:
        self.calls += 1
        if headers.get("authorization") != f"Bearer {self.token}":
            return None
        return AuthSession(
            user={"id": "user-1", "name": "Test User", "email": "test@example.com"},
            session={"id": "session-1", "user_id": "user-1"},
        )


class InMemoryModelStore:
    """
    ModelStore over a list of dicts.

    Supports equality filters and single-field ordering, which is all the
    dispatcher tests need.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows: List[Dict[str, Any]] = [dict(row) for row in rows or []]
        self._next_id = len(self.rows) + 1

    def _matching(self, where):
        return [
            row for row in self.rows
            if all(row.get(k) == v for k, v in (where or {}).items())
        ]

    async def count(self, where=None) -> int:
        return len(self._matching(where))

    async def find_many(self, skip=0, take=None, order_by=None, where=None):
        rows = self._matching(where)
        for name, direction in (order_by or {}).items():
            rows = sorted(rows, key=lambda row: row[name], reverse=direction == "desc")
        end = None if take is None else skip + take
        return [dict(row) for row in rows[skip:end]]

    async def find_unique(self, id: str):
        for row in self.rows:
            if row["id"] == id:
                return dict(row)
        return None

    async def create(self, data):
        row = {"id": str(self._next_id), **data}
        self._next_id += 1
        self.rows.append(row)
        return dict(row)

    async def update(self, id: str, data):
        for row in self.rows:
            if row["id"] == id:
                row.update(data)
                return dict(row)
        return None

    async def delete(self, id: str) -> bool:
        before = len(self.rows)
        self.rows = [row for row in self.rows if row["id"] != id]
        return len(self.rows) < before


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'restgate_test.db'}",
        log_level="WARNING",
        _env_file=None,
    )


@pytest_asyncio.fixture
async def engine(test_settings):
    engine = create_engine_from_settings(test_settings)
    await create_all(engine)
    yield engine
    await dispose_engine(engine)


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session_provider():
    return StaticSessionProvider()


# ══════════════════════════════════════════════════════════════════════════
# HTTP Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(test_settings, session_factory, session_provider):
    from restgate.main import create_app

    return create_app(
        test_settings,
        session_factory=session_factory,
        session_provider=session_provider,
    )


@pytest_asyncio.fixture
async def client(app):
    """
    Authenticated client.

    raise_app_exceptions=False lets the catch-all 500 handler's response
    reach the test instead of re-raising the original exception.
    """
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {TEST_TOKEN}"},
    ) as client:
        yield client


@pytest_asyncio.fixture
async def anon_client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def post_payload():
    return {"title": "Hello", "content": "First post", "published": True}


@pytest.fixture
def memory_store():
    """Factory for in-memory ModelStore fakes: memory_store(rows)."""
    return InMemoryModelStore
