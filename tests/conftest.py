"""
tests/conftest.py -- Shared test fixtures for KeyControl.

This module provides:
  - make_database(): a gateway over a fresh SQLite file with the schema applied
  - db: function-scoped gateway for unit tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus tokens for an administrator and an employee

Design: SQLite *files* (not :memory:) under pytest's tmp dirs. TestClient
runs sync route handlers in a thread pool and the gateway keeps a real
connection pool, so every connection must see the same database.

Environment must be set before any core/auth/api import:
  DEBUG=true lets get_settings() auto-generate SECRET_KEY.
  The rate limits are small real values; every test starts with empty
  counters (reset_rate_limits), so only tests that aim for a 429 get one.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

# CRITICAL: Set before any core/auth/api import (settings are cached on first use).
os.environ.setdefault("DEBUG", "true")
API_WINDOW_MAX = 30
LOGIN_MAX = 5
os.environ["RATE_LIMIT_MAX_REQUESTS"] = str(API_WINDOW_MAX)
os.environ["RATE_LIMIT_WINDOW_SECONDS"] = "900"
os.environ["LOGIN_RATE_LIMIT"] = f"{LOGIN_MAX}/minute"

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, attach_stores
from auth.models import AccessLevel, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from custody.store import CustodyStore
from db.gateway import Database
from db.schema import create_schema

ADMIN_PASSWORD = "adminpass123"
EMPLOYEE_PASSWORD = "funcpass123"


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    """Start every test with empty rate-limit counters (shared in-memory store)."""
    limiter.reset()


# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------


def make_database(path: Path, pool_size: int = 5, pool_timeout: float = 5.0) -> Database:
    """Return a gateway over a new SQLite file with every table created."""
    db = Database(f"sqlite:///{path}", pool_size=pool_size, pool_timeout=pool_timeout)
    create_schema(db)
    return db


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    database = make_database(tmp_path / "keycontrol.db")
    yield database
    database.shutdown()


@pytest.fixture
def operator_id(db: Database) -> int:
    """An employee account to record as the operator of checkouts."""
    return UserStore(db).create_user(User(username="operador", password_hash=hash_password("operador123")))


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(db: Database):
    """Return an async context manager that replaces the real lifespan.

    Wires the test gateway and its stores into app.state so TestClient routes
    hit real handlers against the isolated database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_stores(app, db)
        yield

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    db: Database
    admin_id: int
    admin_token: str
    employee_id: int
    employee_token: str
    room_id: int

    @property
    def admin_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.admin_token}"}

    @property
    def employee_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.employee_token}"}


@pytest.fixture(scope="module")
def api_client(tmp_path_factory: pytest.TempPathFactory) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for HTTP integration tests.

    Users:
      - chefe    (administrator), password ADMIN_PASSWORD
      - maria    (employee),      password EMPLOYEE_PASSWORD
    Rooms:
      - "101" with both keys available (room_id)
    """
    db = make_database(tmp_path_factory.mktemp("api") / "keycontrol.db")
    users = UserStore(db)
    admin_id = users.create_user(
        User(username="chefe", password_hash=hash_password(ADMIN_PASSWORD), access_level=AccessLevel.administrator)
    )
    employee_id = users.create_user(
        User(username="maria", password_hash=hash_password(EMPLOYEE_PASSWORD), access_level=AccessLevel.employee)
    )
    room_id = CustodyStore(db).create_room("101", "Laboratório")

    app.router.lifespan_context = _patch_lifespan(db)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield ApiContext(
            client=client,
            db=db,
            admin_id=admin_id,
            admin_token=create_access_token(admin_id),
            employee_id=employee_id,
            employee_token=create_access_token(employee_id),
            room_id=room_id,
        )

    db.shutdown()
