"""
Shared fixtures: a scripted stand-in for the pooled database and an API
client with authentication dependencies overridden.
"""

import os

os.environ.setdefault("ENABLE_FILE_LOGGING", "false")
os.environ.setdefault("PAGE_CACHE_TTL_SECONDS", "60")

from collections import deque
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import pytest

from stockroom.config import settings
from stockroom.core.exceptions import AppException, DatabaseException, pgcode_of
from stockroom.core.page_cache import page_cache

TENANT_ID = settings.DEFAULT_TENANT_ID

PATCHED_MODULES = [
    "stockroom.core.auth_service",
    "stockroom.core.admin_service",
    "stockroom.core.inventory_service",
    "stockroom.core.stock_service",
    "stockroom.core.catalog_service",
    "stockroom.core.quote_service",
    "stockroom.core.event_service",
    "stockroom.core.crew_service",
]

TRANSACTION_CONTROL = ("SAVEPOINT", "RELEASE SAVEPOINT", "ROLLBACK TO SAVEPOINT")


class FakePgError(Exception):
    """Driver error carrying a Postgres error code."""

    def __init__(self, message: str, pgcode: Optional[str] = None):
        super().__init__(message)
        self.pgcode = pgcode


class FakeResult:
    def __init__(self, rows=None, rowcount: Optional[int] = None, error: Optional[Exception] = None):
        self.rows = [dict(row) for row in (rows or [])]
        self.rowcount = len(self.rows) if rowcount is None else rowcount
        self.error = error


class FakeCursor:
    def __init__(self, db: "FakeDatabase"):
        self.db = db
        self.rowcount = -1
        self._rows: List[Dict[str, Any]] = []

    def execute(self, query, params=None):
        statement = " ".join(str(query).split())
        self.db.executed.append((statement, params))
        if statement.startswith(TRANSACTION_CONTROL):
            return

        if not self.db.results:
            raise AssertionError(f"Unexpected query: {statement}")
        result = self.db.results.popleft()
        if result.error is not None:
            raise result.error
        self._rows = list(result.rows)
        self.rowcount = result.rowcount

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def close(self):
        pass


class FakeConnection:
    def __init__(self, db: "FakeDatabase"):
        self.db = db

    def cursor(self, cursor_factory=None):
        return FakeCursor(self.db)


class FakeDatabase:
    """
    Replays queued results in order, one per executed statement.

    Mirrors DatabaseManager.get_connection: commit on success, rollback and
    wrap driver errors in DatabaseException on failure.
    """

    def __init__(self):
        self.results: deque = deque()
        self.executed: List[tuple] = []
        self.claims_seen: List[Any] = []
        self.commits = 0
        self.rollbacks = 0

    def add(self, rows=None, rowcount: Optional[int] = None) -> "FakeDatabase":
        self.results.append(FakeResult(rows=rows, rowcount=rowcount))
        return self

    def fail(self, pgcode: Optional[str] = None, message: str = "boom") -> "FakeDatabase":
        self.results.append(FakeResult(error=FakePgError(message, pgcode)))
        return self

    def statements(self, fragment: str) -> List[tuple]:
        return [entry for entry in self.executed if fragment in entry[0]]

    @contextmanager
    def get_connection(self, claims=None):
        self.claims_seen.append(claims)
        try:
            yield FakeConnection(self)
            self.commits += 1
        except AppException:
            self.rollbacks += 1
            raise
        except Exception as e:
            self.rollbacks += 1
            raise DatabaseException(f"Database operation failed: {str(e)}", pgcode=pgcode_of(e)) from e


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeDatabase()
    for module in PATCHED_MODULES:
        monkeypatch.setattr(f"{module}.get_db_manager", lambda: db)
    return db


@pytest.fixture(autouse=True)
def clear_page_cache():
    page_cache.clear()
    yield
    page_cache.clear()


def make_context(role: str = "admin", tenant_id: str = TENANT_ID) -> Dict[str, Any]:
    return {
        "user_id": "auth-user-1",
        "email": f"{role}@example.com",
        "user_metadata": {},
        "claims": None,
        "role": role,
        "tenant_id": tenant_id,
        "user_record_id": "user-row-1",
    }


@pytest.fixture
def admin_context():
    return make_context("admin")


@pytest.fixture
def user_context():
    return make_context("user")


@pytest.fixture
def app():
    from main import app as fastapi_app
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


def _client_for(app, context):
    from fastapi.testclient import TestClient
    from stockroom.api.dependencies import get_current_user, get_optional_user, get_user_context

    identity = {key: context[key] for key in ("user_id", "email", "user_metadata", "claims")}
    app.dependency_overrides[get_current_user] = lambda: identity
    app.dependency_overrides[get_optional_user] = lambda: identity
    app.dependency_overrides[get_user_context] = lambda: context
    return TestClient(app)


@pytest.fixture
def admin_client(app, admin_context):
    return _client_for(app, admin_context)


@pytest.fixture
def user_client(app, user_context):
    return _client_for(app, user_context)


@pytest.fixture
def anonymous_client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)
