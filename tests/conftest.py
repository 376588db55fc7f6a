"""
tests/conftest.py -- Shared test fixtures for PinSquirrel.

This module provides:
  - hasher / user_store / pin_store: cheap unit-test collaborators
  - FakeMailer: records password reset mails instead of sending them
  - _make_test_stores(): isolated in-memory DBs for API integration tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a signed-in user's JWT

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API tests because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit tests that stay on one thread use plain :memory:.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager, suppress
from uuid import uuid4

# CRITICAL: Set DEBUG before any core/auth import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.hashing import CredentialHasher
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings
from pins.store import PinStore

# scrypt at n=2**14 costs tens of milliseconds per call; the suite hashes a lot.
FAST_HASHER = CredentialHasher(n=2**4)

# Rate limits are exercised explicitly in test_api_auth.py; everywhere else
# the shared in-memory counters would make results depend on test order.
limiter.enabled = False


class FakeMailer:
    """Implements the Mailer protocol by recording calls."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = fail

    def send_password_reset_email(self, email: str, token: str, reset_url: str) -> None:
        if self.fail is not None:
            raise self.fail
        self.sent.append((email, token, reset_url))


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hasher() -> CredentialHasher:
    return FAST_HASHER


@pytest.fixture
def fake_mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def pin_store() -> Generator[PinStore, None, None]:
    store = PinStore("sqlite:///:memory:")
    yield store
    store.close()


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, PinStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    pins_url = f"sqlite:///file:test_pins_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), PinStore(db_url=pins_url)


def _patch_lifespan(user_store: UserStore, pin_store: PinStore, mailer: FakeMailer):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, get_settings(), user_store, pin_store, hasher=FAST_HASHER, mailer=mailer)
        app.state.mailer = mailer
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.purge_task

    return test_lifespan


def create_test_user(store: UserStore, username: str, password: str = "testpass123") -> tuple[str, str]:
    """Insert a user directly and return (user_id, bearer token)."""
    uid = store.create_user(User(username=username, password_hash=FAST_HASHER.hash_password(password)))
    token = TokenService(get_settings().secret_key).create_access_token(uid, username, ["user"])
    return uid, token


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. The
    user "testuser" / "testpass123" exists before the client starts.
    """
    user_store, pin_store = _make_test_stores(uuid4().hex[:8])
    uid, token = create_test_user(user_store, "testuser")

    app.router.lifespan_context = _patch_lifespan(user_store, pin_store, FakeMailer())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    user_store.close()
    pin_store.close()


@pytest.fixture
def auth_headers(api_client) -> dict[str, str]:
    _client, token, _uid = api_client
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(api_client):
    """Return a factory that adds a user to the running app and yields its bearer headers."""
    client, _token, _uid = api_client

    def _make(username: str, password: str = "testpass123") -> tuple[str, dict[str, str]]:
        uid, token = create_test_user(client.app.state.user_store, username, password)
        return uid, {"Authorization": f"Bearer {token}"}

    return _make
