"""
tests/conftest.py -- Shared test fixtures for QuizMaker.

This module provides:
  - engine / users / sessions / codec / service: unit-level fixtures over a
    private in-memory SQLite database, no HTTP involved
  - client: TestClient over the full ASGI app (API + web router) for API tests
  - web_client: same, with follow_redirects=False for gate/page tests
  - signup_user(): helper that creates an account through the API

Design: the HTTP fixtures use named shared-memory SQLite URIs (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. SingletonThreadPool is passed explicitly: one connection
per thread, all attached to the same named database, which lives as long as
any of them stays open. Each fixture gets its own uuid-suffixed name, so tests never
see each other's rows.

Environment must be set before any app import: DEBUG lets get_settings()
auto-generate SECRET_KEY, BCRYPT_ROUNDS=4 keeps hashing fast, and the reaper
is disabled so no background task outlives a test.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: configure the environment before importing anything from the app.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SESSION_CLEANUP_INTERVAL_SECONDS", "0")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import SingletonThreadPool

from api.main import build_auth_state
from asgi import app
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore, create_auth_engine
from auth.tokens import TokenCodec

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"
VALID_PASSWORD = "Password1"

# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = create_auth_engine("sqlite:///:memory:", poolclass=SingletonThreadPool)
    yield eng
    eng.dispose()


@pytest.fixture
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def sessions(engine) -> SessionStore:
    return SessionStore(engine)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def service(users: UserStore, sessions: SessionStore, codec: TokenCodec) -> AuthService:
    return AuthService(users, sessions, codec, bcrypt_rounds=4)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _shared_memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _patch_lifespan(db_url: str):
    """Return an async context manager that replaces the real lifespan.

    Wires a fresh auth stack over the given database into app.state and
    skips the reaper task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_auth_state(app, db_url, poolclass=SingletonThreadPool)
        app.state.reaper_task = None
        yield
        app.state.engine.dispose()

    return test_lifespan


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """TestClient over the full app with an isolated database."""
    app.router.lifespan_context = _patch_lifespan(_shared_memory_url("test_api"))
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def web_client() -> Generator[TestClient, None, None]:
    """TestClient for page routes.

    follow_redirects=False is essential: we assert on redirect *locations*,
    which are invisible once the client follows the redirect.
    """
    app.router.lifespan_context = _patch_lifespan(_shared_memory_url("test_web"))
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c


def signup_user(
    client: TestClient,
    email: str = "t@example.com",
    password: str = VALID_PASSWORD,
    full_name: str = "T",
    user_agent: str = "pytest",
):
    """Create an account via the API. Returns the raw response."""
    return client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": password, "fullName": full_name},
        headers={"User-Agent": user_agent},
    )


def login_token(client: TestClient, email: str, password: str = VALID_PASSWORD, user_agent: str = "pytest") -> str:
    """Log in as a separate "device" and return its token.

    The client's cookie jar is cleared afterwards so the next request only
    carries whatever credential the test passes explicitly.
    """
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
        headers={"User-Agent": user_agent},
    )
    assert resp.status_code == 200, resp.text
    token = resp.cookies.get("auth_token")
    client.cookies.clear()
    assert token
    return token


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
