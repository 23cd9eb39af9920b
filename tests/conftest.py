"""
tests/conftest.py -- Shared test fixtures for Tokengate.

This module provides:
  - settings / store / hasher / tokens / notifier / service: the unit-level
    collaborators, each test getting its own isolated in-memory store
  - register_user: helper fixture that creates an account through the service
  - api_client: TestClient running the real FastAPI app with a patched
    lifespan wired to the same isolated store and a recording notifier

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment variables are set before any app import so the import-time
get_settings() call (CORS origins) sees a real secret and cheap bcrypt.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# Must run before importing api.main.
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.passwords import PasswordHasher
from auth.schemas import RegisterRequest
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


class RecordingNotifier:
    """Stand-in for ResetNotifier that remembers what it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_password_reset(self, to_email: str, reset_link: str) -> bool:
        self.sent.append((to_email, reset_link))
        return True


# ---------------------------------------------------------------------------
# Unit-level collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret=TEST_SECRET, bcrypt_rounds=4, environment="development")


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Isolated named shared-memory store, unique per test."""
    s = UserStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield s
    s.close()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(store, hasher, tokens, notifier, settings) -> AuthService:
    return AuthService(store, hasher, tokens, notifier, settings)


@pytest.fixture
def register_user(service):
    """Return a helper that registers an account and returns the RegisterResponse."""

    def _register(
        email: str = "a@x.com",
        password: str = "secret1",
        first_name: str = "Ann",
        last_name: str = "Lee",
        username: str = "annlee",
    ):
        return service.register(
            RegisterRequest(
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
                username=username,
            )
        )

    return _register


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, store: UserStore, notifier: RecordingNotifier):
    """Return an async context manager that replaces the real lifespan.

    Uses the same wire_services() as production so the app.state layout is
    identical; only the store and notifier are test doubles.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, settings, store)
        app.state.auth_service.notifier = notifier
        yield

    return test_lifespan


@pytest.fixture
def api_client(settings, store, notifier) -> Generator[TestClient, None, None]:
    """Yield a TestClient for the real app wired to the isolated test store."""
    app.router.lifespan_context = _patch_lifespan(settings, store, notifier)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client
