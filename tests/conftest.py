"""
tests/conftest.py -- Shared test fixtures for folioauth.

This module provides:
  - FakeClock: a controllable UTC clock injected into services
  - store / hasher / codec: isolated in-memory store and cheap-rounds crypto
  - auth_service / reset_service: services wired to the fixtures above
  - outbox: captures reset codes handed to the delivery side effect
  - api_client: TestClient over the real app with a patched lifespan

Design: API tests use a named shared-memory SQLite URI (not plain :memory:)
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

DEBUG must be set before any core/auth import so get_settings() generates
signing secrets and accepts low bcrypt rounds instead of raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from uuid import uuid4

# CRITICAL: Set before any auth/core import so get_settings() runs in dev mode.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_services, stop_purge_task
from auth.hashing import CredentialHasher
from auth.reset import CredentialResetService
from auth.service import AuthService
from auth.store import AuthStore
from auth.tokens import TokenCodec
from core.config import get_settings

TEST_ROUNDS = 4


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class Outbox:
    """Delivery double: records (email, code, minutes) instead of sending."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, int]] = []

    def __call__(self, email: str, code: str, expires_in_minutes: int) -> None:
        self.sent.append((email, code, expires_in_minutes))

    def last_code(self, email: str) -> str:
        return [code for e, code, _ in self.sent if e == email][-1]


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Generator[AuthStore, None, None]:
    s = AuthStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture(scope="session")
def hasher() -> CredentialHasher:
    return CredentialHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(access_secret="a" * 32, refresh_secret="r" * 32)


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def auth_service(store: AuthStore, hasher: CredentialHasher, codec: TokenCodec, clock: FakeClock) -> AuthService:
    return AuthService(store, hasher, codec, clock=clock)


@pytest.fixture
def reset_service(
    store: AuthStore, hasher: CredentialHasher, outbox: Outbox, clock: FakeClock
) -> CredentialResetService:
    return CredentialResetService(store, hasher, delivery=outbox, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AuthStore, outbox: Outbox):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state through the same build_services()
    the real lifespan uses, then swaps in the recording delivery. The
    purge_task is a long-sleeping coroutine so shutdown can cancel it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        build_services(app, store)
        app.state.reset_service = CredentialResetService.from_settings(
            store, CredentialHasher(rounds=TEST_ROUNDS), app.state.settings, delivery=outbox
        )
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        await stop_purge_task(app.state.purge_task)

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, AuthStore, Outbox], None, None]:
    """Yield (client, store, outbox) for API integration tests.

    One TestClient per test module for speed; each module gets its own
    shared-memory database so modules never see each other's accounts.
    """
    store = AuthStore(f"sqlite:///file:test_auth_{uuid4().hex}?mode=memory&cache=shared&uri=true")
    outbox = Outbox()
    app.router.lifespan_context = _patch_lifespan(store, outbox)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store, outbox

    store.close()
