"""
Shared fixtures: test settings, a throwaway SQLite database and a fake
Google token endpoint served through ``httpx.MockTransport``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth.jwt import create_session_token
from config.settings import Settings
from connectors.encryption import TokenCipher
from connectors.oauth_client import GoogleOAuthClient
from connectors.store import CredentialStore
from connectors.token_manager import TokenRefresher
from database.models import Base
from database.session import build_engine, build_session_factory
from main import create_app

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeGoogle:
    """
    Stand-in for oauth2.googleapis.com.

    Token responses are served in the order they were queued; every request
    is recorded for assertions.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._token_queue: List[Any] = []
        self.revoke_status = 200

    def queue_token(self, status: int = 200, **body: Any) -> None:
        self._token_queue.append(httpx.Response(status, json=body))

    def queue_timeout(self) -> None:
        self._token_queue.append(httpx.ReadTimeout)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/token":
            if not self._token_queue:
                return httpx.Response(500, json={"error": "no response queued"})
            queued = self._token_queue.pop(0)
            if queued is httpx.ReadTimeout:
                raise httpx.ReadTimeout("timed out", request=request)
            return queued
        if request.url.path == "/revoke":
            return httpx.Response(self.revoke_status)
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def token_calls(self) -> List[Dict[str, str]]:
        """Form bodies posted to the token endpoint."""
        return [
            {k: v[0] for k, v in parse_qs(r.content.decode()).items()}
            for r in self.requests
            if r.url.path == "/token"
        ]

    def revoke_calls(self) -> List[Optional[str]]:
        return [r.url.params.get("token") for r in self.requests if r.url.path == "/revoke"]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        google_client_id="client-123.apps.googleusercontent.com",
        google_client_secret="client-secret",
        oauth_redirect_base="https://studydesk.test",
        session_token_secret="test-session-secret",
        oauth_state_secret="test-state-secret",
        token_encryption_key=Fernet.generate_key().decode(),
        password_hash_rounds=4,
        database_url="sqlite+aiosqlite://",
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def fake_google() -> FakeGoogle:
    return FakeGoogle()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'studydesk.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def cipher(settings) -> TokenCipher:
    return TokenCipher(settings.token_encryption_key)


@pytest.fixture
def store(session_factory, cipher) -> CredentialStore:
    return CredentialStore(session_factory, cipher)


@pytest.fixture
def oauth_client(settings, fake_google) -> GoogleOAuthClient:
    return GoogleOAuthClient(settings, transport=fake_google.transport)


@pytest.fixture
def refresher(store, oauth_client, settings, clock) -> TokenRefresher:
    return TokenRefresher(store, oauth_client, settings, clock=clock)


@pytest.fixture
def app(settings, session_factory, fake_google):
    return create_app(settings, session_factory, fake_google.transport)


@pytest_asyncio.fixture
async def client(app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


@pytest.fixture
def auth_headers(settings):
    """Bearer headers for an arbitrary user id."""
    def _headers(user_id: str = "u1") -> Dict[str, str]:
        token = create_session_token(user_id, secret=settings.session_token_secret)
        return {"Authorization": f"Bearer {token}"}

    return _headers
