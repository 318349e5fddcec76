"""
FastAPI dependencies for authentication.

``get_current_user_id`` guards every connector route; the OAuth callback
uses ``get_optional_bearer_token`` because a provider redirect usually arrives
without the caller's Authorization header.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth.jwt import verify_session_token
from config.settings import Settings, config
from connectors.errors import AuthenticationError
from database.session import async_session_factory, session_scope

_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Settings the running app was created with."""
    return getattr(request.app.state, "settings", config)


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Session factory the running app was created with."""
    return getattr(request.app.state, "session_factory", async_session_factory)


async def db_session(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers, from the app's own database."""
    async with session_scope(factory) as session:
        yield session


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id``.  Missing or invalid tokens raise ``AuthenticationError`` (401).
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing Bearer token")
    return verify_session_token(credentials.credentials, secret=settings.session_token_secret)


async def get_optional_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[str]:
    """Raw bearer token if one was presented; verification is left to the caller."""
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials
