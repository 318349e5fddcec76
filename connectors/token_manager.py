"""
Token manager — hand out a usable access token for a user + provider.

This is the single interface the fetchers use to obtain a token.  Credential
states:

  VALID    token_expiry is null or still in the future → token returned as-is
  EXPIRED  token_expiry <= now → refreshed with the stored refresh token,
           or ``ReauthorizationRequired`` when that is impossible

Refreshes are single-flight per (user, provider) within the process: the
first caller refreshes, concurrent callers wait on the same lock and then
pick up the row it wrote.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from config.settings import Settings
from connectors.errors import NotConnectedError, ReauthorizationRequired
from connectors.oauth_client import GoogleOAuthClient
from connectors.providers import get_profile
from connectors.schemas import Credential
from connectors.store import CredentialStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRefresher:
    """Resolves stored credentials into usable access tokens."""

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: GoogleOAuthClient,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._skew = settings.token_refresh_skew_seconds
        self._clock = clock
        # Locks disappear once no request holds or awaits them.
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: str, provider: str) -> asyncio.Lock:
        key = (user_id, provider)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get_access_token(self, user_id: str, provider: str) -> str:
        """
        Return a valid access token for the user + provider.

        Raises
        ------
        NotConnectedError
            No credential stored for the pair.
        ReauthorizationRequired
            Token expired and cannot be refreshed.
        """
        profile = get_profile(provider)
        credential = await self._store.get(user_id, profile.name)
        if credential is None:
            raise NotConnectedError(
                f"{profile.display_name} not connected. "
                f"Please connect your {profile.display_name} account first."
            )
        return await self.ensure_fresh(credential)

    async def ensure_fresh(self, credential: Credential) -> str:
        if not credential.is_expired(self._clock(), self._skew):
            return credential.access_token
        if not credential.refresh_token:
            raise ReauthorizationRequired(
                f"The {credential.provider} token expired and no refresh token is stored. "
                "Please reconnect your account."
            )

        async with self._lock_for(credential.user_id, credential.provider):
            # Another request may have refreshed while we waited.
            current = await self._store.get(credential.user_id, credential.provider)
            if current is None:
                raise NotConnectedError(f"{credential.provider} was disconnected")
            if not current.is_expired(self._clock(), self._skew):
                logger.debug(
                    "Using %s token refreshed concurrently for user %s",
                    current.provider, current.user_id,
                )
                return current.access_token
            if not current.refresh_token:
                raise ReauthorizationRequired(
                    f"The {current.provider} token expired and no refresh token is stored. "
                    "Please reconnect your account."
                )
            return await self._refresh(current)

    async def _refresh(self, credential: Credential) -> str:
        try:
            grant = await self._oauth.refresh(credential.refresh_token)
        except ReauthorizationRequired:
            # Row is left as-is; the user decides whether to disconnect.
            logger.warning(
                "Refresh rejected for %s/%s; reauthorization required",
                credential.provider, credential.user_id,
            )
            raise

        updated: Optional[Credential] = await self._store.update_tokens(
            credential.user_id, credential.provider, grant, now=self._clock()
        )
        if updated is None:
            raise NotConnectedError(f"{credential.provider} was disconnected during refresh")
        logger.info("Refreshed %s token for user %s", credential.provider, credential.user_id)
        return updated.access_token
