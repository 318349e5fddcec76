"""
Connection flow — authorization initiator, callback handler and disconnect.

    start()     → consent URL (stateless, nothing persisted)
    complete()  → verify state, exchange code, upsert credential
    disconnect()→ delete credential, optionally revoke at Google

``complete`` never raises: every failure becomes a ``CallbackOutcome`` so
the popup always receives a terminal signal.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from config.settings import Settings
from connectors.errors import AuthenticationError, ConnectorError, ProviderConsentError
from connectors.oauth_client import GoogleOAuthClient
from connectors.providers import PROVIDERS, get_profile
from connectors.schemas import CallbackOutcome, ConnectionStatus
from connectors.state import issue_state, verify_state
from connectors.store import CredentialStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionFlow:
    """Drives a user through connecting and disconnecting a provider."""

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
        self._settings = settings
        self._clock = clock

    # ── Authorization initiator ─────────────────────────────────────────

    def start(self, provider: str, user_id: str) -> str:
        """Return the provider consent URL for ``user_id``."""
        profile = get_profile(provider)
        self._oauth.require_configured()
        state = issue_state(
            profile.name,
            user_id,
            secret=self._settings.oauth_state_secret,
            ttl_seconds=self._settings.oauth_state_ttl_seconds,
            now=self._clock(),
        )
        logger.info("Starting %s OAuth flow for user %s", profile.name, user_id)
        return self._oauth.build_authorization_url(profile, state)

    # ── Callback handler ────────────────────────────────────────────────

    async def complete(
        self,
        *,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        session_user_id: Optional[str] = None,
    ) -> CallbackOutcome:
        """
        Finish the flow from the provider redirect.

        The acting user comes from the signed state; a bearer session, when
        the request carries one, must name the same user.
        """
        provider: Optional[str] = None
        try:
            if error:
                raise ProviderConsentError(f"Authorization was not granted: {error}")
            if not code or not state:
                raise AuthenticationError("Missing code or state parameter")

            auth_state = verify_state(
                state, secret=self._settings.oauth_state_secret, now=self._clock()
            )
            provider = auth_state.provider
            if session_user_id is not None and session_user_id != auth_state.user_id:
                raise AuthenticationError("OAuth state was issued to a different user")

            profile = get_profile(provider)
            grant = await self._oauth.exchange_code(code)
            if not grant.scopes:
                grant = grant.model_copy(update={"scopes": list(profile.scopes)})

            await self._store.upsert(auth_state.user_id, profile.name, grant, now=self._clock())
        except ConnectorError as exc:
            logger.warning(
                "OAuth callback failed (provider=%s, code=%s): %s",
                provider or "unknown", exc.code, exc.message,
            )
            return CallbackOutcome(
                success=False, provider=provider, message=exc.message, code=exc.code
            )

        logger.info("OAuth connected: user=%s provider=%s", auth_state.user_id, profile.name)
        return CallbackOutcome(
            success=True,
            provider=profile.name,
            message=f"Connected {profile.display_name}",
        )

    # ── Connection management ───────────────────────────────────────────

    async def disconnect(self, user_id: str, provider: str, *, revoke: bool = False) -> bool:
        """
        Delete the stored credential.  Consent at Google stays in place
        unless ``revoke`` is set; revocation is best-effort.
        """
        profile = get_profile(provider)
        credential = await self._store.get(user_id, profile.name) if revoke else None

        deleted = await self._store.delete(user_id, profile.name)
        if not deleted:
            return False

        if credential is not None:
            token = credential.refresh_token or credential.access_token
            if not await self._oauth.revoke(token):
                logger.warning(
                    "Could not revoke %s consent for user %s; credential deleted anyway",
                    profile.name, user_id,
                )

        logger.info("Disconnected %s for user %s", profile.name, user_id)
        return True

    async def connection_status(self, user_id: str) -> List[ConnectionStatus]:
        """Status for every known provider, connected or not."""
        now = self._clock()
        stored = {c.provider: c for c in await self._store.list_for_user(user_id)}
        statuses = []
        for profile in PROVIDERS.values():
            credential = stored.get(profile.name)
            if credential is None:
                statuses.append(
                    ConnectionStatus(provider=profile.name, display_name=profile.display_name)
                )
                continue
            statuses.append(
                ConnectionStatus(
                    provider=profile.name,
                    display_name=profile.display_name,
                    connected=True,
                    expired=credential.is_expired(now, self._settings.token_refresh_skew_seconds),
                    has_refresh_token=bool(credential.refresh_token),
                    scopes=credential.scopes,
                    token_expiry=credential.token_expiry,
                    updated_at=credential.updated_at,
                )
            )
        return statuses
