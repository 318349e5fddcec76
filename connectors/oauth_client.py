"""
GoogleOAuthClient — the OAuth2 web-server flow against Google's endpoints.

One client serves every provider in ``connectors.providers``; the profile
supplies scopes and authorization quirks, so nothing here branches on the
provider name.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from config.settings import Settings
from connectors.errors import (
    ConfigurationError,
    ExchangeError,
    FetchError,
    ProviderTimeoutError,
    ReauthorizationRequired,
)
from connectors.providers import ProviderProfile
from connectors.schemas import TokenGrant

logger = logging.getLogger(__name__)

# Google OAuth2 endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"


def _error_detail(resp: httpx.Response) -> str:
    """Best description of a token-endpoint error without echoing secrets."""
    try:
        body = resp.json()
    except ValueError:
        return resp.reason_phrase or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        description = body.get("error_description")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("status") or error)
        if error and description:
            return f"{error}: {description}"
        if error:
            return str(error)
    return resp.reason_phrase or f"HTTP {resp.status_code}"


def _json_or_empty(resp: httpx.Response) -> Dict[str, Any]:
    try:
        return resp.json()
    except ValueError:
        return {}


def _parse_grant(body: Dict[str, Any]) -> Optional[TokenGrant]:
    if not isinstance(body, dict) or not body.get("access_token"):
        return None
    expires_in = body.get("expires_in")
    if expires_in is not None:
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError):
            logger.warning("Token response carried an unusable expires_in: %r", expires_in)
            return None
    return TokenGrant(
        access_token=body["access_token"],
        refresh_token=body.get("refresh_token") or None,
        expires_in=expires_in,
        scopes=(body.get("scope") or "").split(),
    )


class GoogleOAuthClient:
    """OAuth2 client for Google (authorization URL, code exchange, refresh, revoke)."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    # ── Configuration ───────────────────────────────────────────────────

    def is_configured(self) -> bool:
        return bool(self._settings.google_client_id and self._settings.google_client_secret)

    def require_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationError(
                "Google OAuth is not configured (GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET missing)"
            )

    @property
    def redirect_uri(self) -> str:
        return self._settings.oauth_redirect_uri

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._settings.provider_timeout_seconds,
            transport=self._transport,
        )

    # ── OAuth flow ──────────────────────────────────────────────────────

    def build_authorization_url(self, profile: ProviderProfile, state: str) -> str:
        """Consent URL for ``profile``; identical across calls except for ``state``."""
        self.require_configured()
        params = {
            "client_id": self._settings.google_client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": profile.scope_string,
            **profile.auth_params,
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _post_token(self, data: Dict[str, str]) -> httpx.Response:
        try:
            async with self._client() as client:
                return await client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError("Timed out waiting for Google's token endpoint") from exc

    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens (single use)."""
        self.require_configured()
        try:
            resp = await self._post_token(
                {
                    "code": code,
                    "client_id": self._settings.google_client_id,
                    "client_secret": self._settings.google_client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                }
            )
        except httpx.HTTPError as exc:
            raise ExchangeError(f"Token exchange failed: {exc}") from exc

        if resp.is_error:
            raise ExchangeError(f"Token exchange failed: {_error_detail(resp)}")
        grant = _parse_grant(_json_or_empty(resp))
        if grant is None:
            raise ExchangeError("Token exchange failed: malformed token response")

        logger.info(
            "Code exchanged (refresh_token=%s, expires_in=%s)",
            "yes" if grant.refresh_token else "no",
            grant.expires_in,
        )
        return grant

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """Mint a new access token from a refresh token."""
        self.require_configured()
        try:
            resp = await self._post_token(
                {
                    "client_id": self._settings.google_client_id,
                    "client_secret": self._settings.google_client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                }
            )
        except httpx.HTTPError as exc:
            raise FetchError(f"Token refresh failed: {exc}") from exc

        if resp.status_code in (400, 401):
            raise ReauthorizationRequired(
                f"Google rejected the refresh token ({_error_detail(resp)}). "
                "Please reconnect your account."
            )
        if resp.is_error:
            raise FetchError(
                f"Token refresh failed: {_error_detail(resp)}",
                provider_status=resp.status_code,
            )
        grant = _parse_grant(_json_or_empty(resp))
        if grant is None:
            raise ReauthorizationRequired(
                "Failed to refresh access token. Please reconnect your account."
            )
        return grant

    async def revoke(self, token: str) -> bool:
        """Revoke a token at Google. Best-effort: returns False instead of raising."""
        try:
            async with self._client() as client:
                resp = await client.post(GOOGLE_REVOKE_URL, params={"token": token})
            return resp.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("Token revocation request failed: %s", exc)
            return False
