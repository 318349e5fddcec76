"""
Tests for GoogleOAuthClient against a mocked token endpoint.
"""

from urllib.parse import parse_qs, urlsplit

import pytest

from connectors.errors import (
    ConfigurationError,
    ExchangeError,
    FetchError,
    ProviderTimeoutError,
    ReauthorizationRequired,
)
from connectors.oauth_client import GOOGLE_AUTH_URL, GoogleOAuthClient
from connectors.providers import get_profile


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


class TestAuthorizationUrl:
    def test_parameters(self, oauth_client, settings):
        url = oauth_client.build_authorization_url(get_profile("classroom"), "state-abc")
        params = _query(url)

        assert url.startswith(GOOGLE_AUTH_URL + "?")
        assert params["client_id"] == settings.google_client_id
        assert params["redirect_uri"] == "https://studydesk.test/api/v1/oauth/callback"
        assert params["response_type"] == "code"
        assert params["access_type"] == "offline"
        assert params["prompt"] == "consent"
        assert params["state"] == "state-abc"
        assert params["scope"] == (
            "https://www.googleapis.com/auth/classroom.courses.readonly "
            "https://www.googleapis.com/auth/classroom.announcements.readonly"
        )

    def test_only_state_varies_between_calls(self, oauth_client):
        profile = get_profile("gmail")
        first = _query(oauth_client.build_authorization_url(profile, "one"))
        second = _query(oauth_client.build_authorization_url(profile, "two"))

        del first["state"], second["state"]
        assert first == second

    def test_not_configured(self, settings):
        client = GoogleOAuthClient(settings.model_copy(update={"google_client_secret": ""}))
        assert not client.is_configured()
        with pytest.raises(ConfigurationError):
            client.build_authorization_url(get_profile("gmail"), "s")


class TestCodeExchange:
    @pytest.mark.asyncio
    async def test_success(self, oauth_client, fake_google, settings):
        fake_google.queue_token(
            access_token="at-1",
            refresh_token="rt-1",
            expires_in=3599,
            scope="https://www.googleapis.com/auth/gmail.readonly",
            token_type="Bearer",
        )

        grant = await oauth_client.exchange_code("auth-code")

        assert grant.access_token == "at-1"
        assert grant.refresh_token == "rt-1"
        assert grant.expires_in == 3599
        assert grant.scopes == ["https://www.googleapis.com/auth/gmail.readonly"]

        (body,) = fake_google.token_calls()
        assert body["grant_type"] == "authorization_code"
        assert body["code"] == "auth-code"
        assert body["redirect_uri"] == settings.oauth_redirect_uri
        assert body["client_secret"] == "client-secret"

    @pytest.mark.asyncio
    async def test_invalid_grant(self, oauth_client, fake_google):
        fake_google.queue_token(400, error="invalid_grant", error_description="Bad Request")
        with pytest.raises(ExchangeError, match="invalid_grant"):
            await oauth_client.exchange_code("used-code")

    @pytest.mark.asyncio
    async def test_missing_access_token(self, oauth_client, fake_google):
        fake_google.queue_token(200, token_type="Bearer")
        with pytest.raises(ExchangeError):
            await oauth_client.exchange_code("code")

    @pytest.mark.asyncio
    async def test_unparseable_expires_in(self, oauth_client, fake_google):
        fake_google.queue_token(access_token="at-1", expires_in="soon")
        with pytest.raises(ExchangeError, match="malformed token response"):
            await oauth_client.exchange_code("code")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_success_without_rotation(self, oauth_client, fake_google):
        fake_google.queue_token(access_token="at-2", expires_in=3600)

        grant = await oauth_client.refresh("rt-1")

        assert grant.access_token == "at-2"
        assert grant.refresh_token is None
        (body,) = fake_google.token_calls()
        assert body["grant_type"] == "refresh_token"
        assert body["refresh_token"] == "rt-1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401])
    async def test_rejected_refresh_token(self, oauth_client, fake_google, status):
        fake_google.queue_token(status, error="invalid_grant", error_description="Token has been expired or revoked.")
        with pytest.raises(ReauthorizationRequired):
            await oauth_client.refresh("revoked")

    @pytest.mark.asyncio
    async def test_unparseable_expires_in(self, oauth_client, fake_google):
        fake_google.queue_token(access_token="at-2", expires_in="soon")
        with pytest.raises(ReauthorizationRequired):
            await oauth_client.refresh("rt-1")

    @pytest.mark.asyncio
    async def test_server_error(self, oauth_client, fake_google):
        fake_google.queue_token(503, error="backendError")
        with pytest.raises(FetchError) as exc_info:
            await oauth_client.refresh("rt-1")
        assert exc_info.value.provider_status == 503
        assert not isinstance(exc_info.value, ReauthorizationRequired)

    @pytest.mark.asyncio
    async def test_timeout(self, oauth_client, fake_google):
        fake_google.queue_timeout()
        with pytest.raises(ProviderTimeoutError):
            await oauth_client.refresh("rt-1")


class TestRevoke:
    @pytest.mark.asyncio
    async def test_revoke_ok(self, oauth_client, fake_google):
        assert await oauth_client.revoke("rt-1") is True
        assert fake_google.revoke_calls() == ["rt-1"]

    @pytest.mark.asyncio
    async def test_revoke_failure_is_reported_not_raised(self, oauth_client, fake_google):
        fake_google.revoke_status = 400
        assert await oauth_client.revoke("rt-1") is False
