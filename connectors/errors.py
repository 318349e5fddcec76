"""
Connector error taxonomy.

Every failure in the OAuth lifecycle is a ``ConnectorError`` carrying an
HTTP status and a stable machine ``code``.  ``api.middleware`` turns them
into ``{"error": ..., "code": ...}`` responses; the callback endpoint turns
them into a failure page instead.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ConnectorError(Exception):
    """Base for all connector failures."""

    status_code: int = 500
    code: str = "connector_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ConfigurationError(ConnectorError):
    """Provider client credentials are missing or malformed."""

    status_code = 500
    code = "configuration_error"


class AuthenticationError(ConnectorError):
    """The caller's session token (or OAuth state) could not be verified."""

    status_code = 401
    code = "authentication_failed"


class UnknownProviderError(ConnectorError):
    status_code = 400
    code = "unknown_provider"


class ProviderConsentError(ConnectorError):
    """The user denied consent or the provider reported an error at redirect."""

    status_code = 400
    code = "consent_denied"


class ExchangeError(ConnectorError):
    """Authorization code could not be exchanged; the whole flow must be restarted."""

    status_code = 502
    code = "exchange_failed"


class NotConnectedError(ConnectorError):
    status_code = 404
    code = "not_connected"


class ReauthorizationRequired(ConnectorError):
    """Refresh token missing, invalid or revoked. Not auto-recoverable."""

    status_code = 409
    code = "reauthorization_required"


class FetchError(ConnectorError):
    """A provider endpoint answered with a non-2xx status."""

    status_code = 502
    code = "fetch_failed"

    def __init__(self, message: str, provider_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.provider_status = provider_status

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.provider_status is not None:
            body["provider_status"] = self.provider_status
        return body


class ApiNotEnabledError(FetchError):
    """The provider API is disabled for the OAuth client's cloud project."""

    code = "api_not_enabled"


class ProviderTimeoutError(ConnectorError, TimeoutError):
    """A provider call exceeded its deadline; safe to retry."""

    status_code = 504
    code = "provider_timeout"
