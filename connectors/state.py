"""
OAuth ``state`` tokens.

The state round-trips through Google verbatim, so it is treated as
untrusted input at the callback.  It carries the provider, the user who
started the flow, a random nonce and an expiry, signed with
``config.oauth_state_secret``.  A callback can only ever store tokens for
the user the state was issued to.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from base64 import urlsafe_b64decode, urlsafe_b64encode
from datetime import datetime, timezone

from connectors.errors import AuthenticationError
from connectors.providers import get_profile
from connectors.schemas import AuthorizationState


def _sign(raw: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def issue_state(
    provider: str,
    user_id: str,
    *,
    secret: str,
    ttl_seconds: int,
    now: datetime,
) -> str:
    """Create an opaque, signed state string for one authorization request."""
    payload = {
        "p": provider,
        "u": user_id,
        "n": secrets.token_urlsafe(16),
        "exp": int(now.timestamp()) + ttl_seconds,
    }
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return urlsafe_b64encode(raw).decode().rstrip("=") + "." + _sign(raw, secret)


def verify_state(state: str, *, secret: str, now: datetime) -> AuthorizationState:
    """
    Verify a state string returned by the provider.

    Raises ``AuthenticationError`` on bad format, bad signature or expiry,
    and ``UnknownProviderError`` if the signed provider is not in the table.
    """
    try:
        encoded, sig = state.split(".", 1)
        raw = urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
    except ValueError:
        raise AuthenticationError("Invalid OAuth state: bad format") from None

    if not hmac.compare_digest(sig.encode(), _sign(raw, secret).encode()):
        raise AuthenticationError("Invalid OAuth state: bad signature")

    try:
        payload = json.loads(raw)
        provider, user_id, nonce, exp = payload["p"], payload["u"], payload["n"], int(payload["exp"])
    except (ValueError, KeyError, TypeError):
        raise AuthenticationError("Invalid OAuth state: bad payload") from None

    if exp <= now.timestamp():
        raise AuthenticationError("OAuth state expired; please start the connection again")

    profile = get_profile(provider)
    return AuthorizationState(
        provider=profile.name,
        user_id=user_id,
        nonce=nonce,
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )
