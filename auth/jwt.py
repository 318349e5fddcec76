"""
Bearer session tokens.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256.
The secret comes from ``config.session_token_secret`` (env var:
``SESSION_TOKEN_SECRET``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode
from typing import Optional

from config.settings import config
from connectors.errors import AuthenticationError


def create_session_token(
    user_id: str,
    *,
    secret: Optional[str] = None,
    expiry_seconds: Optional[int] = None,
) -> str:
    """Create a signed token containing ``user_id`` and expiry."""
    secret = secret or config.session_token_secret
    ttl = expiry_seconds if expiry_seconds is not None else config.session_token_expiry_seconds
    raw = json.dumps({"user_id": user_id, "exp": int(time.time()) + ttl}).encode()
    sig = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return b64encode(raw).decode() + "." + sig


def verify_session_token(token: str, *, secret: Optional[str] = None) -> str:
    """
    Verify a session token and return its ``user_id``.

    Raises ``AuthenticationError`` on invalid or expired tokens.
    """
    secret = secret or config.session_token_secret
    try:
        encoded, sig = token.split(".", 1)
        raw = b64decode(encoded, validate=True)
    except ValueError:
        raise AuthenticationError("Invalid session token: bad format") from None

    expected = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(sig.encode(), expected.encode()):
        raise AuthenticationError("Invalid session token: bad signature")

    try:
        payload = json.loads(raw)
        user_id, exp = payload["user_id"], payload.get("exp", 0)
    except (ValueError, KeyError, TypeError):
        raise AuthenticationError("Invalid session token: bad payload") from None
    if exp < time.time():
        raise AuthenticationError("Session token expired")
    return user_id
