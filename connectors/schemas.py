"""
Pydantic schemas for the connectors module.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# Token lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class TokenGrant(BaseModel):
    """Parsed token-endpoint response (code exchange or refresh)."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scopes: List[str] = Field(default_factory=list)

    def expiry(self, now: datetime) -> Optional[datetime]:
        if self.expires_in is None:
            return None
        return now + timedelta(seconds=self.expires_in)


class Credential(BaseModel):
    """Decrypted view of one ``oauth_credentials`` row."""

    user_id: str
    provider: str
    access_token: str
    refresh_token: Optional[str] = None
    token_expiry: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    def is_expired(self, now: datetime, skew_seconds: int = 0) -> bool:
        """
        Expired-inclusive: a token whose expiry equals ``now`` is expired.
        A credential without an expiry never expires on its own.
        """
        if self.token_expiry is None:
            return False
        return as_utc(self.token_expiry) <= now + timedelta(seconds=skew_seconds)


class AuthorizationState(BaseModel):
    provider: str
    user_id: str
    nonce: str
    expires_at: datetime


class ConnectionStatus(BaseModel):
    """Public connection summary; never carries token material."""

    provider: str
    display_name: str
    connected: bool = False
    expired: bool = False
    has_refresh_token: bool = False
    scopes: List[str] = Field(default_factory=list)
    token_expiry: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CallbackOutcome(BaseModel):
    """Terminal signal of the callback handler, independent of transport."""

    success: bool
    provider: Optional[str] = None
    message: str = ""
    code: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Normalized provider data
# ═══════════════════════════════════════════════════════════════════════════════


class NormalizedMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    thread_id: Optional[str] = None
    subject: str = "No Subject"
    sender: str = Field("Unknown", alias="from")
    date: str = ""
    snippet: str = ""
    body: str = ""


class NormalizedAnnouncement(BaseModel):
    id: str
    course_id: str
    course_name: str = ""
    text: str = ""
    creation_time: Optional[str] = None
    update_time: Optional[str] = None
    creator_user_id: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# API request bodies
# ═══════════════════════════════════════════════════════════════════════════════


class StartRequest(BaseModel):
    provider: str
