"""
Provider table — everything that differs between Gmail and Classroom.

The initiator, refresher and OAuth client are provider-agnostic; they read
scopes, authorization quirks and the data-API service name from here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Tuple

from connectors.errors import UnknownProviderError


class Provider(str, Enum):
    GMAIL = "gmail"
    CLASSROOM = "classroom"


# access_type=offline asks for a refresh token; prompt=consent forces Google
# to issue one again on every authorization, not only the first.
_OFFLINE_CONSENT: Mapping[str, str] = {"access_type": "offline", "prompt": "consent"}


@dataclass(frozen=True)
class ProviderProfile:
    provider: Provider
    display_name: str
    scopes: Tuple[str, ...]
    api_name: str
    api_version: str
    auth_params: Mapping[str, str] = field(default_factory=lambda: dict(_OFFLINE_CONSENT))

    @property
    def name(self) -> str:
        return self.provider.value

    @property
    def scope_string(self) -> str:
        return " ".join(self.scopes)


PROVIDERS: Dict[Provider, ProviderProfile] = {
    Provider.GMAIL: ProviderProfile(
        provider=Provider.GMAIL,
        display_name="Gmail",
        scopes=("https://www.googleapis.com/auth/gmail.readonly",),
        api_name="gmail",
        api_version="v1",
    ),
    Provider.CLASSROOM: ProviderProfile(
        provider=Provider.CLASSROOM,
        display_name="Google Classroom",
        scopes=(
            "https://www.googleapis.com/auth/classroom.courses.readonly",
            "https://www.googleapis.com/auth/classroom.announcements.readonly",
        ),
        api_name="classroom",
        api_version="v1",
    ),
}


def get_profile(provider: str | Provider) -> ProviderProfile:
    """Look up a provider profile; raises ``UnknownProviderError``."""
    try:
        return PROVIDERS[Provider(provider)]
    except ValueError:
        raise UnknownProviderError(f"Unknown provider '{provider}'") from None
