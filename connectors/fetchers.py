"""
Authenticated fetchers — one bounded page of Gmail messages or Classroom
announcements, normalized for downstream consumers.

Architecture:
  • A usable token comes from ``TokenRefresher`` (which refreshes expired
    tokens); fetchers never write to the credential store themselves.
  • ``googleapiclient`` services are built from ``Credentials(token=...)``.
  • All sync ``googleapiclient`` calls are offloaded with
    ``asyncio.to_thread()`` and bounded by ``provider_timeout_seconds``.
  • ``HttpError`` is translated into the connector error taxonomy.
"""

from __future__ import annotations

import asyncio
import base64
import html
import json
import logging
from typing import Any, Dict, List, Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config.settings import Settings
from connectors.errors import (
    ApiNotEnabledError,
    ConnectorError,
    FetchError,
    ProviderTimeoutError,
    ReauthorizationRequired,
)
from connectors.providers import PROVIDERS, Provider, ProviderProfile
from connectors.schemas import NormalizedAnnouncement, NormalizedMessage
from connectors.token_manager import TokenRefresher

logger = logging.getLogger(__name__)

# Markers Google uses when an API is switched off for the client's project.
_API_DISABLED_REASONS = {"accessNotConfigured", "SERVICE_DISABLED"}
_API_DISABLED_PHRASES = ("has not been used", "is disabled")


# ── Error translation ────────────────────────────────────────────────────


def _error_payload(exc: HttpError) -> Dict[str, Any]:
    try:
        payload = json.loads(exc.content.decode("utf-8"))
    except (ValueError, AttributeError):
        return {}
    error = payload.get("error") if isinstance(payload, dict) else None
    return error if isinstance(error, dict) else {}


def _is_api_disabled(error: Dict[str, Any]) -> bool:
    reasons = {error.get("status", "")}
    for key in ("errors", "details"):
        reasons.update(
            item.get("reason", "") for item in error.get(key, []) if isinstance(item, dict)
        )
    if reasons & _API_DISABLED_REASONS:
        return True
    message = str(error.get("message", "")).lower()
    return any(phrase in message for phrase in _API_DISABLED_PHRASES)


def translate_http_error(exc: HttpError, profile: ProviderProfile) -> ConnectorError:
    """Map a googleapiclient ``HttpError`` onto the connector taxonomy."""
    status = int(getattr(exc.resp, "status", 0) or 0)
    error = _error_payload(exc)
    message = error.get("message") or getattr(exc, "reason", "") or "unknown error"

    if status == 401:
        return ReauthorizationRequired(
            f"{profile.display_name} rejected the access token. Please reconnect your account."
        )
    if status == 403 and _is_api_disabled(error):
        return ApiNotEnabledError(
            f"The {profile.display_name} API is not enabled for this project. "
            f"Enable it in the Google Cloud Console: "
            f"https://console.cloud.google.com/apis/library/{profile.api_name}.googleapis.com",
            provider_status=status,
        )
    return FetchError(
        f"{profile.display_name} API error ({status}): {message}",
        provider_status=status,
    )


# ── Shared plumbing ──────────────────────────────────────────────────────


class GoogleApiFetcher:
    """Token resolution, service construction and guarded execution."""

    profile: ProviderProfile

    def __init__(self, refresher: TokenRefresher, settings: Settings) -> None:
        self._refresher = refresher
        self._settings = settings
        self._timeout = settings.provider_timeout_seconds

    async def _access_token(self, user_id: str) -> str:
        return await self._refresher.get_access_token(user_id, self.profile.name)

    async def _service(self, token: str) -> Any:
        # Discovery documents ship with the client; building does no network I/O.
        return await asyncio.to_thread(
            build,
            self.profile.api_name,
            self.profile.api_version,
            credentials=Credentials(token=token),
            cache_discovery=False,
        )

    async def _execute(self, request: Any) -> Dict[str, Any]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(request.execute), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(
                f"{self.profile.display_name} did not respond within {self._timeout:g}s"
            ) from exc
        except HttpError as exc:
            raise translate_http_error(exc, self.profile) from exc


# ── Gmail ────────────────────────────────────────────────────────────────


def _decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _find_plain_text(part: Dict[str, Any]) -> Optional[str]:
    """Depth-first search for the first text/plain part with data."""
    if part.get("mimeType") == "text/plain" and part.get("body", {}).get("data"):
        return part["body"]["data"]
    for child in part.get("parts", []) or []:
        found = _find_plain_text(child)
        if found:
            return found
    return None


def extract_body(payload: Dict[str, Any]) -> str:
    """Plain-text body of a Gmail message payload ('' when there is none)."""
    if payload.get("parts"):
        data = _find_plain_text(payload)
    else:
        data = payload.get("body", {}).get("data")
    return _decode_base64url(data) if data else ""


def parse_message(msg: Dict[str, Any], body_max_chars: int) -> NormalizedMessage:
    """Extract the normalized fields from a Gmail API message resource."""
    payload = msg.get("payload", {}) or {}
    headers = {
        h.get("name", "").lower(): h.get("value", "")
        for h in payload.get("headers", []) or []
    }
    return NormalizedMessage(
        id=msg.get("id", ""),
        thread_id=msg.get("threadId"),
        subject=headers.get("subject") or "No Subject",
        sender=headers.get("from") or "Unknown",
        date=headers.get("date", ""),
        snippet=html.unescape(msg.get("snippet", "")),
        body=extract_body(payload)[:body_max_chars],
    )


class GmailFetcher(GoogleApiFetcher):
    profile = PROVIDERS[Provider.GMAIL]

    async def fetch_messages(
        self,
        user_id: str,
        *,
        max_results: Optional[int] = None,
    ) -> List[NormalizedMessage]:
        """The most recent INBOX messages, one detail call per message."""
        limit = max_results or self._settings.gmail_max_messages
        service = await self._service(await self._access_token(user_id))

        listing = await self._execute(
            service.users().messages().list(userId="me", labelIds=["INBOX"], maxResults=limit)
        )

        messages: List[NormalizedMessage] = []
        for meta in listing.get("messages", [])[:limit]:
            try:
                detail = await self._execute(
                    service.users().messages().get(userId="me", id=meta["id"], format="full")
                )
            except FetchError as exc:
                if exc.provider_status != 404:
                    raise
                logger.warning("Gmail message %s vanished before it could be read", meta["id"])
                continue
            messages.append(parse_message(detail, self._settings.gmail_body_max_chars))

        logger.info("Fetched %d Gmail messages for user %s", len(messages), user_id)
        return messages


# ── Classroom ────────────────────────────────────────────────────────────


def parse_announcement(item: Dict[str, Any], course: Dict[str, Any]) -> NormalizedAnnouncement:
    return NormalizedAnnouncement(
        id=item.get("id", ""),
        course_id=course.get("id", ""),
        course_name=course.get("name", ""),
        text=item.get("text", ""),
        creation_time=item.get("creationTime"),
        update_time=item.get("updateTime"),
        creator_user_id=item.get("creatorUserId"),
    )


class ClassroomFetcher(GoogleApiFetcher):
    profile = PROVIDERS[Provider.CLASSROOM]

    async def fetch_announcements(
        self,
        user_id: str,
        *,
        max_courses: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> List[NormalizedAnnouncement]:
        """
        Recent announcements from the user's first active courses.

        Per-course requests run concurrently, bounded by
        ``classroom_max_concurrency``; results keep course order.
        """
        max_courses = max_courses or self._settings.classroom_max_courses
        page_size = page_size or self._settings.classroom_announcements_page_size
        token = await self._access_token(user_id)
        service = await self._service(token)

        listing = await self._execute(service.courses().list(courseStates=["ACTIVE"]))
        courses = listing.get("courses", [])[:max_courses]

        semaphore = asyncio.Semaphore(self._settings.classroom_max_concurrency)

        async def _course_announcements(course: Dict[str, Any]) -> List[NormalizedAnnouncement]:
            async with semaphore:
                # httplib2 transports are not thread-safe; one service per task.
                course_service = await self._service(token)
                try:
                    data = await self._execute(
                        course_service.courses().announcements().list(
                            courseId=course["id"], pageSize=page_size
                        )
                    )
                except FetchError as exc:
                    logger.warning(
                        "Skipping announcements for course %s: %s", course.get("id"), exc.message
                    )
                    return []
            return [parse_announcement(a, course) for a in data.get("announcements", [])]

        tasks = [asyncio.create_task(_course_announcements(c)) for c in courses]
        try:
            per_course = await asyncio.gather(*tasks)
        except BaseException:
            # One course failed the whole call; stop the rest.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        announcements = [a for batch in per_course for a in batch]

        logger.info(
            "Fetched %d Classroom announcements from %d courses for user %s",
            len(announcements), len(courses), user_id,
        )
        return announcements
