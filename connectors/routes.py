"""
Connector API routes — OAuth start/callback, connections, provider data.

Route prefix: /api/v1
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from api.dependencies import (
    ConnectorServices,
    get_classroom_fetcher,
    get_flow,
    get_gmail_fetcher,
    get_services,
)
from auth.dependencies import get_current_user_id, get_optional_bearer_token, get_settings
from auth.jwt import verify_session_token
from config.settings import Settings
from connectors.callback_page import render_callback_page
from connectors.errors import ConnectorError, NotConnectedError
from connectors.fetchers import ClassroomFetcher, GmailFetcher
from connectors.flow import ConnectionFlow
from connectors.providers import PROVIDERS, get_profile
from connectors.schemas import CallbackOutcome, StartRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connectors"])


# ── OAuth flow ─────────────────────────────────────────────────────────


@router.get("/oauth/providers")
async def list_providers(
    services: ConnectorServices = Depends(get_services),
) -> List[Dict[str, Any]]:
    """
    List the supported providers and whether OAuth is configured.
    No auth required — used by the frontend to render connect buttons.
    """
    configured = services.oauth_client.is_configured()
    return [
        {
            "provider": profile.name,
            "display_name": profile.display_name,
            "scopes": list(profile.scopes),
            "configured": configured,
        }
        for profile in PROVIDERS.values()
    ]


@router.post("/oauth/start")
async def start_oauth(
    req: StartRequest,
    user_id: str = Depends(get_current_user_id),
    flow: ConnectionFlow = Depends(get_flow),
) -> Dict[str, str]:
    """
    Build the consent URL for a provider.

    The frontend opens it in a popup and listens for the callback page's
    postMessage.
    """
    auth_url = flow.start(req.provider, user_id)
    return {"authUrl": auth_url, "provider": get_profile(req.provider).name}


@router.get("/oauth/callback", response_class=HTMLResponse)
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    bearer_token: Optional[str] = Depends(get_optional_bearer_token),
    flow: ConnectionFlow = Depends(get_flow),
    settings: Settings = Depends(get_settings),
) -> HTMLResponse:
    """
    OAuth callback — Google redirects here after consent.

    Always answers with the popup page, success or failure.
    """
    try:
        session_user_id = (
            verify_session_token(bearer_token, secret=settings.session_token_secret)
            if bearer_token
            else None
        )
        outcome = await flow.complete(
            code=code, state=state, error=error, session_user_id=session_user_id
        )
    except ConnectorError as exc:
        outcome = CallbackOutcome(success=False, message=exc.message, code=exc.code)
    except Exception:
        logger.exception("Unexpected error in OAuth callback")
        outcome = CallbackOutcome(
            success=False,
            message="The connection could not be saved. Please try again.",
            code="internal_error",
        )
    return HTMLResponse(content=render_callback_page(outcome), status_code=200)


# ── Connections ────────────────────────────────────────────────────────


@router.get("/oauth/connections")
async def list_connections(
    user_id: str = Depends(get_current_user_id),
    flow: ConnectionFlow = Depends(get_flow),
) -> Dict[str, Any]:
    """Connection status per provider for the authenticated user (no tokens)."""
    statuses = await flow.connection_status(user_id)
    return {"connections": [s.model_dump(mode="json") for s in statuses]}


@router.delete("/oauth/connections/{provider}")
async def delete_connection(
    provider: str,
    revoke: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    flow: ConnectionFlow = Depends(get_flow),
) -> Dict[str, Any]:
    """Forget the stored credential; ``revoke=true`` also withdraws consent at Google."""
    deleted = await flow.disconnect(user_id, provider, revoke=revoke)
    if not deleted:
        raise NotConnectedError(f"{get_profile(provider).display_name} is not connected")
    return {"status": "disconnected", "provider": get_profile(provider).name}


# ── Provider data ──────────────────────────────────────────────────────


@router.get("/gmail/messages")
async def gmail_messages(
    user_id: str = Depends(get_current_user_id),
    fetcher: GmailFetcher = Depends(get_gmail_fetcher),
) -> Dict[str, Any]:
    """Most recent inbox messages, normalized."""
    messages = await fetcher.fetch_messages(user_id)
    return {"messages": [m.model_dump(by_alias=True) for m in messages]}


@router.get("/classroom/announcements")
async def classroom_announcements(
    user_id: str = Depends(get_current_user_id),
    fetcher: ClassroomFetcher = Depends(get_classroom_fetcher),
) -> Dict[str, Any]:
    """Recent announcements from the user's first active courses."""
    announcements = await fetcher.fetch_announcements(user_id)
    return {"announcements": [a.model_dump() for a in announcements]}
