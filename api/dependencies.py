"""
FastAPI dependencies (shared across routes).

Connector services are built once per application and kept on
``app.state`` so that the refresher's per-credential locks are shared by
every request the process serves.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import Settings
from connectors.encryption import TokenCipher
from connectors.fetchers import ClassroomFetcher, GmailFetcher
from connectors.flow import ConnectionFlow
from connectors.oauth_client import GoogleOAuthClient
from connectors.store import CredentialStore
from connectors.token_manager import TokenRefresher


@dataclass(frozen=True)
class ConnectorServices:
    settings: Settings
    store: CredentialStore
    oauth_client: GoogleOAuthClient
    refresher: TokenRefresher
    flow: ConnectionFlow
    gmail: GmailFetcher
    classroom: ClassroomFetcher


def build_connector_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ConnectorServices:
    store = CredentialStore(session_factory, TokenCipher(settings.token_encryption_key))
    oauth_client = GoogleOAuthClient(settings, transport=http_transport)
    refresher = TokenRefresher(store, oauth_client, settings)
    return ConnectorServices(
        settings=settings,
        store=store,
        oauth_client=oauth_client,
        refresher=refresher,
        flow=ConnectionFlow(store, oauth_client, settings),
        gmail=GmailFetcher(refresher, settings),
        classroom=ClassroomFetcher(refresher, settings),
    )


def get_services(request: Request) -> ConnectorServices:
    return request.app.state.connectors


def get_flow(services: ConnectorServices = Depends(get_services)) -> ConnectionFlow:
    return services.flow


def get_gmail_fetcher(services: ConnectorServices = Depends(get_services)) -> GmailFetcher:
    return services.gmail


def get_classroom_fetcher(
    services: ConnectorServices = Depends(get_services),
) -> ClassroomFetcher:
    return services.classroom
