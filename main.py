"""
StudyDesk connections service — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.dependencies import build_connector_services
from api.middleware import register_middleware
from auth.routes import router as auth_router
from config.settings import Settings, config
from connectors.providers import PROVIDERS
from connectors.routes import router as connectors_router
from database.session import async_session_factory, init_models

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "googleapiclient", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or config
    app = FastAPI(
        title="StudyDesk Connections",
        version="1.0.0",
        description="Gmail and Google Classroom OAuth connections with transparent token refresh.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)

    app.state.settings = settings
    session_factory = session_factory or async_session_factory
    app.state.session_factory = session_factory
    app.state.connectors = build_connector_services(settings, session_factory, http_transport)

    # Routes
    app.include_router(auth_router, prefix="/api/v1/auth")
    app.include_router(connectors_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup():
        logger.info("Creating missing tables…")
        await init_models(session_factory.kw.get("bind"))

        if app.state.connectors.oauth_client.is_configured():
            logger.info(
                "OAuth providers ready: %s (callback %s)",
                ", ".join(p.name for p in PROVIDERS.values()),
                settings.oauth_redirect_uri,
            )
        else:
            logger.warning(
                "Google OAuth not configured (missing client_id/secret) — connect flows will fail"
            )

        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
