"""
Outlook Meeting Sync — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import get_sync_trigger, get_token_store
from api.middleware import register_middleware
from api.routes import router as api_router
from config.settings import config
from connectors.registry import ConnectorRegistry
from connectors.routes import router as connectors_router
from database.session import create_tables, dispose_engine
from sync.scheduler import AutoSyncScheduler

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "asyncio"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Outlook Meeting Sync",
        version="1.0.0",
        description="Imports upcoming Outlook calendar events as portal meetings.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)

    # Routes
    app.include_router(api_router, prefix="/api/v1")
    app.include_router(connectors_router, prefix="/api/v1/connectors")

    @app.on_event("startup")
    async def on_startup():
        await create_tables()

        configured = ConnectorRegistry().list_configured()
        if not configured:
            logger.warning("No Microsoft client id/secret configured — connecting accounts is disabled")

        if config.auto_sync_enabled:
            scheduler = AutoSyncScheduler(
                get_sync_trigger(),
                get_token_store().list_connected_users,
                config.auto_sync_interval_seconds,
            )
            scheduler.start()
            app.state.scheduler = scheduler

        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            await scheduler.stop()
        await dispose_engine()

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
