# app/entrypoints/fastapi_app.py
from __future__ import annotations

import logging

from fastapi import FastAPI

from ..config import settings
from ..db import engine
from ..models import Base
from .api.routers import debug, health, jobs, listings, piges, reports, searches, tags


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(levelname)s:%(name)s:%(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="pigewatch - listing monitor")

    @app.on_event("startup")
    async def _startup() -> None:
        # Single place where DB tables are created in dev.
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # Routers
    app.include_router(health.router)
    app.include_router(debug.router)
    app.include_router(piges.router)
    app.include_router(listings.router)
    app.include_router(tags.router)
    app.include_router(searches.router)
    app.include_router(jobs.router)
    app.include_router(reports.router)

    return app
