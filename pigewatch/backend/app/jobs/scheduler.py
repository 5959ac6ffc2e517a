# app/jobs/scheduler.py
from __future__ import annotations

import json
import logging
from datetime import datetime

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError

from ..adapters.ingestion.aggregator import AggregatorProvider
from ..adapters.ingestion.base import SyncFilters
from ..adapters.repos.listings import SavedSearchRepository
from ..config import settings
from ..db import async_session
from ..domain.errors import FilterValidationError, ProviderError
from ..models import SavedSearch
from ..service_layer.jobruns import finish_job_fail, finish_job_success, start_job
from ..service_layer.use_cases.piges import PigeFilters, map_type, postal_codes_of
from ..service_layer.use_cases.sync import clean_old_listings, sync_listings

log = logging.getLogger(__name__)


def sync_filters_for(search: SavedSearch) -> SyncFilters:
    f = PigeFilters.model_validate(json.loads(search.filters_json or "{}"))
    return SyncFilters(
        postal_codes=[cp.strip() for cp in postal_codes_of(f) if cp and cp.strip()],
        city=f.city,
        price_min=f.min_price,
        price_max=f.max_price,
        surface_min=f.min_surface,
        surface_max=f.max_surface,
        rooms=f.min_rooms,
        transaction_types=map_type(f.type),
    )


async def run_saved_searches_sync() -> dict[str, int]:
    """
    Sync every saved search into the store. Scheduled runs don't count
    against the owner's hourly scan quota.
    """
    async with async_session() as session:
        searches = await SavedSearchRepository(session).list_all()
        jr = await start_job(session, "sync_saved_searches")
        await session.commit()

        provider = AggregatorProvider()
        totals = {"searches": 0, "new": 0, "duplicates": 0, "errors": 0, "failed_searches": 0}

        for s in searches:
            try:
                filters = sync_filters_for(s)
            except (ValueError, ValidationError) as e:
                log.warning("saved search %s has unreadable filters: %r", s.id, e)
                totals["failed_searches"] += 1
                continue
            if not filters.postal_codes:
                continue

            try:
                res = await sync_listings(session, provider, filters, limit=settings.PIGE_MAX_TOTAL_RESULTS)
            except (FilterValidationError, ProviderError, httpx.HTTPError) as e:
                log.warning("saved search %s sync failed: %s", s.id, e)
                totals["failed_searches"] += 1
                continue

            s.last_run_at = datetime.utcnow()
            await session.commit()
            totals["searches"] += 1
            totals["new"] += res.new
            totals["duplicates"] += res.duplicates
            totals["errors"] += res.errors

        if searches and totals["failed_searches"] == len(searches):
            await finish_job_fail(session, jr, RuntimeError("every saved search failed"))
        else:
            await finish_job_success(session, jr, totals)
        await session.commit()

    log.info("saved searches sync: %s", totals)
    return totals


async def run_cleanup() -> dict[str, int]:
    async with async_session() as session:
        jr = await start_job(session, "clean")
        res = await clean_old_listings(session)
        await finish_job_success(session, jr, res)
        await session.commit()
    return res


def build_scheduler() -> AsyncIOScheduler:
    sched = AsyncIOScheduler()

    # coroutine jobs run on the scheduler's event loop
    sched.add_job(
        run_saved_searches_sync,
        "interval",
        minutes=settings.SCHED_SYNC_INTERVAL_MINUTES,
        id="sync_saved_searches",
        max_instances=1,
        coalesce=True,
    )
    sched.add_job(
        run_cleanup,
        "interval",
        minutes=settings.SCHED_CLEAN_INTERVAL_MINUTES,
        id="clean",
        max_instances=1,
        coalesce=True,
    )

    return sched
