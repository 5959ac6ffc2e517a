# scripts/run_scheduler.py
from __future__ import annotations

import asyncio
import logging

from app.config import settings
from app.db import engine
from app.jobs.scheduler import build_scheduler, run_cleanup
from app.models import Base

log = logging.getLogger("pigewatch.scheduler")


def _quiet_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s:%(name)s:%(message)s",
    )
    for noisy in ("httpx", "apscheduler", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def main() -> None:
    _quiet_logging()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # start from a clean store instead of waiting a full cleanup interval
    await run_cleanup()

    scheduler = build_scheduler()
    scheduler.start()
    log.info(
        "Scheduler started (sync every %d min, cleanup every %d min)",
        settings.SCHED_SYNC_INTERVAL_MINUTES,
        settings.SCHED_CLEAN_INTERVAL_MINUTES,
    )

    try:
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, asyncio.CancelledError):
        scheduler.shutdown()
        log.info("Scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
