# scripts/smoke_sync_local.py
import asyncio
import logging
import os

from app.adapters.ingestion.base import SyncFilters
from app.db import async_session
from app.service_layer.use_cases.sync import build_provider, sync_listings


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)

    provider = build_provider(os.environ.get("PROVIDER", "aggregator"))
    filters = SyncFilters(
        postal_codes=[cp for cp in os.environ.get("POSTAL_CODES", "75011").split(",") if cp],
        city=os.environ.get("CITY") or None,
        price_max=int(os.environ["MAX_PRICE"]) if os.environ.get("MAX_PRICE") else None,
    )
    async with async_session() as session:
        res = await sync_listings(session, provider, filters, limit=int(os.environ.get("LIMIT", "100")))
        await session.commit()
        print(res.as_dict())


if __name__ == "__main__":
    asyncio.run(main())
