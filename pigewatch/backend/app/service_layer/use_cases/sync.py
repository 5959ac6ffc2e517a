# app/service_layer/use_cases/sync.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...adapters.ingestion.aggregator import AggregatorProvider
from ...adapters.ingestion.base import IngestionProvider, RawListing, SyncFilters
from ...adapters.ingestion.classifieds import ClassifiedsProvider
from ...adapters.repos.listings import ListingRepository
from ...config import settings
from ...domain.normalize import NormalizedListing, infer_city, normalize_aggregator_ad, normalize_scraped_ad
from ...domain.vendor import OwnerLookup, classify_vendor
from ...models import ListingSource
from ..throttle import purge_old_scans

log = logging.getLogger(__name__)


@dataclass
class SyncStats:
    average_price: float = 0.0
    average_surface: float = 0.0
    new_cities: list[str] = field(default_factory=list)


@dataclass
class SyncResult:
    new: int = 0
    duplicates: int = 0
    updated: int = 0
    errors: int = 0
    total_processed: int = 0
    stats: SyncStats = field(default_factory=SyncStats)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_provider(name: str) -> IngestionProvider:
    name = (name or "").strip().lower()
    if name == ListingSource.aggregator.value:
        return AggregatorProvider()
    if name == ListingSource.classifieds.value:
        return ClassifiedsProvider()
    raise ValueError(f"Unknown provider={name!r}. Use aggregator or classifieds.")


def _normalize(raw: RawListing, now: datetime) -> NormalizedListing:
    if raw.source == ListingSource.classifieds:
        return normalize_scraped_ad(raw.payload, now=now)
    return normalize_aggregator_ad(raw.payload)


def compute_stats(listings: list[NormalizedListing]) -> SyncStats:
    prices = [n.price for n in listings if n.price and n.price > 0]
    surfaces = [n.surface for n in listings if n.surface and n.surface > 0]
    cities = sorted({n.city for n in listings if n.city})
    return SyncStats(
        average_price=round(sum(prices) / len(prices)) if prices else 0.0,
        average_surface=round(sum(surfaces) / len(surfaces)) if surfaces else 0.0,
        new_cities=cities,
    )


async def sync_listings(
    session: AsyncSession,
    provider: IngestionProvider,
    filters: SyncFilters | None = None,
    *,
    limit: int | None = None,
    update_existing: bool = False,
    now: datetime | None = None,
) -> SyncResult:
    """
    Pull listings from one provider into the store.

    A provider failure aborts the sync. A record that fails to normalize or
    save is counted in `errors` and the batch goes on.
    """
    filters = filters or SyncFilters()
    limit = limit or settings.SYNC_DEFAULT_LIMIT
    now = now or datetime.utcnow()

    raws = await provider.fetch(filters, limit=limit)
    log.info("sync %s: %d raw listings", provider.source.value, len(raws))

    owner_lookup: OwnerLookup | None = None
    scraper = getattr(provider, "scraper", None)
    if scraper is not None:
        owner_lookup = scraper.owner_type

    repo = ListingRepository(session)
    result = SyncResult(total_processed=len(raws))
    created: list[NormalizedListing] = []

    for raw in raws:
        try:
            n = _normalize(raw, now)
            if not n.url:
                result.errors += 1
                continue
            n.city = infer_city(n.city, n.postal_code, fallback=filters.city)
            if not n.city:
                log.info("listing without city: %r (cp=%s)", n.title[:50], n.postal_code)

            vendor = await classify_vendor(n, raw.payload, owner_lookup=owner_lookup)
            _, was_created = await repo.upsert(
                n,
                source=raw.source,
                vendor_type=vendor,
                update_existing=update_existing,
                now=now,
            )
        except (SQLAlchemyError, ValueError, TypeError) as e:
            result.errors += 1
            log.warning("sync %s: record %s failed: %r", provider.source.value, raw.source_ref, e)
            continue

        if was_created:
            result.new += 1
            created.append(n)
        elif update_existing:
            result.updated += 1
        else:
            result.duplicates += 1

    result.stats = compute_stats(created)
    log.info(
        "sync %s done: new=%d duplicates=%d updated=%d errors=%d",
        provider.source.value,
        result.new,
        result.duplicates,
        result.updated,
        result.errors,
    )
    return result


async def clean_old_listings(
    session: AsyncSession,
    days_to_keep: int | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    now = now or datetime.utcnow()
    days = settings.LISTING_RETENTION_DAYS if days_to_keep is None else days_to_keep
    cutoff = now - timedelta(days=days)

    deleted = await ListingRepository(session).delete_older_than(cutoff)
    scans = await purge_old_scans(session, now=now)
    log.info("cleanup: %d listings older than %d days, %d scan counters", deleted, days, scans)
    return {"deleted_listings": deleted, "deleted_scan_counters": scans}
