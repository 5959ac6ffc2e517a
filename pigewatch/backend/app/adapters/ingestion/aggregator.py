# app/adapters/ingestion/aggregator.py
from __future__ import annotations

import logging

from ..clients.aggregator import AggregatorClient, AggregatorSearchParams
from ...config import settings
from ...domain.locations import build_locations
from ...models import ListingSource
from .base import IngestionProvider, RawListing, SyncFilters

log = logging.getLogger(__name__)


class AggregatorProvider(IngestionProvider):
    source = ListingSource.aggregator

    def __init__(self, client: AggregatorClient | None = None) -> None:
        self._client = client or AggregatorClient()

    async def fetch(self, filters: SyncFilters, *, limit: int) -> list[RawListing]:
        page_size = settings.PIGE_PAGE_SIZE
        locations = build_locations(filters.postal_codes) if filters.postal_codes else None

        out: list[RawListing] = []
        page = 1
        while len(out) < limit and page <= 100:
            result = await self._client.search(
                AggregatorSearchParams(
                    page=page,
                    max_length=page_size,
                    types=filters.transaction_types,
                    price_min=filters.price_min,
                    price_max=filters.price_max,
                    surface_min=filters.surface_min,
                    surface_max=filters.surface_max,
                    rooms_min=filters.rooms,
                    locations=locations,
                )
            )
            for ad in result.ads:
                out.append(RawListing(payload=ad, source=self.source, source_ref=str(ad.get("uniqueId") or "")))
            if len(result.ads) < page_size:
                break
            page += 1

        log.info("aggregator provider fetched %d ads over %d page(s)", len(out), page)
        return out[:limit]
