# app/adapters/ingestion/classifieds.py
from __future__ import annotations

from ..clients.classifieds import ClassifiedsScraper, ClassifiedsSearchParams
from ...domain.parsing import extract_classifieds_id
from ...models import ListingSource
from .base import IngestionProvider, RawListing, SyncFilters


class ClassifiedsProvider(IngestionProvider):
    source = ListingSource.classifieds

    def __init__(self, scraper: ClassifiedsScraper | None = None) -> None:
        self.scraper = scraper or ClassifiedsScraper()

    async def fetch(self, filters: SyncFilters, *, limit: int) -> list[RawListing]:
        # the site wants a single location string; city wins over postal codes
        location = filters.city or ",".join(filters.postal_codes)
        cards = await self.scraper.scrape(
            ClassifiedsSearchParams(
                location=location,
                price_min=filters.price_min,
                price_max=filters.price_max,
                surface_min=filters.surface_min,
                surface_max=filters.surface_max,
                property_kind=filters.property_kind,
                rooms=filters.rooms,
            )
        )
        return [
            RawListing(payload=card, source=self.source, source_ref=extract_classifieds_id(card.get("url") or ""))
            for card in cards[:limit]
        ]
