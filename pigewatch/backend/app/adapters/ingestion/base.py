# app/adapters/ingestion/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from ...models import ListingSource


@dataclass(frozen=True)
class RawListing:
    payload: dict[str, Any]
    source: ListingSource
    source_ref: str | None = None


@dataclass
class SyncFilters:
    """Provider-agnostic filters used by the sync job."""

    postal_codes: list[str] = field(default_factory=list)
    city: str | None = None
    price_min: int | None = None
    price_max: int | None = None
    surface_min: int | None = None
    surface_max: int | None = None
    rooms: int | None = None
    property_kind: str | None = None  # appartement|maison|studio|loft|penthouse
    transaction_types: list[str] | None = None  # sale|rental


class IngestionProvider(Protocol):
    source: ListingSource

    async def fetch(self, filters: SyncFilters, *, limit: int) -> list[RawListing]:
        raise NotImplementedError
