# app/service_layer/use_cases/piges.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...adapters.clients.aggregator import AggregatorClient, AggregatorPage, AggregatorSearchParams
from ...adapters.repos.listings import ListingRepository
from ...config import settings
from ...domain.errors import FilterValidationError, ProviderError
from ...domain.harmonize import HarmonizationFilters, harmonize
from ...domain.locations import build_locations
from ...domain.normalize import NormalizedListing, infer_city, normalize_aggregator_ad
from ...domain.states import filter_by_state
from ...domain.vendor import classify_vendor
from ...models import ListingSource
from ..throttle import throttle_user

log = logging.getLogger(__name__)


class PigeFilters(BaseModel):
    city: str | None = None  # informational; the provider searches by postal code
    postal_code: str | None = None  # single code, older clients
    postal_codes: list[str] | None = None
    min_price: int | None = None
    max_price: int | None = None
    min_surface: int | None = None
    max_surface: int | None = None
    min_rooms: int | None = None
    max_rooms: int | None = None
    type: Literal["vente", "location", "all", ""] | None = None
    seller_type: Literal["all", "pro", "particulier"] = "all"
    sources: list[str] | None = None  # leboncoin, seloger, ...
    states: list[str] | None = None  # ancien|neuf|recent|vefa|travaux
    # strict postal-code match, invalid/stale out, cross-platform dedup
    clean: bool = False


class SearchClient(Protocol):
    async def search(self, params: AggregatorSearchParams) -> AggregatorPage: ...


@dataclass
class PigeSearchResult:
    listings: list[NormalizedListing] = field(default_factory=list)
    total: int = 0
    pages: int = 0
    has_more: bool = False
    partial: bool = False
    errors: list[str] = field(default_factory=list)
    created: int | None = None
    duplicates: int | None = None


def postal_codes_of(filters: PigeFilters) -> list[str]:
    if filters.postal_codes:
        return list(filters.postal_codes)
    if filters.postal_code and filters.postal_code.strip():
        return [filters.postal_code]
    return []


def validate_filters(filters: PigeFilters) -> None:
    if not [cp for cp in postal_codes_of(filters) if cp and cp.strip()]:
        raise FilterValidationError("At least one postal code is required.")

    for lo, hi, what in (
        (filters.min_price, filters.max_price, "price"),
        (filters.min_surface, filters.max_surface, "surface"),
        (filters.min_rooms, filters.max_rooms, "rooms"),
    ):
        if lo is not None and hi is not None and lo > hi:
            raise FilterValidationError(f"Minimum {what} cannot be greater than maximum {what}.")


def map_type(t: str | None) -> list[str]:
    if t == "vente":
        return ["sale"]
    if t == "location":
        return ["rental"]
    return ["sale", "rental"]


def _origin_matches(origin: str | None, sources: list[str]) -> bool:
    if not origin:
        return False
    return any(s == origin or s in origin or origin in s for s in sources)


def _filter_page(
    pairs: list[tuple[NormalizedListing, dict[str, Any]]],
    filters: PigeFilters,
) -> list[tuple[NormalizedListing, dict[str, Any]]]:
    if filters.sources:
        wanted = [s.strip().lower() for s in filters.sources if s and s.strip()]
        pairs = [(n, raw) for n, raw in pairs if _origin_matches(n.origin, wanted)]

    if filters.seller_type == "pro":
        pairs = [(n, raw) for n, raw in pairs if n.is_pro]
    elif filters.seller_type == "particulier":
        pairs = [(n, raw) for n, raw in pairs if not n.is_pro]

    if filters.states:
        kept = {id(n) for n in filter_by_state([n for n, _ in pairs], filters.states)}
        pairs = [(n, raw) for n, raw in pairs if id(n) in kept]

    return pairs


async def _throttle(session: AsyncSession, user_id: str) -> None:
    try:
        await throttle_user(session, user_id, settings.PIGE_MAX_SCANS_PER_HOUR)
    except SQLAlchemyError as e:
        log.warning("throttle unavailable for user=%s, continuing unthrottled: %r", user_id, e)
        # the failed flush poisons the transaction; nothing else is pending yet
        await session.rollback()


async def run_pige_search(
    session: AsyncSession,
    filters: PigeFilters,
    user_id: str,
    client: SearchClient | None = None,
    *,
    persist: bool = False,
) -> PigeSearchResult:
    """
    One "pige": paginated search on the aggregation API for the user's
    filters, capped by page size, page count and total results.

    A failure on the first page propagates. A failure on a later page keeps
    what was already fetched and flags the result as partial.
    """
    validate_filters(filters)
    locations = build_locations(postal_codes_of(filters))
    await _throttle(session, user_id)

    client = client or AggregatorClient()
    page_size = settings.PIGE_PAGE_SIZE
    max_pages = settings.PIGE_MAX_PAGES
    max_total = settings.PIGE_MAX_TOTAL_RESULTS

    types = map_type(filters.type)
    log.info("pige search user=%s locations=%s types=%s", user_id, locations, types)

    result = PigeSearchResult()
    collected: list[tuple[NormalizedListing, dict[str, Any]]] = []
    page = 1
    has_more = True

    while has_more and page <= max_pages and len(collected) < max_total:
        try:
            resp = await client.search(
                AggregatorSearchParams(
                    page=page,
                    max_length=page_size,
                    types=types,
                    locations=locations,
                    price_min=filters.min_price,
                    price_max=filters.max_price,
                    surface_min=filters.min_surface,
                    surface_max=filters.max_surface,
                    rooms_min=filters.min_rooms,
                    rooms_max=filters.max_rooms,
                    with_count=False,
                )
            )
        except ProviderError as e:
            if page == 1:
                raise
            log.warning("pige page %d failed, keeping %d results: %s", page, len(collected), e)
            result.partial = True
            result.errors.append(f"page {page}: {e}")
            has_more = False
            break

        pairs = [(normalize_aggregator_ad(ad), ad) for ad in resp.ads]
        pairs = _filter_page(pairs, filters)
        collected.extend(pairs)
        log.info("pige page %d: %d ads, %d kept (total %d)", page, len(resp.ads), len(pairs), len(collected))

        has_more = len(resp.ads) >= page_size and len(collected) < max_total
        page += 1

    collected = collected[:max_total]
    listings = [n for n, _ in collected]

    if filters.clean:
        listings = harmonize(
            listings,
            HarmonizationFilters(postal_codes=postal_codes_of(filters)),
        )
        kept = {id(n) for n in listings}
        collected = [(n, raw) for n, raw in collected if id(n) in kept]

    result.listings = listings
    result.total = len(listings)
    result.pages = page - 1
    result.has_more = has_more

    if persist:
        result.created, result.duplicates = await _persist(session, collected)

    log.info(
        "pige search done user=%s results=%d pages=%d partial=%s",
        user_id,
        result.total,
        result.pages,
        result.partial,
    )
    return result


async def _persist(
    session: AsyncSession,
    pairs: list[tuple[NormalizedListing, dict[str, Any]]],
) -> tuple[int, int]:
    repo = ListingRepository(session)
    created = duplicates = 0

    for n, raw in pairs:
        if not n.url:
            continue
        n.city = infer_city(n.city, n.postal_code)
        vendor = await classify_vendor(n, raw)
        _, was_created = await repo.upsert(n, source=ListingSource.aggregator, vendor_type=vendor)
        if was_created:
            created += 1
        else:
            duplicates += 1

    return created, duplicates
