# app/domain/harmonize.py
"""
Batch cleanup of provider results so counts match what the provider's own UI
shows: strict postal-code match, invalid/stale ads out, seller filter, and
cross-platform duplicates merged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from .normalize import DEFAULT_TITLE, NormalizedListing
from .parsing import fold_text, pad_postal_code
from .states import filter_by_state

log = logging.getLogger(__name__)

MIN_PRICE = 5_000
MAX_PRICE = 100_000_000
MIN_SURFACE = 8
STALE_AFTER = timedelta(days=730)

SURFACE_TOLERANCE_M2 = 2
PRICE_TOLERANCE_PCT = 5.0

PLACEHOLDER_PUBLISHERS: frozenset[str] = frozenset(
    {
        "non spécifié", "non specifie", "non spécifiée", "non specifiee",
        "non renseigné", "non renseigne", "inconnu", "inconnue", "n/a", "na", "",
    }
)


@dataclass
class HarmonizationFilters:
    postal_codes: list[str] | None = None
    states: list[str] | None = None
    vendor: str | None = None  # all|pro|particulier


def filter_by_postal_codes(listings: list[NormalizedListing], postal_codes: list[str] | None) -> list[NormalizedListing]:
    if not postal_codes:
        return listings
    wanted = {pad_postal_code(cp) for cp in postal_codes}
    return [ad for ad in listings if pad_postal_code(ad.postal_code) in wanted]


def is_valid(ad: NormalizedListing) -> bool:
    if ad.price is None or ad.price < MIN_PRICE or ad.price > MAX_PRICE:
        return False
    if ad.surface is not None and ad.surface < MIN_SURFACE:
        return False
    if not ad.title or not ad.title.strip() or ad.title == DEFAULT_TITLE:
        return False
    if (ad.publisher or "").strip().lower() in PLACEHOLDER_PUBLISHERS:
        return False
    if not (ad.city or "").strip() or not (ad.postal_code or "").strip():
        return False
    if ad.published_at is None:
        return False
    return True


def exclude_invalid(listings: list[NormalizedListing]) -> list[NormalizedListing]:
    return [ad for ad in listings if is_valid(ad)]


def exclude_stale(listings: list[NormalizedListing], *, now: datetime | None = None) -> list[NormalizedListing]:
    # ads older than two years are almost always expired
    cutoff = (now or datetime.utcnow()) - STALE_AFTER
    return [ad for ad in listings if ad.published_at is None or ad.published_at >= cutoff]


def apply_vendor_filter(listings: list[NormalizedListing], vendor: str | None) -> list[NormalizedListing]:
    if vendor == "pro":
        return [ad for ad in listings if ad.is_pro]
    if vendor == "particulier":
        return [ad for ad in listings if not ad.is_pro]
    return listings


def _group_key(ad: NormalizedListing) -> tuple[str, str, str] | None:
    if not (ad.surface and ad.price and ad.city and ad.postal_code and ad.transaction_type):
        return None
    return (ad.transaction_type, fold_text(ad.city), pad_postal_code(ad.postal_code))


def is_duplicate(a: NormalizedListing, b: NormalizedListing) -> bool:
    if a.transaction_type != b.transaction_type:
        return False

    if a.surface and b.surface:
        if abs(a.surface - b.surface) > SURFACE_TOLERANCE_M2:
            return False
    elif a.surface != b.surface:
        return False

    if a.price and b.price:
        avg = (a.price + b.price) / 2
        if abs(a.price - b.price) / avg * 100 > PRICE_TOLERANCE_PCT:
            return False
    elif a.price != b.price:
        return False

    if fold_text(a.city) != fold_text(b.city):
        return False
    if pad_postal_code(a.postal_code) != pad_postal_code(b.postal_code):
        return False

    if a.rooms is not None and b.rooms is not None and a.rooms != b.rooms:
        return False

    return True


def select_best(a: NormalizedListing, b: NormalizedListing) -> NormalizedListing:
    """Most recent, then more images, then longer description, then more filled fields."""
    if a.published_at and b.published_at:
        if b.published_at > a.published_at:
            return b
        if a.published_at > b.published_at:
            return a
    elif b.published_at and not a.published_at:
        return b
    elif a.published_at and not b.published_at:
        return a

    if len(b.images) != len(a.images):
        return b if len(b.images) > len(a.images) else a

    desc_a, desc_b = len(a.description or ""), len(b.description or "")
    if desc_a != desc_b:
        return b if desc_b > desc_a else a

    filled_a = sum(v is not None for v in (a.price, a.surface, a.rooms))
    filled_b = sum(v is not None for v in (b.price, b.surface, b.rooms))
    if filled_b > filled_a:
        return b
    return a


def deduplicate(listings: list[NormalizedListing]) -> list[NormalizedListing]:
    """
    Merge the same property posted on several platforms.
    Ads without enough data to compare are kept as-is, after the merged ones.
    """
    kept: list[NormalizedListing] = []
    groups: dict[tuple[str, str, str], list[int]] = {}
    passthrough: list[NormalizedListing] = []

    for ad in listings:
        key = _group_key(ad)
        if key is None:
            passthrough.append(ad)
            continue

        slots = groups.setdefault(key, [])
        for idx in slots:
            if is_duplicate(kept[idx], ad):
                kept[idx] = select_best(kept[idx], ad)
                break
        else:
            slots.append(len(kept))
            kept.append(ad)

    return kept + passthrough


def harmonize(
    listings: list[NormalizedListing],
    filters: HarmonizationFilters,
    *,
    now: datetime | None = None,
) -> list[NormalizedListing]:
    result = listings
    log.info("harmonize: start with %d listings", len(result))

    if filters.postal_codes:
        before = len(result)
        result = filter_by_postal_codes(result, filters.postal_codes)
        log.info("harmonize: postal codes %d -> %d", before, len(result))

    if filters.states:
        before = len(result)
        result = filter_by_state(result, filters.states)
        log.info("harmonize: states %s %d -> %d", filters.states, before, len(result))

    before = len(result)
    result = exclude_invalid(result)
    log.info("harmonize: invalid %d -> %d", before, len(result))

    before = len(result)
    result = exclude_stale(result, now=now)
    log.info("harmonize: stale %d -> %d", before, len(result))

    if filters.vendor:
        before = len(result)
        result = apply_vendor_filter(result, filters.vendor)
        log.info("harmonize: vendor=%s %d -> %d", filters.vendor, before, len(result))

    before = len(result)
    result = deduplicate(result)
    log.info("harmonize: dedup %d -> %d (started with %d)", before, len(result), len(listings))

    return result
