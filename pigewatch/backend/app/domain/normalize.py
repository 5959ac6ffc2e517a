# app/domain/normalize.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..models import ListingSource, ListingType
from .parsing import (
    extract_classifieds_id,
    get_first,
    get_nested,
    parse_datetime,
    parse_int_text,
    to_float,
    to_int,
)

DEFAULT_TITLE = "Bien immobilier"

# Publisher names that point at an agency / portal
PRO_PUBLISHER_KEYWORDS: tuple[str, ...] = (
    "immobilier", "agence", "century", "orpi", "foncia", "laforêt",
    "guy hoquet", "safti", "seloger", "bienici", "logic-immo",
    "figaro", "etreproprio", "greenacres", "paruvendu", "immo",
    "real estate", "realty", "property", "consultant", "expert",
)

# Checked before the pro list: "pap" must not be read as a pro portal
PRIVATE_PUBLISHER_KEYWORDS: tuple[str, ...] = ("pap", "particulier", "privé", "private")

# Without a publisher name, these platforms only carry agency ads
PRO_ORIGINS: frozenset[str] = frozenset(
    {"seloger", "bienici", "logic-immo", "figaro", "paruvendu", "greenacres"}
)

# Fallback when a provider sends a postal code without a city
POSTAL_CODE_CITIES: dict[str, str] = {
    **{f"06{n}00": "Nice" for n in range(0, 4)},
    **{f"750{n:02d}": "Paris" for n in range(1, 21)},
    **{f"6900{n}": "Lyon" for n in range(1, 10)},
    **{f"130{n:02d}": "Marseille" for n in range(1, 17)},
}


@dataclass
class NormalizedListing:
    external_id: str
    title: str
    url: str
    provider: ListingSource
    price: int | None = None
    surface: float | None = None
    rooms: int | None = None
    bedrooms: int | None = None
    city: str = ""
    postal_code: str = ""
    published_at: datetime | None = None
    description: str | None = None
    images: list[str] = field(default_factory=list)
    origin: str | None = None
    publisher: str | None = None
    transaction_type: str | None = None  # sale|rental
    state: str | None = None
    is_pro: bool = False
    lat: float | None = None
    lon: float | None = None


def publisher_is_pro(publisher: str | None, origin: str | None) -> bool:
    """
    Cheap first-pass seller guess from the publisher name and platform.
    The vendor classifier refines this with more signals.
    """
    name = (publisher or "").strip().lower()
    if name:
        if any(k in name for k in PRIVATE_PUBLISHER_KEYWORDS):
            return False
        return any(k in name for k in PRO_PUBLISHER_KEYWORDS)
    return (origin or "").strip().lower() in PRO_ORIGINS


def normalize_aggregator_ad(ad: dict[str, Any]) -> NormalizedListing:
    """Aggregator ad payload -> NormalizedListing."""
    published_at = parse_datetime(get_first(ad, "lastChangeDate", "creationDate"))

    images: list[str] = []
    if ad.get("pictureUrl"):
        images.append(str(ad["pictureUrl"]))
    if isinstance(ad.get("pictureUrls"), list):
        images.extend(str(u) for u in ad["pictureUrls"] if u)

    publisher = get_nested(ad, "publisher.name") or ""
    raw_origin = ad.get("origin")
    origin = str(raw_origin).strip().lower() if raw_origin else None

    state = get_first(ad, "state") or get_nested(ad, "property.condition")

    return NormalizedListing(
        external_id=str(ad.get("uniqueId") or ""),
        title=ad.get("title") or DEFAULT_TITLE,
        url=str(ad.get("url") or ""),
        provider=ListingSource.aggregator,
        price=to_int(ad.get("price")),
        surface=to_float(ad.get("surface")),
        rooms=to_int(ad.get("rooms")),
        bedrooms=to_int(ad.get("bedrooms")),
        city=get_nested(ad, "location.city") or "",
        postal_code=get_nested(ad, "location.postalCode") or "",
        published_at=published_at,
        description=ad.get("description"),
        images=images,
        origin=origin,
        publisher=publisher or None,
        transaction_type=ad.get("type"),
        state=str(state).lower() if state else None,
        is_pro=publisher_is_pro(publisher, origin),
        lat=to_float(get_nested(ad, "location.lat")),
        lon=to_float(get_nested(ad, "location.lon")),
    )


def normalize_scraped_ad(card: dict[str, Any], *, now: datetime | None = None) -> NormalizedListing:
    """
    Classifieds search card -> NormalizedListing.
    Cards carry no publication date; the scrape time stands in for it.
    """
    url = str(card.get("url") or "")

    surface = parse_int_text(card.get("surface"))
    return NormalizedListing(
        external_id=extract_classifieds_id(url) or url,
        title=(card.get("title") or "").strip() or DEFAULT_TITLE,
        url=url,
        provider=ListingSource.classifieds,
        price=parse_int_text(card.get("price")),
        surface=float(surface) if surface is not None else None,
        rooms=to_int(card.get("rooms")),
        city=card.get("city") or "",
        postal_code=card.get("postal_code") or "",
        published_at=card.get("published_at") or now or datetime.utcnow(),
        description=card.get("description") or card.get("title"),
        images=list(card.get("images") or []),
        origin="leboncoin",
        publisher=card.get("publisher"),
        transaction_type=card.get("transaction_type") or "sale",
        is_pro=bool(card.get("is_pro", False)),
    )


def infer_city(city: str | None, postal_code: str | None, fallback: str | None = None) -> str:
    """
    Keep the city when present; otherwise look the postal code up, then use
    `fallback` (the city the search was run for).
    """
    if city and city.strip():
        return city.strip()
    known = POSTAL_CODE_CITIES.get((postal_code or "").strip())
    if known:
        return known
    return (fallback or "").strip()


def determine_listing_type(title: str | None) -> ListingType:
    t = (title or "").lower()

    if "maison de ville" in t or "townhouse" in t:
        return ListingType.townhouse
    if "maison" in t or "villa" in t:
        return ListingType.house
    if any(k in t for k in ("appartement", "apt", "t2", "t3", "t4", "t5")):
        return ListingType.apartment
    if "studio" in t or "t1" in t:
        return ListingType.studio
    if "loft" in t:
        return ListingType.loft
    if "penthouse" in t:
        return ListingType.penthouse
    return ListingType.other
