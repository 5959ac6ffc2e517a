# app/adapters/repos/listings.py
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Select, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.normalize import NormalizedListing, determine_listing_type
from ...models import (
    Listing,
    ListingSource,
    ListingTag,
    Location,
    SavedSearch,
    Tag,
    VendorType,
)

# listing-type filter -> title keywords
TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "appartement": ("appartement",),
    "maison": ("maison", "villa"),
    "studio": ("studio",),
    "loft": ("loft",),
    "penthouse": ("penthouse",),
}


@dataclass
class ListingFilters:
    city: str | None = None
    postal_code: str | None = None
    type: str | None = None
    price_min: int | None = None
    price_max: int | None = None
    surface_min: float | None = None
    surface_max: float | None = None
    rooms_min: int | None = None
    rooms_max: int | None = None
    vendor_type: VendorType | None = None
    source: ListingSource | None = None
    tag: str | None = None


def _apply_filters(stmt: Select, f: ListingFilters) -> Select:
    if f.city:
        stmt = stmt.where(func.lower(Listing.city).contains(f.city.strip().lower()))
    if f.postal_code:
        stmt = stmt.where(Listing.postal_code.startswith(f.postal_code.strip()))
    if f.type:
        keywords = TYPE_KEYWORDS.get(f.type.lower(), (f.type.lower(),))
        stmt = stmt.where(or_(*[func.lower(Listing.title).contains(k) for k in keywords]))
    if f.price_min is not None:
        stmt = stmt.where(Listing.price >= f.price_min)
    if f.price_max is not None:
        stmt = stmt.where(Listing.price <= f.price_max)
    if f.surface_min is not None:
        stmt = stmt.where(Listing.surface >= f.surface_min)
    if f.surface_max is not None:
        stmt = stmt.where(Listing.surface <= f.surface_max)
    if f.rooms_min is not None:
        stmt = stmt.where(Listing.rooms >= f.rooms_min)
    if f.rooms_max is not None:
        stmt = stmt.where(Listing.rooms <= f.rooms_max)
    if f.vendor_type is not None:
        stmt = stmt.where(Listing.vendor_type == f.vendor_type)
    if f.source is not None:
        stmt = stmt.where(Listing.source == f.source)
    if f.tag:
        stmt = (
            stmt.join(ListingTag, ListingTag.listing_id == Listing.id)
            .join(Tag, Tag.id == ListingTag.tag_id)
            .where(Tag.name == f.tag.strip().lower())
        )
    return stmt


class ListingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, listing_id: int) -> Listing | None:
        return await self.session.get(Listing, listing_id)

    async def find_existing(
        self,
        source: ListingSource,
        external_id: str | None,
        url: str | None,
    ) -> Listing | None:
        """
        Match on (source, external_id) first, then on url.
        """
        if external_id:
            q = select(Listing).where(Listing.source == source, Listing.external_id == external_id)
            row = (await self.session.execute(q)).scalars().first()
            if row is not None:
                return row

        if url:
            q = select(Listing).where(Listing.url == url)
            return (await self.session.execute(q)).scalars().first()

        return None

    async def upsert(
        self,
        n: NormalizedListing,
        *,
        source: ListingSource | None = None,
        vendor_type: VendorType = VendorType.inconnu,
        update_existing: bool = False,
        now: datetime | None = None,
    ) -> tuple[Listing, bool]:
        """
        Returns (listing, created). An existing row is only touched when
        update_existing is set, and then it stops being "new".
        """
        now = now or datetime.utcnow()
        source = source or n.provider

        existing = await self.find_existing(source, n.external_id or None, n.url or None)
        if existing is not None:
            if update_existing:
                self._apply(existing, n, vendor_type)
                existing.is_new = False
                existing.last_scraped_at = now
                existing.updated_at = now
                await self.session.flush()
            return existing, False

        listing = Listing(
            source=source,
            external_id=n.external_id or None,
            url=n.url,
            is_new=True,
            last_scraped_at=now,
            created_at=now,
            updated_at=now,
        )
        self._apply(listing, n, vendor_type)
        self.session.add(listing)
        await self.session.flush()
        return listing, True

    @staticmethod
    def _apply(listing: Listing, n: NormalizedListing, vendor_type: VendorType) -> None:
        listing.title = n.title
        listing.description = n.description
        listing.price = n.price
        listing.surface = n.surface
        listing.rooms = n.rooms
        listing.bedrooms = n.bedrooms
        listing.city = n.city or ""
        listing.postal_code = n.postal_code or None
        listing.lat = n.lat
        listing.lon = n.lon
        listing.origin = n.origin
        listing.publisher = n.publisher
        listing.vendor_type = vendor_type
        listing.listing_type = determine_listing_type(n.title)
        listing.transaction_type = n.transaction_type
        listing.property_state = n.state
        listing.images_json = json.dumps(n.images or [])
        listing.published_at = n.published_at

    async def search(
        self,
        filters: ListingFilters,
        *,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[int, list[Listing]]:
        base = _apply_filters(select(Listing), filters)

        total = (
            await self.session.execute(select(func.count()).select_from(base.subquery()))
        ).scalar_one()

        stmt = (
            base.order_by(Listing.published_at.desc().nulls_last(), Listing.id.desc())
            .offset((max(1, page) - 1) * limit)
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return int(total), list(rows)

    async def delete(self, listing_id: int) -> bool:
        listing = await self.get(listing_id)
        if listing is None:
            return False
        await self.session.execute(delete(ListingTag).where(ListingTag.listing_id == listing_id))
        await self.session.execute(delete(Location).where(Location.listing_id == listing_id))
        await self.session.delete(listing)
        await self.session.flush()
        return True

    async def delete_older_than(self, cutoff: datetime) -> int:
        old_ids = select(Listing.id).where(Listing.created_at < cutoff)
        await self.session.execute(delete(ListingTag).where(ListingTag.listing_id.in_(old_ids)))
        await self.session.execute(delete(Location).where(Location.listing_id.in_(old_ids)))
        res = await self.session.execute(delete(Listing).where(Listing.created_at < cutoff))
        await self.session.flush()
        return int(res.rowcount or 0)

    # -----------------------------
    # Locations
    # -----------------------------
    async def add_location(
        self,
        listing_id: int,
        *,
        address: str,
        lat: float,
        lon: float,
        confidence: float = 0.0,
        source: str = "manual",
    ) -> Location:
        loc = Location(
            listing_id=listing_id,
            address=address,
            lat=lat,
            lon=lon,
            confidence=confidence,
            source=source,
        )
        self.session.add(loc)
        await self.session.flush()
        return loc

    async def locations(self, listing_id: int) -> list[Location]:
        q = (
            select(Location)
            .where(Location.listing_id == listing_id)
            .order_by(Location.confidence.desc(), Location.id.desc())
        )
        return list((await self.session.execute(q)).scalars().all())

    # -----------------------------
    # Tags
    # -----------------------------
    async def list_tags(self) -> list[Tag]:
        return list((await self.session.execute(select(Tag).order_by(Tag.name))).scalars().all())

    async def get_or_create_tag(self, name: str) -> Tag:
        name = name.strip().lower()
        tag = (await self.session.execute(select(Tag).where(Tag.name == name))).scalars().first()
        if tag is None:
            tag = Tag(name=name)
            self.session.add(tag)
            await self.session.flush()
        return tag

    async def tag_listing(self, listing_id: int, name: str) -> Tag:
        tag = await self.get_or_create_tag(name)
        q = select(ListingTag).where(ListingTag.listing_id == listing_id, ListingTag.tag_id == tag.id)
        if (await self.session.execute(q)).scalars().first() is None:
            self.session.add(ListingTag(listing_id=listing_id, tag_id=tag.id))
            await self.session.flush()
        return tag

    async def untag_listing(self, listing_id: int, name: str) -> bool:
        tag = (
            await self.session.execute(select(Tag).where(Tag.name == name.strip().lower()))
        ).scalars().first()
        if tag is None:
            return False
        res = await self.session.execute(
            delete(ListingTag).where(ListingTag.listing_id == listing_id, ListingTag.tag_id == tag.id)
        )
        await self.session.flush()
        return bool(res.rowcount)

    async def tags_for(self, listing_id: int) -> list[str]:
        q = (
            select(Tag.name)
            .join(ListingTag, ListingTag.tag_id == Tag.id)
            .where(ListingTag.listing_id == listing_id)
            .order_by(Tag.name)
        )
        return list((await self.session.execute(q)).scalars().all())


class SavedSearchRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_user(self, user_id: str) -> list[SavedSearch]:
        q = select(SavedSearch).where(SavedSearch.user_id == user_id).order_by(SavedSearch.id)
        return list((await self.session.execute(q)).scalars().all())

    async def list_all(self) -> list[SavedSearch]:
        return list((await self.session.execute(select(SavedSearch).order_by(SavedSearch.id))).scalars().all())

    async def get(self, user_id: str, search_id: int) -> SavedSearch | None:
        s = await self.session.get(SavedSearch, search_id)
        if s is None or s.user_id != user_id:
            return None
        return s

    async def save(self, user_id: str, name: str, filters: dict[str, Any]) -> SavedSearch:
        """Same (user, name) overwrites the stored filters."""
        q = select(SavedSearch).where(SavedSearch.user_id == user_id, SavedSearch.name == name)
        s = (await self.session.execute(q)).scalars().first()
        if s is None:
            s = SavedSearch(user_id=user_id, name=name)
            self.session.add(s)
        s.filters_json = json.dumps(filters)
        await self.session.flush()
        return s

    async def delete(self, user_id: str, search_id: int) -> bool:
        s = await self.get(user_id, search_id)
        if s is None:
            return False
        await self.session.delete(s)
        await self.session.flush()
        return True
