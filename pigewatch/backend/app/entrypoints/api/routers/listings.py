# app/entrypoints/api/routers/listings.py
from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import require_api_key
from ....adapters.repos.listings import ListingFilters, ListingRepository
from ....db import get_session
from ....models import Listing, ListingSource, Location, VendorType
from ....schemas import ListingOut, ListingPage, LocationIn, LocationOut, TagOut

router = APIRouter(tags=["listings"], dependencies=[Depends(require_api_key)])


def listing_out(listing: Listing, tags: list[str] | None = None) -> ListingOut:
    return ListingOut(
        id=listing.id,
        source=listing.source.value,
        external_id=listing.external_id,
        url=listing.url,
        title=listing.title,
        description=listing.description,
        price=listing.price,
        surface=listing.surface,
        rooms=listing.rooms,
        bedrooms=listing.bedrooms,
        city=listing.city,
        postal_code=listing.postal_code,
        lat=listing.lat,
        lon=listing.lon,
        origin=listing.origin,
        publisher=listing.publisher,
        vendor_type=listing.vendor_type.value,
        listing_type=listing.listing_type.value,
        transaction_type=listing.transaction_type,
        property_state=listing.property_state,
        images=listing.images,
        tags=tags or [],
        published_at=listing.published_at,
        is_new=listing.is_new,
        created_at=listing.created_at,
    )


def location_out(loc: Location) -> LocationOut:
    return LocationOut(
        id=loc.id,
        listing_id=loc.listing_id,
        address=loc.address,
        lat=loc.lat,
        lon=loc.lon,
        confidence=loc.confidence,
        source=loc.source,
        created_at=loc.created_at,
    )


async def _get_or_404(repo: ListingRepository, listing_id: int) -> Listing:
    listing = await repo.get(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found")
    return listing


@router.get("/listings", response_model=ListingPage)
async def list_listings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=60),
    city: str | None = Query(None),
    postal_code: str | None = Query(None, max_length=5),
    type: str | None = Query(None, description="appartement|maison|studio|loft|penthouse"),
    price_min: int | None = Query(None, ge=0),
    price_max: int | None = Query(None, ge=0),
    surface_min: float | None = Query(None, ge=0),
    surface_max: float | None = Query(None, ge=0),
    rooms_min: int | None = Query(None, ge=0),
    rooms_max: int | None = Query(None, ge=0),
    vendor_type: str | None = Query(None),
    source: str | None = Query(None),
    tag: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
) -> ListingPage:
    try:
        vendor = VendorType(vendor_type) if vendor_type else None
        src = ListingSource(source) if source else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    filters = ListingFilters(
        city=city,
        postal_code=postal_code,
        type=type,
        price_min=price_min,
        price_max=price_max,
        surface_min=surface_min,
        surface_max=surface_max,
        rooms_min=rooms_min,
        rooms_max=rooms_max,
        vendor_type=vendor,
        source=src,
        tag=tag,
    )
    repo = ListingRepository(session)
    total, rows = await repo.search(filters, page=page, limit=limit)

    items = [listing_out(r, await repo.tags_for(r.id)) for r in rows]
    return ListingPage(
        items=items,
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def get_listing(listing_id: int, session: AsyncSession = Depends(get_session)) -> ListingOut:
    repo = ListingRepository(session)
    listing = await _get_or_404(repo, listing_id)
    return listing_out(listing, await repo.tags_for(listing.id))


@router.delete("/listings/{listing_id}")
async def delete_listing(listing_id: int, session: AsyncSession = Depends(get_session)) -> dict[str, bool]:
    deleted = await ListingRepository(session).delete(listing_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Listing {listing_id} not found")
    await session.commit()
    return {"deleted": True}


@router.post("/listings/{listing_id}/location", response_model=LocationOut, status_code=201)
async def add_location(
    listing_id: int,
    body: LocationIn,
    session: AsyncSession = Depends(get_session),
) -> LocationOut:
    repo = ListingRepository(session)
    await _get_or_404(repo, listing_id)
    loc = await repo.add_location(
        listing_id,
        address=body.address.strip(),
        lat=body.lat,
        lon=body.lon,
        confidence=body.confidence,
        source=body.source,
    )
    await session.commit()
    return location_out(loc)


@router.get("/listings/{listing_id}/locations", response_model=list[LocationOut])
async def list_locations(listing_id: int, session: AsyncSession = Depends(get_session)) -> list[LocationOut]:
    repo = ListingRepository(session)
    await _get_or_404(repo, listing_id)
    return [location_out(loc) for loc in await repo.locations(listing_id)]


@router.post("/listings/{listing_id}/tags/{tag}", response_model=TagOut)
async def tag_listing(listing_id: int, tag: str, session: AsyncSession = Depends(get_session)) -> TagOut:
    repo = ListingRepository(session)
    await _get_or_404(repo, listing_id)
    if not tag.strip():
        raise HTTPException(status_code=400, detail="Empty tag")
    t = await repo.tag_listing(listing_id, tag)
    await session.commit()
    return TagOut(id=t.id, name=t.name)


@router.delete("/listings/{listing_id}/tags/{tag}")
async def untag_listing(listing_id: int, tag: str, session: AsyncSession = Depends(get_session)) -> dict[str, bool]:
    repo = ListingRepository(session)
    await _get_or_404(repo, listing_id)
    removed = await repo.untag_listing(listing_id, tag)
    await session.commit()
    return {"removed": removed}
