import pytest
from sqlalchemy import func, select

from app.adapters.repos.listings import ListingFilters, ListingRepository
from app.domain.normalize import normalize_aggregator_ad
from app.models import Listing, ListingSource, ListingType, VendorType


@pytest.mark.asyncio
async def test_upsert_listing_idempotent(async_session_maker, make_ad):
    n = normalize_aggregator_ad(make_ad(1))

    async with async_session_maker() as session:
        l1, created1 = await ListingRepository(session).upsert(n, vendor_type=VendorType.particulier)
        await session.commit()

    async with async_session_maker() as session:
        l2, created2 = await ListingRepository(session).upsert(n)
        await session.commit()
        count = (await session.execute(select(func.count(Listing.id)))).scalar_one()

    assert created1 is True
    assert created2 is False
    assert l1.id == l2.id
    assert count == 1
    assert l1.listing_type == ListingType.apartment
    assert l1.images == ["https://img.example/1.jpg"]


@pytest.mark.asyncio
async def test_existing_row_untouched_unless_update_requested(session, make_ad):
    repo = ListingRepository(session)
    await repo.upsert(normalize_aggregator_ad(make_ad(1)))

    cheaper = normalize_aggregator_ad(make_ad(1, price=250000))
    row, _ = await repo.upsert(cheaper)
    assert row.price == 301000
    assert row.is_new is True

    row, created = await repo.upsert(cheaper, update_existing=True)
    assert created is False
    assert row.price == 250000
    assert row.is_new is False


@pytest.mark.asyncio
async def test_same_url_from_another_source_is_a_duplicate(session, make_ad):
    repo = ListingRepository(session)
    agg = normalize_aggregator_ad(make_ad(1))
    await repo.upsert(agg)

    existing = await repo.find_existing(ListingSource.classifieds, "999", agg.url)
    assert existing is not None
    assert existing.external_id == "mi-1"


@pytest.mark.asyncio
async def test_search_filters_and_paginates(session, make_ad):
    repo = ListingRepository(session)
    await repo.upsert(normalize_aggregator_ad(make_ad(1, title="Maison 4 pièces", price=500000)), vendor_type=VendorType.professionnel)
    await repo.upsert(normalize_aggregator_ad(make_ad(2, location={"city": "Lyon", "postalCode": "69003"})))
    await repo.upsert(normalize_aggregator_ad(make_ad(3, creationDate="2026-01-01T00:00:00Z")))
    await repo.upsert(normalize_aggregator_ad(make_ad(4)))

    total, rows = await repo.search(ListingFilters(city="par"), page=1, limit=2)
    assert total == 3
    assert len(rows) == 2

    total, rows = await repo.search(ListingFilters(postal_code="69"))
    assert [r.city for r in rows] == ["Lyon"]

    total, rows = await repo.search(ListingFilters(type="maison"))
    assert [r.external_id for r in rows] == ["mi-1"]

    total, _ = await repo.search(ListingFilters(price_min=400000))
    assert total == 1

    total, _ = await repo.search(ListingFilters(vendor_type=VendorType.professionnel))
    assert total == 1

    # oldest publication last
    _, rows = await repo.search(ListingFilters(city="paris"))
    assert rows[-1].external_id == "mi-3"


@pytest.mark.asyncio
async def test_tags_and_locations(session, make_ad):
    repo = ListingRepository(session)
    listing, _ = await repo.upsert(normalize_aggregator_ad(make_ad(1)))
    other, _ = await repo.upsert(normalize_aggregator_ad(make_ad(2)))

    await repo.tag_listing(listing.id, " Favori ")
    await repo.tag_listing(listing.id, "favori")
    assert await repo.tags_for(listing.id) == ["favori"]
    assert [t.name for t in await repo.list_tags()] == ["favori"]

    total, rows = await repo.search(ListingFilters(tag="favori"))
    assert (total, rows[0].id) == (1, listing.id)

    assert await repo.untag_listing(listing.id, "favori") is True
    assert await repo.untag_listing(other.id, "favori") is False

    await repo.add_location(listing.id, address="12 rue Oberkampf", lat=48.86, lon=2.37, confidence=0.4)
    await repo.add_location(listing.id, address="14 rue Oberkampf", lat=48.86, lon=2.37, confidence=0.9)
    locs = await repo.locations(listing.id)
    assert [l.address for l in locs] == ["14 rue Oberkampf", "12 rue Oberkampf"]

    assert await repo.delete(listing.id) is True
    assert await repo.get(listing.id) is None
    assert await repo.locations(listing.id) == []
