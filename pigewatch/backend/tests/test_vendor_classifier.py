import pytest

from app.domain.normalize import NormalizedListing, normalize_aggregator_ad
from app.domain.vendor import classify_vendor, classify_vendor_sync, vendor_score
from app.models import ListingSource, VendorType


def _listing(**kw) -> NormalizedListing:
    base = dict(external_id="1", title="Appartement", url="https://p/1", provider=ListingSource.aggregator)
    base.update(kw)
    return NormalizedListing(**base)


def test_known_agency_with_logo_and_site_is_pro():
    raw = {"publisher": {"name": "Century 21", "logo": "l.png", "website": "https://c21.fr"}}
    n = _listing(publisher="Century 21 Immobilier")
    # +5 agency, +2 logo and website
    assert vendor_score(n, raw) == 7
    assert classify_vendor_sync(n, raw) == VendorType.professionnel


def test_mobile_phone_without_branding_is_private():
    raw = {"publisher": {"name": "Marie", "phone": "06 12 34 56 78"}}
    n = _listing(publisher="Marie")
    # +3 mobile, +2 no logo and no website
    assert vendor_score(n, raw) == -5
    assert classify_vendor_sync(n, raw) == VendorType.particulier


def test_description_keywords_and_siren_push_towards_pro():
    raw = {"publisher": {"logo": "x", "website": "y"}}
    n = _listing(description="Honoraires à la charge du vendeur. SIREN 123456789.")
    assert vendor_score(n, raw) == 2 + 3 + 2


def test_declared_type_and_tags():
    n = _listing()
    assert vendor_score(n, {"publisher": {"type": "particulier"}, "tags": ["private"]}) == -(5 + 3 + 2)
    assert vendor_score(n, {"publisher": {"category": "agency"}, "tags": ["agence"]}) == 5 + 3 - 2


def test_no_signal_defaults_to_private():
    n = _listing()
    raw = {"publisher": {"logo": "x"}}
    assert vendor_score(n, raw) == 0
    assert classify_vendor_sync(n, raw) == VendorType.particulier


@pytest.mark.asyncio
async def test_classifieds_owner_lookup_wins_over_score():
    asked: list[str] = []

    async def lookup(ad_id: str):
        asked.append(ad_id)
        return VendorType.professionnel

    n = _listing(
        provider=ListingSource.classifieds,
        url="https://www.leboncoin.fr/ventes_immobilieres/99887766.htm",
    )
    assert await classify_vendor(n, {"publisher": {"phone": "0612345678"}}, owner_lookup=lookup) == VendorType.professionnel
    assert asked == ["99887766"]


@pytest.mark.asyncio
async def test_lookup_miss_falls_back_to_score(make_ad):
    async def lookup(ad_id: str):
        return None

    n = normalize_aggregator_ad(make_ad(1, url="https://www.leboncoin.fr/ventes_immobilieres/42.htm"))
    assert await classify_vendor(n, {}, owner_lookup=lookup) == VendorType.particulier


@pytest.mark.asyncio
async def test_lookup_is_not_used_for_other_platforms(make_ad):
    async def lookup(ad_id: str):
        raise AssertionError("should not be called")

    n = normalize_aggregator_ad(make_ad(1, origin="seloger"))
    assert await classify_vendor(n, {}, owner_lookup=lookup) == VendorType.particulier
