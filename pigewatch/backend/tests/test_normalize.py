from datetime import datetime

from app.domain.normalize import (
    DEFAULT_TITLE,
    determine_listing_type,
    infer_city,
    normalize_aggregator_ad,
    normalize_scraped_ad,
    publisher_is_pro,
)
from app.domain.parsing import extract_classifieds_id, parse_datetime, parse_int_text, parse_price_text
from app.models import ListingSource, ListingType


def test_aggregator_ad_maps_core_fields(make_ad):
    n = normalize_aggregator_ad(
        make_ad(
            1,
            lastChangeDate="2026-10-05T08:30:00+02:00",
            pictureUrls=["https://img.example/1b.jpg", None],
            origin="SeLoger",
            state="Ancien",
        )
    )

    assert n.external_id == "mi-1"
    assert n.provider == ListingSource.aggregator
    assert n.price == 301000
    assert n.surface == 61.0
    assert n.city == "Paris"
    assert n.postal_code == "75011"
    # lastChangeDate wins over creationDate, converted to naive UTC
    assert n.published_at == datetime(2026, 10, 5, 6, 30)
    assert n.images == ["https://img.example/1.jpg", "https://img.example/1b.jpg"]
    assert n.origin == "seloger"
    assert n.state == "ancien"
    assert n.transaction_type == "sale"


def test_aggregator_ad_defaults_title_and_tolerates_missing_location():
    n = normalize_aggregator_ad({"uniqueId": "x", "url": "https://p/x"})
    assert n.title == DEFAULT_TITLE
    assert n.city == ""
    assert n.postal_code == ""
    assert n.price is None
    assert n.published_at is None


def test_publisher_is_pro_private_keywords_win():
    assert publisher_is_pro("PAP - particulier", None) is False
    assert publisher_is_pro("Orpi Agence du Centre", None) is True
    assert publisher_is_pro("", "seloger") is True
    assert publisher_is_pro(None, "leboncoin") is False


def test_scraped_card_uses_url_id_and_scrape_time():
    now = datetime(2026, 10, 17, 12, 0)
    n = normalize_scraped_ad(
        {
            "title": "Maison 5 pièces avec jardin",
            "price": "450 000 €",
            "surface": "120 m²",
            "rooms": 5,
            "city": "Lyon",
            "postal_code": "69003",
            "url": "https://www.leboncoin.fr/ventes_immobilieres/2712345678.htm",
        },
        now=now,
    )
    assert n.provider == ListingSource.classifieds
    assert n.external_id == "2712345678"
    assert n.price == 450000
    assert n.surface == 120.0
    assert n.published_at == now
    assert n.origin == "leboncoin"
    assert n.transaction_type == "sale"


def test_infer_city_from_postal_code_table_then_fallback():
    assert infer_city("Nice", "06000") == "Nice"
    assert infer_city("", "75011") == "Paris"
    assert infer_city(None, "13008") == "Marseille"
    assert infer_city("", "33000") == ""
    assert infer_city("", "33000", fallback="Bordeaux") == "Bordeaux"


def test_listing_type_from_title():
    assert determine_listing_type("Maison de ville rénovée") == ListingType.townhouse
    assert determine_listing_type("Belle villa vue mer") == ListingType.house
    assert determine_listing_type("Appartement T3 centre") == ListingType.apartment
    assert determine_listing_type("Studio meublé") == ListingType.studio
    assert determine_listing_type("Loft industriel") == ListingType.loft
    assert determine_listing_type("Penthouse avec terrasse") == ListingType.penthouse
    assert determine_listing_type("Parking couvert") == ListingType.other
    assert determine_listing_type(None) == ListingType.other


def test_text_parsers():
    assert parse_int_text("350 000 €") == 350000
    assert parse_int_text("n/c") is None
    assert parse_price_text("n/c") == 0
    assert parse_datetime("not a date") is None
    assert extract_classifieds_id("https://www.leboncoin.fr/ventes_immobilieres/123.htm") == "123"
    assert extract_classifieds_id("https://example.com/123") is None
