# app/domain/vendor.py
"""
Seller-type classification (private vs professional).

The aggregation API does not say who published an ad, so the label is built
from weak signals: publisher name, contact details, wording of the
description, explicit categories and tags when a provider sends them.
Classifieds listings can ask the site itself first (see `classify_vendor`).
"""
from __future__ import annotations

import re
from typing import Any, Awaitable, Callable

from ..models import ListingSource, VendorType
from .normalize import NormalizedListing
from .parsing import extract_classifieds_id, get_nested

KNOWN_AGENCIES: tuple[str, ...] = (
    "orpi", "iad", "safti", "era", "laforêt", "laforet", "century", "foncia", "guy hoquet",
)
CORPORATE_EMAIL_DOMAINS: tuple[str, ...] = (
    "@orpi.fr", "@iad.fr", "@safti.fr", "@era.fr", "@laforet.fr", "@century21.fr", "@foncia.fr",
)
PRO_DESCRIPTION_KEYWORDS: tuple[str, ...] = (
    "honoraires", "mandat", "frais d'agence", "frais d agence", "commission", "exclusivité", "exclusivite",
)

_GENERIC_MAILBOX = re.compile(r"^(contact|info|commercial|vente|location)@")
_MOBILE_PHONE = re.compile(r"^(06|07)\d{8}$")
_SIREN = re.compile(r"\b\d{9}\b")

OwnerLookup = Callable[[str], Awaitable[VendorType | None]]


def vendor_score(listing: NormalizedListing, raw: dict[str, Any] | None = None) -> int:
    """Positive = professional, negative = private, 0 = no signal."""
    raw = raw or {}
    score_pro = 0
    score_private = 0

    publisher = (listing.publisher or "").lower()
    description = (listing.description or "").lower()
    email = str(get_nested(raw, "publisher.email") or raw.get("email") or "").lower()
    phone = str(get_nested(raw, "publisher.phone") or raw.get("phone") or "")
    logo = get_nested(raw, "publisher.logo")
    website = get_nested(raw, "publisher.website")

    if any(agency in publisher for agency in KNOWN_AGENCIES):
        score_pro += 5

    if email:
        if any(domain in email for domain in CORPORATE_EMAIL_DOMAINS):
            score_pro += 3
        if _GENERIC_MAILBOX.match(email):
            score_pro += 2

    if any(k in description for k in PRO_DESCRIPTION_KEYWORDS):
        score_pro += 2

    if phone and _MOBILE_PHONE.match(re.sub(r"\s", "", phone)):
        score_private += 3

    if not logo and not website:
        score_private += 2
    if logo and website:
        score_pro += 2

    if _SIREN.search(description):
        score_pro += 3

    declared = str(get_nested(raw, "publisher.type") or get_nested(raw, "publisher.category") or "").lower()
    if "partic" in declared or declared == "private":
        score_private += 5
    elif "pro" in declared or declared in ("agency", "mandataire"):
        score_pro += 5

    tags = [str(t).lower() for t in (raw.get("tags") or [])]
    if "particulier" in tags or "private" in tags:
        score_private += 3
    if "pro" in tags or "professionnel" in tags or "agence" in tags:
        score_pro += 3

    return score_pro - score_private


def classify_vendor_sync(listing: NormalizedListing, raw: dict[str, Any] | None = None) -> VendorType:
    # no signal either way: private sellers are the default
    if vendor_score(listing, raw) > 0:
        return VendorType.professionnel
    return VendorType.particulier


def _is_classifieds(listing: NormalizedListing) -> bool:
    return (
        listing.provider == ListingSource.classifieds
        or (listing.origin or "").lower() == "leboncoin"
        or "leboncoin.fr" in (listing.url or "")
    )


async def classify_vendor(
    listing: NormalizedListing,
    raw: dict[str, Any] | None = None,
    *,
    owner_lookup: OwnerLookup | None = None,
) -> VendorType:
    """
    Classifieds ads: the site's own owner type wins when it answers.
    Everything else (and lookup misses) goes through the score.
    """
    if owner_lookup is not None and _is_classifieds(listing):
        ad_id = extract_classifieds_id(listing.url)
        if ad_id:
            answer = await owner_lookup(ad_id)
            if answer is not None:
                return answer

    return classify_vendor_sync(listing, raw)
