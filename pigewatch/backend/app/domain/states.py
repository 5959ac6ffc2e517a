# app/domain/states.py
"""Property-state ("état du bien") filter. Applied locally, never sent upstream."""
from __future__ import annotations

from typing import Iterable

from .normalize import NormalizedListing

STATE_MAPPING: dict[str, tuple[str, ...]] = {
    "ancien": (
        "ancien", "old", "ancienne construction", "ancienneté", "anciennete",
        "ancienne", "anciennes", "à rénover", "a renover", "travaux", "bon état",
        "rénové", "renove", "rafraîchir", "rafraichir", "to renovate",
    ),
    "neuf": (
        "neuf", "new", "programme neuf", "programme_neuf", "construction neuve",
        "neuf_fraichement", "neuf_programme", "neuf_programmé", "nouveau", "nouvelle",
    ),
    "recent": (
        "récent", "recent", "renove", "renové", "remis à neuf", "remis_a_neuf",
        "modernisé", "modernise", "rénovation", "renovation", "refait à neuf", "refait_a_neuf",
    ),
    "vefa": (
        "vefa", "vente en état futur d'achèvement", "vente_en_etat_future_achevement",
        "program", "future", "achevement", "achèvement", "à construire", "a construire",
        "en construction",
    ),
    "travaux": (
        "travaux", "to renovate", "renovation", "rénovation", "à rénover", "a renover",
        "gros travaux", "nécessite travaux", "necessite travaux", "travaux à prévoir",
        "travaux a prevoir", "travaux à faire", "travaux a faire",
    ),
}


def _matches(text: str, selected: Iterable[str]) -> bool:
    return any(
        keyword in text
        for key in selected
        for keyword in STATE_MAPPING.get(key.lower(), ())
    )


def normalize_state_to_category(raw_state: str | None) -> str | None:
    if not raw_state:
        return None
    s = raw_state.lower().strip()
    for category, variations in STATE_MAPPING.items():
        if any(v in s for v in variations):
            return category
    return None


def matches_state_filter(raw_state: str | None, selected: list[str] | None) -> bool:
    if not selected:
        return True
    if not raw_state:
        return False
    return _matches(raw_state.lower().strip(), selected)


def filter_by_state(listings: list[NormalizedListing], selected: list[str] | None) -> list[NormalizedListing]:
    """
    Uses the provider state when there is one, else falls back to
    title + description wording.
    """
    if not selected:
        return listings

    out: list[NormalizedListing] = []
    for ad in listings:
        if ad.state:
            text = ad.state.lower()
        else:
            text = f"{ad.title or ''} {ad.description or ''}".lower()
        if _matches(text, selected):
            out.append(ad)
    return out
