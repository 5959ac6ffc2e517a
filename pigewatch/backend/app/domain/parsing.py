# app/domain/parsing.py
from __future__ import annotations

import re
import unicodedata
from datetime import datetime, timezone
from typing import Any

_NON_DIGITS = re.compile(r"[^\d]")


def to_int(x: Any) -> int | None:
    if x is None or x == "":
        return None
    try:
        return int(float(x))
    except (TypeError, ValueError):
        return None


def to_float(x: Any) -> float | None:
    if x is None or x == "":
        return None
    try:
        return float(x)
    except (TypeError, ValueError):
        return None


def parse_int_text(text: Any) -> int | None:
    """'350 000 €' -> 350000. Digits only; None when there are none."""
    if text is None:
        return None
    if isinstance(text, (int, float)):
        return int(text)
    digits = _NON_DIGITS.sub("", str(text))
    return int(digits) if digits else None


def parse_price_text(text: Any) -> int:
    """Like parse_int_text, but a price we can't read is 0."""
    return parse_int_text(text) or 0


def parse_datetime(x: Any) -> datetime | None:
    """ISO-8601 strings (with or without 'Z') -> naive UTC datetime."""
    if x is None or x == "":
        return None
    if isinstance(x, datetime):
        return x.replace(tzinfo=None)
    s = str(x).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def fold_text(s: str | None) -> str:
    """Lowercase, trim and strip accents ('Orléans ' -> 'orleans')."""
    if not s:
        return ""
    decomposed = unicodedata.normalize("NFD", s.lower().strip())
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def pad_postal_code(cp: str | None) -> str:
    return (cp or "").strip().zfill(5) if (cp or "").strip() else ""


def get_first(payload: dict[str, Any], *keys: str) -> Any:
    """Return first non-empty key from payload."""
    for k in keys:
        v = payload.get(k)
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return None


def get_nested(payload: dict[str, Any], path: str) -> Any:
    """Tiny dot-path getter: 'location.city' or 'publisher.name'."""
    cur: Any = payload
    for part in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
        if cur is None:
            return None
    return cur


_CLASSIFIEDS_ID = re.compile(r"leboncoin\.fr/[^/]+/(\d+)(?:\.htm)?")


def extract_classifieds_id(url: str | None) -> str | None:
    """https://www.leboncoin.fr/ventes_immobilieres/1234567890.htm -> '1234567890'"""
    if not url:
        return None
    m = _CLASSIFIEDS_ID.search(url)
    return m.group(1) if m else None
