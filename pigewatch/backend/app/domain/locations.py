# app/domain/locations.py
from __future__ import annotations

import re
from typing import Any

from .errors import FilterValidationError

_POSTAL_CODE = re.compile(r"^\d{5}$")


def build_locations(postal_codes: list[str]) -> list[dict[str, Any]]:
    """
    Postal codes -> aggregation API location filters.

    75001 -> {"postalCode": "75001"}
    75000 (a whole city / department) -> {"departmentCode": 75}
    """
    locations: list[dict[str, Any]] = []

    for raw in postal_codes:
        cp = (raw or "").strip()
        if not cp:
            continue
        if not _POSTAL_CODE.match(cp):
            raise FilterValidationError(f"Invalid postal code: {cp}. Expected 5 digits (e.g. 75001, 75000).")

        if cp.endswith("000"):
            dep = int(cp[:2])
            if not 1 <= dep <= 95:
                raise FilterValidationError(f"Invalid postal code: unknown department ({cp}).")
            loc: dict[str, Any] = {"departmentCode": dep}
        else:
            loc = {"postalCode": cp}

        if loc not in locations:
            locations.append(loc)

    if not locations:
        raise FilterValidationError("No valid postal code given.")
    return locations
