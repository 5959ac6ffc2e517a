# app/service_layer/reports.py
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Listing, VendorType


async def global_stats(session: AsyncSession, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total = (await session.execute(select(func.count(Listing.id)))).scalar_one()
    today = (
        await session.execute(select(func.count(Listing.id)).where(Listing.created_at >= start_of_day))
    ).scalar_one()
    avg_price = (await session.execute(select(func.avg(Listing.price)).where(Listing.price > 0))).scalar_one()
    avg_surface = (
        await session.execute(select(func.avg(Listing.surface)).where(Listing.surface > 0))
    ).scalar_one()

    top_cities = (
        await session.execute(
            select(Listing.city, func.count(Listing.id).label("n"))
            .where(Listing.city != "")
            .group_by(Listing.city)
            .order_by(func.count(Listing.id).desc(), Listing.city)
            .limit(5)
        )
    ).all()

    return {
        "total": int(total),
        "today": int(today),
        "average_price": round(float(avg_price)) if avg_price is not None else 0,
        "average_surface": round(float(avg_surface)) if avg_surface is not None else 0,
        "top_cities": [{"city": city, "count": int(n)} for city, n in top_cities],
    }


async def vendor_breakdown(session: AsyncSession) -> dict[str, int]:
    rows = (
        await session.execute(select(Listing.vendor_type, func.count(Listing.id)).group_by(Listing.vendor_type))
    ).all()
    out = {v.value: 0 for v in VendorType}
    for vendor, n in rows:
        out[VendorType(vendor).value] = int(n)
    return out


async def price_by_city(session: AsyncSession, *, limit: int = 20) -> list[dict[str, Any]]:
    """Average price and price per m² for the cities with the most listings."""
    rows = (
        await session.execute(
            select(
                Listing.city,
                func.count(Listing.id),
                func.avg(Listing.price),
                func.avg(Listing.price / Listing.surface),
            )
            .where(Listing.city != "", Listing.price > 0, Listing.surface > 0)
            .group_by(Listing.city)
            .order_by(func.count(Listing.id).desc(), Listing.city)
            .limit(limit)
        )
    ).all()
    return [
        {
            "city": city,
            "count": int(n),
            "average_price": round(float(avg_price)),
            "average_price_per_m2": round(float(avg_m2)),
        }
        for city, n, avg_price, avg_m2 in rows
    ]
