# app/entrypoints/api/routers/reports.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import require_api_key
from ....db import get_session
from ....service_layer.reports import global_stats, price_by_city, vendor_breakdown

router = APIRouter(tags=["reports"], dependencies=[Depends(require_api_key)])


@router.get("/reports/summary")
async def reports_summary(session: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    return {
        "stats": await global_stats(session),
        "vendors": await vendor_breakdown(session),
        "cities": await price_by_city(session),
    }
