# app/entrypoints/api/routers/jobs.py
from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import require_api_key
from ....adapters.ingestion.base import SyncFilters
from ....db import get_session
from ....domain.errors import FilterValidationError, ProviderError
from ....domain.locations import build_locations
from ....schemas import CleanOut, SyncOut, SyncRequest
from ....service_layer.jobruns import finish_job_fail, finish_job_success, start_job
from ....service_layer.use_cases.sync import build_provider, clean_old_listings, sync_listings

router = APIRouter(tags=["jobs"])


@router.post("/jobs/sync", response_model=SyncOut, dependencies=[Depends(require_api_key)])
async def jobs_sync(
    req: SyncRequest,
    session: AsyncSession = Depends(get_session),
) -> SyncOut:
    if req.provider == "aggregator":
        if not req.postal_codes:
            raise HTTPException(status_code=400, detail="postal_codes is required for the aggregator")
        try:
            build_locations(req.postal_codes)
        except FilterValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if req.provider == "classifieds" and not (req.city or req.postal_codes):
        raise HTTPException(status_code=400, detail="city or postal_codes is required for classifieds")

    filters = SyncFilters(
        postal_codes=[cp.strip() for cp in req.postal_codes if cp.strip()],
        city=req.city,
        price_min=req.price_min,
        price_max=req.price_max,
        surface_min=req.surface_min,
        surface_max=req.surface_max,
        rooms=req.rooms,
        property_kind=req.property_kind,
    )

    jr = await start_job(session, f"sync_{req.provider}")
    await session.commit()
    try:
        res = await sync_listings(
            session,
            build_provider(req.provider),
            filters,
            limit=req.limit,
            update_existing=req.update_existing,
        )
        await finish_job_success(session, jr, res.as_dict())
        await session.commit()
        return SyncOut(job_run_id=jr.id, **res.as_dict())
    except Exception as e:
        await session.rollback()
        await finish_job_fail(session, jr, e)
        await session.commit()
        if isinstance(e, (ProviderError, httpx.HTTPError)):
            raise HTTPException(status_code=502, detail=f"sync failed: {e}")
        raise


@router.post("/jobs/clean", response_model=CleanOut, dependencies=[Depends(require_api_key)])
async def jobs_clean(
    days_to_keep: int = Query(30, ge=1, le=3650),
    session: AsyncSession = Depends(get_session),
) -> CleanOut:
    jr = await start_job(session, "clean")
    await session.commit()
    try:
        res = await clean_old_listings(session, days_to_keep)
        await finish_job_success(session, jr, res)
        await session.commit()
        return CleanOut(job_run_id=jr.id, **res)
    except Exception as e:
        await session.rollback()
        await finish_job_fail(session, jr, e)
        await session.commit()
        raise
