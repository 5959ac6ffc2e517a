# app/entrypoints/api/routers/debug.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import require_api_key
from ....config import settings
from ....db import get_session
from ....models import JobRun
from ....service_layer.jobruns import latest_runs

router = APIRouter(tags=["debug"])


def _redact(v: str | None) -> str | None:
    if not v:
        return v
    if len(v) <= 8:
        return "***"
    return v[:4] + "***" + v[-4:]


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config() -> dict[str, Any]:
    """
    Reads the *running server's* settings. Secrets are redacted.
    """
    return {
        "ENV": settings.ENV,
        "PIGEWATCH_DB_URL": settings.PIGEWATCH_DB_URL,
        "AGGREGATOR_BASE_URL": settings.AGGREGATOR_BASE_URL,
        "AGGREGATOR_API_KEY": _redact(settings.AGGREGATOR_API_KEY),
        "CLASSIFIEDS_BASE_URL": settings.CLASSIFIEDS_BASE_URL,
        "CLASSIFIEDS_VERIFY_SSL": settings.CLASSIFIEDS_VERIFY_SSL,
        "PIGE_PAGE_SIZE": settings.PIGE_PAGE_SIZE,
        "PIGE_MAX_PAGES": settings.PIGE_MAX_PAGES,
        "PIGE_MAX_TOTAL_RESULTS": settings.PIGE_MAX_TOTAL_RESULTS,
        "PIGE_MAX_SCANS_PER_HOUR": settings.PIGE_MAX_SCANS_PER_HOUR,
        "API_KEY_SET": bool(settings.API_KEY),
    }


@router.get("/debug/job_runs/latest", dependencies=[Depends(require_api_key)])
async def debug_job_runs_latest(
    limit: int = Query(default=5, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    rows = await latest_runs(session, limit=int(limit))

    def _row(r: JobRun) -> dict[str, Any]:
        return {
            "id": r.id,
            "job_name": r.job_name,
            "status": r.status.value,
            "started_at": str(r.started_at),
            "finished_at": str(r.finished_at) if r.finished_at else None,
            "error": (r.error or "")[:1200],
            "summary": (r.summary_json or "")[:1200],
        }

    return {"items": [_row(r) for r in rows]}
