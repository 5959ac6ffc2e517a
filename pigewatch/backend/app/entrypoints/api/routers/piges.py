# app/entrypoints/api/routers/piges.py
from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_search_client, require_api_key, require_user
from ....db import get_session
from ....domain.errors import FilterValidationError, ProviderAuthError, ProviderError, ScanLimitExceeded
from ....schemas import NormalizedListingOut, PigeFetchMeta, PigeFetchRequest, PigeFetchResponse, ScanOut
from ....service_layer.throttle import scan_history
from ....service_layer.use_cases.piges import PigeSearchResult, SearchClient, run_pige_search

log = logging.getLogger(__name__)

router = APIRouter(tags=["piges"], dependencies=[Depends(require_api_key)])


def to_response(result: PigeSearchResult) -> PigeFetchResponse:
    return PigeFetchResponse(
        data=[
            NormalizedListingOut(**{**asdict(n), "provider": n.provider.value})
            for n in result.listings
        ],
        meta=PigeFetchMeta(
            total=result.total,
            pages=result.pages,
            has_more=result.has_more,
            partial=result.partial,
            errors=result.errors,
            created=result.created,
            duplicates=result.duplicates,
        ),
    )


async def run_search_or_http_error(
    session: AsyncSession,
    req: PigeFetchRequest,
    user_id: str,
    client: SearchClient,
) -> PigeSearchResult:
    """
    Runs the search and maps domain failures onto HTTP statuses.
    The scan counter is committed even when the search fails.
    """
    try:
        result = await run_pige_search(session, req.filters, user_id, client, persist=req.persist)
    except FilterValidationError as e:
        await session.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except ScanLimitExceeded as e:
        await session.commit()
        raise HTTPException(
            status_code=429,
            detail=str(e),
            headers={"Retry-After": str(e.retry_after_minutes * 60)},
        )
    except ProviderAuthError as e:
        await session.commit()
        log.error("aggregator auth failed: %s", e)
        raise HTTPException(status_code=502, detail="Listing provider rejected our credentials")
    except ProviderError as e:
        await session.commit()
        raise HTTPException(status_code=502, detail=str(e))

    await session.commit()
    return result


@router.post("/piges/fetch", response_model=PigeFetchResponse)
async def fetch_piges(
    req: PigeFetchRequest,
    user_id: str = Depends(require_user),
    client: SearchClient = Depends(get_search_client),
    session: AsyncSession = Depends(get_session),
) -> PigeFetchResponse:
    result = await run_search_or_http_error(session, req, user_id, client)
    return to_response(result)


@router.get("/piges/history", response_model=list[ScanOut])
async def piges_history(
    user_id: str = Depends(require_user),
    session: AsyncSession = Depends(get_session),
) -> list[ScanOut]:
    rows = await scan_history(session, user_id)
    return [ScanOut(hour=r.hour, count=r.count, created_at=r.created_at) for r in rows]
