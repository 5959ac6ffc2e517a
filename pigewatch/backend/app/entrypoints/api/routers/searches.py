# app/entrypoints/api/routers/searches.py
from __future__ import annotations

import json
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_search_client, require_api_key, require_user
from ....adapters.repos.listings import SavedSearchRepository
from ....db import get_session
from ....models import SavedSearch
from ....schemas import PigeFetchRequest, PigeFetchResponse, SavedSearchIn, SavedSearchOut
from ....domain.errors import FilterValidationError
from ....domain.locations import build_locations
from ....service_layer.use_cases.piges import PigeFilters, SearchClient, postal_codes_of, validate_filters
from .piges import run_search_or_http_error, to_response

router = APIRouter(tags=["searches"], dependencies=[Depends(require_api_key)])


def search_out(s: SavedSearch) -> SavedSearchOut:
    return SavedSearchOut(
        id=s.id,
        name=s.name,
        filters=PigeFilters.model_validate(json.loads(s.filters_json or "{}")),
        last_run_at=s.last_run_at,
        created_at=s.created_at,
    )


@router.get("/searches", response_model=list[SavedSearchOut])
async def list_searches(
    user_id: str = Depends(require_user),
    session: AsyncSession = Depends(get_session),
) -> list[SavedSearchOut]:
    return [search_out(s) for s in await SavedSearchRepository(session).list_for_user(user_id)]


@router.post("/searches", response_model=SavedSearchOut, status_code=201)
async def save_search(
    body: SavedSearchIn,
    user_id: str = Depends(require_user),
    session: AsyncSession = Depends(get_session),
) -> SavedSearchOut:
    try:
        validate_filters(body.filters)
        build_locations(postal_codes_of(body.filters))
    except FilterValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    s = await SavedSearchRepository(session).save(user_id, body.name.strip(), body.filters.model_dump())
    await session.commit()
    return search_out(s)


@router.delete("/searches/{search_id}")
async def delete_search(
    search_id: int,
    user_id: str = Depends(require_user),
    session: AsyncSession = Depends(get_session),
) -> dict[str, bool]:
    deleted = await SavedSearchRepository(session).delete(user_id, search_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Saved search {search_id} not found")
    await session.commit()
    return {"deleted": True}


@router.post("/searches/{search_id}/run", response_model=PigeFetchResponse)
async def run_search(
    search_id: int,
    user_id: str = Depends(require_user),
    client: SearchClient = Depends(get_search_client),
    session: AsyncSession = Depends(get_session),
) -> PigeFetchResponse:
    repo = SavedSearchRepository(session)
    s = await repo.get(user_id, search_id)
    if s is None:
        raise HTTPException(status_code=404, detail=f"Saved search {search_id} not found")

    filters = PigeFilters.model_validate(json.loads(s.filters_json or "{}"))
    result = await run_search_or_http_error(session, PigeFetchRequest(filters=filters, persist=True), user_id, client)

    s.last_run_at = datetime.utcnow()
    await session.commit()
    return to_response(result)
