# app/entrypoints/api/routers/tags.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import require_api_key
from ....adapters.repos.listings import ListingRepository
from ....db import get_session
from ....schemas import TagIn, TagOut

router = APIRouter(tags=["tags"], dependencies=[Depends(require_api_key)])


@router.get("/tags", response_model=list[TagOut])
async def list_tags(session: AsyncSession = Depends(get_session)) -> list[TagOut]:
    return [TagOut(id=t.id, name=t.name) for t in await ListingRepository(session).list_tags()]


@router.post("/tags", response_model=TagOut, status_code=201)
async def create_tag(body: TagIn, session: AsyncSession = Depends(get_session)) -> TagOut:
    t = await ListingRepository(session).get_or_create_tag(body.name)
    await session.commit()
    return TagOut(id=t.id, name=t.name)
