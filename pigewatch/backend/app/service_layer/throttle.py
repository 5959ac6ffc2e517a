# app/service_layer/throttle.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..domain.errors import ScanLimitExceeded
from ..models import UserScan

log = logging.getLogger(__name__)


def current_hour(now: datetime | None = None) -> datetime:
    return (now or datetime.utcnow()).replace(minute=0, second=0, microsecond=0)


async def _increment(session: AsyncSession, user_id: str, hour: datetime, now: datetime) -> int:
    """
    INSERT ... ON CONFLICT DO UPDATE count = count + 1, then read the count back.
    The increment happens in the database so concurrent scans can't overwrite each other.
    """
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    stmt = (
        insert(UserScan)
        .values(user_id=user_id, hour=hour, count=1, created_at=now)
        .on_conflict_do_update(
            index_elements=["user_id", "hour"],
            set_={"count": UserScan.count + 1},
        )
    )
    await session.execute(stmt)

    q = select(UserScan.count).where(UserScan.user_id == user_id, UserScan.hour == hour)
    return int((await session.execute(q)).scalar_one())


async def purge_old_scans(session: AsyncSession, *, now: datetime | None = None) -> int:
    cutoff = (now or datetime.utcnow()) - timedelta(hours=settings.SCAN_RETENTION_HOURS)
    res = await session.execute(delete(UserScan).where(UserScan.hour < cutoff))
    return int(res.rowcount or 0)


async def throttle_user(
    session: AsyncSession,
    user_id: str,
    max_scans: int | None = None,
    *,
    now: datetime | None = None,
) -> int:
    """
    Count one scan for `user_id` in the current hour and return the new count.

    Raises ScanLimitExceeded once the count goes past `max_scans`. The refused
    scan still counts, so hammering the endpoint does not reset anything.
    """
    now = now or datetime.utcnow()
    limit = settings.PIGE_MAX_SCANS_PER_HOUR if max_scans is None else max_scans

    count = await _increment(session, user_id, current_hour(now), now)
    if count > limit:
        raise ScanLimitExceeded(limit, retry_after_minutes=60 - now.minute)

    # savepoint: a failed purge must not undo the increment above
    try:
        async with session.begin_nested():
            removed = await purge_old_scans(session, now=now)
        if removed:
            log.debug("purged %d old scan counters", removed)
    except SQLAlchemyError as e:
        log.warning("scan counter purge failed: %r", e)

    return count


async def get_user_scan_count(session: AsyncSession, user_id: str, *, now: datetime | None = None) -> int:
    q = select(UserScan.count).where(UserScan.user_id == user_id, UserScan.hour == current_hour(now))
    return int((await session.execute(q)).scalar() or 0)


async def scan_history(
    session: AsyncSession,
    user_id: str,
    *,
    now: datetime | None = None,
    limit: int = 50,
) -> list[UserScan]:
    cutoff = (now or datetime.utcnow()) - timedelta(hours=settings.SCAN_RETENTION_HOURS)
    q = (
        select(UserScan)
        .where(UserScan.user_id == user_id, UserScan.hour >= cutoff)
        .order_by(UserScan.hour.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list((await session.execute(q)).scalars().all())
