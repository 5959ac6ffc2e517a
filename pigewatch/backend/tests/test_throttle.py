from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, text, update

from app.domain.errors import ScanLimitExceeded
from app.models import UserScan
from app.service_layer import throttle
from app.service_layer.throttle import get_user_scan_count, scan_history, throttle_user

NOW = datetime(2026, 10, 17, 14, 35)


@pytest.mark.asyncio
async def test_counts_scans_per_hour(session):
    assert await throttle_user(session, "u1", 3, now=NOW) == 1
    assert await throttle_user(session, "u1", 3, now=NOW + timedelta(minutes=10)) == 2
    assert await get_user_scan_count(session, "u1", now=NOW) == 2
    assert await get_user_scan_count(session, "u2", now=NOW) == 0

    # next hour starts from zero
    assert await throttle_user(session, "u1", 3, now=NOW + timedelta(hours=1)) == 1


@pytest.mark.asyncio
async def test_limit_raises_with_retry_delay(session):
    for _ in range(2):
        await throttle_user(session, "u1", 2, now=NOW)

    with pytest.raises(ScanLimitExceeded) as info:
        await throttle_user(session, "u1", 2, now=NOW)

    assert info.value.max_scans == 2
    assert info.value.retry_after_minutes == 25
    assert "2 scans per hour" in str(info.value)


@pytest.mark.asyncio
async def test_old_counters_are_purged(session):
    session.add(UserScan(user_id="u1", hour=NOW - timedelta(hours=30), count=4))
    await session.flush()

    await throttle_user(session, "u1", 20, now=NOW)

    hours = (await session.execute(select(UserScan.hour))).scalars().all()
    assert hours == [NOW.replace(minute=0)]


@pytest.mark.asyncio
async def test_history_is_last_day_newest_first(session):
    for h in (1, 3, 30):
        session.add(UserScan(user_id="u1", hour=NOW.replace(minute=0) - timedelta(hours=h), count=h))
    session.add(UserScan(user_id="u2", hour=NOW.replace(minute=0), count=9))
    await session.flush()

    rows = await scan_history(session, "u1", now=NOW)
    assert [r.count for r in rows] == [1, 3]


@pytest.mark.asyncio
async def test_increment_happens_in_the_database(session):
    await throttle_user(session, "u1", 20, now=NOW)
    loaded = (await session.execute(select(UserScan))).scalars().one()
    assert loaded.count == 1

    # another request bumps the row behind this session's back
    await session.execute(
        update(UserScan).where(UserScan.id == loaded.id).values(count=5),
        execution_options={"synchronize_session": False},
    )

    assert await throttle_user(session, "u1", 20, now=NOW) == 6
    assert await get_user_scan_count(session, "u1", now=NOW) == 6


@pytest.mark.asyncio
async def test_purge_failure_is_ignored(session, monkeypatch, caplog):
    async def broken_purge(session, *, now=None):
        await session.execute(text("DELETE FROM no_such_table"))
        return 0

    monkeypatch.setattr(throttle, "purge_old_scans", broken_purge)

    assert await throttle_user(session, "u1", 20, now=NOW) == 1
    await session.commit()

    assert await get_user_scan_count(session, "u1", now=NOW) == 1
    assert "purge failed" in caplog.text
