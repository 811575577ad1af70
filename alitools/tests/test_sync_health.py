"""
Sync health tracking and statistics tests
"""
from datetime import datetime, timedelta

from alitools.models import SyncHealth
from alitools.services.sync_health import (
    SyncHealthTracker, get_recent_sync_health, get_health_stats,
)


def _record(status, start, duration=2.0, errors=0, items=None):
    return SyncHealth(
        sync_type="manual_import",
        status=status,
        start_time=start,
        end_time=start + timedelta(seconds=duration),
        duration_seconds=duration,
        source="feed.xml",
        items_processed=items or {},
        error_count=errors,
    )


async def test_tracker_persists_run(session_factory, db_session):
    tracker = SyncHealthTracker("manual_import", "feed.xml", request_size_bytes=2048).start()
    tracker.add_items({"products": 2})
    tracker.add_items({"products": 3, "variants": 4})

    record = await tracker.finish(session_factory)

    assert record.status == "success"
    assert len(await get_recent_sync_health(db_session)) == 1
    stored = (await get_recent_sync_health(db_session))[0]
    assert stored.items_processed == {"products": 5, "variants": 4}
    assert stored.request_size_bytes == 2048
    assert stored.error_details is None


async def test_tracker_with_errors_fails(session_factory):
    tracker = SyncHealthTracker("manual_import", "feed.xml").start()
    tracker.record_error("products", "boom", {"code": "P1"})

    record = await tracker.finish(session_factory)

    assert record.status == "failed"
    assert record.error_count == 1
    assert record.error_details["errors"][0]["message"] == "boom"


async def test_recent_is_newest_first(db_session):
    now = datetime.utcnow()
    db_session.add_all([
        _record("success", now - timedelta(hours=2)),
        _record("failed", now - timedelta(hours=1)),
    ])
    await db_session.commit()

    recent = await get_recent_sync_health(db_session, limit=1)
    assert [r.status for r in recent] == ["failed"]

    older = await get_recent_sync_health(db_session, limit=1, offset=1)
    assert [r.status for r in older] == ["success"]


async def test_health_stats(db_session):
    now = datetime.utcnow()
    db_session.add_all([
        _record("success", now - timedelta(days=1), duration=2.0, items={"products": 10}),
        _record("failed", now - timedelta(days=2), duration=4.0, errors=3, items={"products": 5}),
        _record("success", now - timedelta(days=30), duration=100.0),
    ])
    await db_session.commit()

    stats = await get_health_stats(db_session, start=now - timedelta(days=7), end=now)

    assert stats["total_syncs"] == 2
    assert stats["success_rate"] == 50.0
    assert stats["avg_duration"] == 3.0
    assert stats["total_errors"] == 3
    assert stats["items_processed"] == {"products": 15}


async def test_health_stats_empty(db_session):
    stats = await get_health_stats(db_session)
    assert stats["total_syncs"] == 0
    assert stats["success_rate"] == 0.0
