"""
Sync health tracking - records one SyncHealth row per import run and
aggregates them for the admin dashboard.
"""
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alitools.models.sync_health import SyncHealth

logger = logging.getLogger(__name__)

MAX_ERROR_DETAILS = 20


class SyncHealthTracker:
    """Collects metrics for one run; `finish` persists them in its own transaction."""

    def __init__(self, sync_type: str, source: str, request_size_bytes: Optional[int] = None):
        self.sync_type = sync_type
        self.source = source
        self.request_size_bytes = request_size_bytes
        self.items_processed: dict[str, int] = {}
        self.errors: list[dict[str, Any]] = []
        self.start_time: Optional[datetime] = None
        self._started: Optional[float] = None

    def start(self) -> "SyncHealthTracker":
        self.start_time = datetime.utcnow()
        self._started = time.monotonic()
        return self

    def record_error(self, error_type: str, message: str, details: Any = None) -> None:
        self.errors.append({
            "type": error_type,
            "message": message,
            "details": details,
            "timestamp": datetime.utcnow().isoformat(),
        })

    def add_items(self, counts: dict[str, int]) -> None:
        for name, count in counts.items():
            self.items_processed[name] = self.items_processed.get(name, 0) + int(count)

    def build_record(self, status: Optional[str] = None, extra_details: Optional[dict] = None) -> SyncHealth:
        if self.start_time is None:
            self.start()
        end_time = datetime.utcnow()
        duration = time.monotonic() - self._started

        if status is None:
            status = "failed" if self.errors else "success"

        error_details = None
        if self.errors or extra_details:
            error_details = {"errors": self.errors[:MAX_ERROR_DETAILS]}
            if extra_details:
                error_details.update(extra_details)

        return SyncHealth(
            sync_type=self.sync_type,
            status=status,
            start_time=self.start_time,
            end_time=end_time,
            duration_seconds=round(duration, 3),
            source=self.source[:512],
            request_size_bytes=self.request_size_bytes,
            items_processed=dict(self.items_processed),
            error_count=len(self.errors),
            error_details=error_details,
        )

    async def finish(self, session_factory, status: Optional[str] = None,
                     extra_details: Optional[dict] = None) -> Optional[SyncHealth]:
        """Persist the run. Failure to write health data is logged, not raised."""
        record = self.build_record(status, extra_details)
        try:
            async with session_factory() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save sync health data: {e}")
            return None
        logger.info(
            f"Sync {self.sync_type} finished with status {record.status} "
            f"in {record.duration_seconds:.2f}s ({record.error_count} errors)"
        )
        return record


async def get_recent_sync_health(session: AsyncSession, limit: int = 10, offset: int = 0) -> list[SyncHealth]:
    result = await session.execute(
        select(SyncHealth)
        .order_by(SyncHealth.start_time.desc(), SyncHealth.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def get_health_stats(session: AsyncSession, start: Optional[datetime] = None,
                           end: Optional[datetime] = None) -> dict[str, Any]:
    """Aggregate statistics for runs started within [start, end]."""
    end = end or datetime.utcnow()
    start = start or end - timedelta(days=7)

    result = await session.execute(
        select(SyncHealth).where(SyncHealth.start_time >= start, SyncHealth.start_time <= end)
    )
    records = result.scalars().all()

    total = len(records)
    successful = sum(1 for r in records if r.status == "success")
    items: dict[str, int] = {}
    for record in records:
        for name, count in (record.items_processed or {}).items():
            if isinstance(count, (int, float)):
                items[name] = items.get(name, 0) + int(count)

    return {
        "period": {"start": start, "end": end},
        "total_syncs": total,
        "success_rate": round(successful / total * 100, 2) if total else 0.0,
        "avg_duration": round(sum(r.duration_seconds for r in records) / total, 3) if total else 0.0,
        "total_errors": sum(r.error_count for r in records),
        "items_processed": items,
    }
