"""
GEKO API sync routes - manual sync and the background sync schedule
"""
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from alitools.config import get_settings
from alitools.database import get_session_factory
from alitools.services.geko_sync import GekoSyncScheduler, run_url_sync, sync_scheduler
from alitools.utils.exceptions import FeedError, FeedFetchError, ImportStageError

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter()


def get_sync_scheduler() -> GekoSyncScheduler:
    return sync_scheduler


# ─── Schemas ───

class ManualSyncRequest(BaseModel):
    apiUrl: Optional[str] = None


class ScheduleRequest(BaseModel):
    apiUrl: Optional[str] = None
    intervalMinutes: Optional[int] = Field(None, ge=1, le=24 * 60)


class ManualSyncResponse(BaseModel):
    success: bool
    message: str
    duration: float
    stats: dict[str, Any]
    skipped: dict[str, Any] = {}


class ScheduleStatusResponse(BaseModel):
    is_running: bool
    url: Optional[str] = None
    interval_minutes: Optional[int] = None
    started_at: Optional[datetime] = None
    runs: int
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None
    last_error: Optional[str] = None


def _api_url(requested: Optional[str]) -> str:
    url = requested or settings.GEKO_API_URL
    if not url:
        raise HTTPException(400, "No GEKO API URL given and GEKO_API_URL is not configured")
    return url


# ─── Routes ───

@router.post("/manual-sync", response_model=ManualSyncResponse)
async def manual_sync(
    body: Optional[ManualSyncRequest] = None,
    session_factory=Depends(get_session_factory),
):
    """Download the GEKO feed and import it now"""
    url = _api_url(body.apiUrl if body else None)
    logger.info(f"Running manual GEKO API sync with URL: {url}")
    try:
        result = await run_url_sync(url, session_factory=session_factory, sync_type="manual")
    except FeedFetchError as e:
        raise HTTPException(502, str(e))
    except FeedError as e:
        raise HTTPException(422, str(e))
    except ImportStageError as e:
        raise HTTPException(500, str(e))

    return ManualSyncResponse(
        message=f"Manual GEKO API sync completed in {result['duration']:.2f} seconds",
        **result,
    )


@router.post("/start-sync", response_model=ScheduleStatusResponse)
async def start_sync(
    body: Optional[ScheduleRequest] = None,
    scheduler: GekoSyncScheduler = Depends(get_sync_scheduler),
    session_factory=Depends(get_session_factory),
):
    """Start (or restart) the scheduled GEKO API sync"""
    url = _api_url(body.apiUrl if body else None)
    interval = (body.intervalMinutes if body else None) or settings.GEKO_SYNC_INTERVAL_MINUTES
    await scheduler.start(url, interval, session_factory=session_factory)
    return scheduler.status()


@router.post("/stop-sync")
async def stop_sync(scheduler: GekoSyncScheduler = Depends(get_sync_scheduler)):
    stopped = await scheduler.stop()
    return {
        "stopped": stopped,
        "message": "Scheduled GEKO API sync stopped" if stopped else "No scheduled GEKO API sync was running",
    }


@router.get("/sync-status", response_model=ScheduleStatusResponse)
async def sync_status(scheduler: GekoSyncScheduler = Depends(get_sync_scheduler)):
    return scheduler.status()
