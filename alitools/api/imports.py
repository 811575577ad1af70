"""
Admin import API - upload GEKO XML feeds, follow import jobs, inspect sync
history and catalog integrity.
"""
import logging
import os
import uuid
from datetime import datetime, timedelta
from typing import Any, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alitools.config import get_settings
from alitools.database import get_db, get_session_factory
from alitools.services.catalog_importer import STAGES, StageResult, run_pipeline
from alitools.services.import_jobs import job_registry, JOB_STATUSES
from alitools.services.integrity_checker import check_integrity, count_rows
from alitools.services.sync_health import get_recent_sync_health, get_health_stats
from alitools.utils.exceptions import (
    FeedError, ImportJobNotFoundError, ImportJobStateError, ImportStageError,
)

settings = get_settings()
logger = logging.getLogger(__name__)

XML_CONTENT_TYPES = {"application/xml", "text/xml"}
UPLOAD_CHUNK_SIZE = 1024 * 1024

router = APIRouter()


# ─── Schemas ───

class UploadResponse(BaseModel):
    jobId: str
    status: str
    message: str


class ImportJobResponse(BaseModel):
    id: str
    status: str
    progress: int
    current_stage: Optional[str] = None
    original_filename: Optional[str] = None
    results: dict[str, Any] = {}
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncHealthResponse(BaseModel):
    id: int
    sync_type: str
    status: str
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    source: str
    request_size_bytes: Optional[int] = None
    items_processed: dict[str, Any] = {}
    error_count: int
    error_details: Optional[dict[str, Any]] = None

    class Config:
        from_attributes = True


# ─── Background processing ───

async def process_import_job(job_id: str, file_path: str, session_factory) -> None:
    """Run all stages for an uploaded feed, keeping the job record current.

    The stored upload is removed once the job ends, whatever its outcome.
    """
    try:
        await _run_import_job(job_id, file_path, session_factory)
    finally:
        if os.path.exists(file_path):
            os.remove(file_path)
            logger.debug(f"Removed uploaded file {file_path}")


async def _run_import_job(job_id: str, file_path: str, session_factory) -> None:
    job = job_registry.get(job_id)
    if job.is_cancelled:
        logger.info(f"Import job {job_id} was cancelled before it started")
        return

    job_registry.update(job_id, status="processing", progress=0)

    def should_continue() -> bool:
        return not job_registry.get(job_id).is_cancelled

    def on_stage_complete(result: StageResult) -> None:
        done = STAGES.index(result.stage) + 1
        job_registry.update(
            job_id,
            progress=int(done / len(STAGES) * 100),
            current_stage=result.stage,
            results={result.stage: {"counts": result.counts, "skipped": result.skipped}},
        )

    try:
        await run_pipeline(
            file_path,
            session_factory=session_factory,
            should_continue=should_continue,
            on_stage_complete=on_stage_complete,
        )
    except (FeedError, ImportStageError, SQLAlchemyError) as e:
        logger.error(f"Import job {job_id} failed: {e}")
        job_registry.update(job_id, status="failed", error=str(e))
        return
    except Exception as e:
        logger.exception(f"Import job {job_id} failed with an unexpected error")
        job_registry.update(job_id, status="failed", error=f"{type(e).__name__}: {e}")
        return

    if not job_registry.get(job_id).is_cancelled:
        job_registry.update(job_id, status="completed", progress=100)
        logger.info(f"Import job {job_id} completed")


async def _store_upload(xml_file: UploadFile, file_path: str) -> int:
    """Copy the upload to `file_path` chunk by chunk, enforcing MAX_UPLOAD_MB."""
    max_size = settings.MAX_UPLOAD_MB * 1024 * 1024
    size = 0
    has_content = False
    try:
        with open(file_path, "wb") as f:
            while True:
                chunk = await xml_file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_size:
                    raise HTTPException(413, f"File too large. Maximum size: {settings.MAX_UPLOAD_MB}MB")
                has_content = has_content or bool(chunk.strip())
                f.write(chunk)
        if not has_content:
            raise HTTPException(400, "Uploaded file is empty")
    except Exception:
        os.remove(file_path)
        raise
    return size


# ─── Routes ───

@router.post("/xml", response_model=UploadResponse, status_code=202)
async def upload_xml(
    background_tasks: BackgroundTasks,
    xml_file: UploadFile = File(..., alias="xmlFile"),
    session_factory=Depends(get_session_factory),
):
    """Upload a GEKO XML feed and queue its import"""
    filename = xml_file.filename or ""
    ext = os.path.splitext(filename)[1].lower()
    if ext != ".xml" and (xml_file.content_type or "") not in XML_CONTENT_TYPES:
        raise HTTPException(400, "Only XML files are allowed")

    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}.xml"
    file_path = os.path.join(settings.UPLOAD_DIR, stored_name)
    size = await _store_upload(xml_file, file_path)

    job = job_registry.create(file_path, original_filename=filename)
    background_tasks.add_task(process_import_job, job.id, file_path, session_factory)
    logger.info(f"Queued import job {job.id} for '{filename}' ({size} bytes)")

    return UploadResponse(jobId=job.id, status=job.status, message="XML import queued")


@router.get("/jobs", response_model=List[ImportJobResponse])
async def list_jobs(status: Optional[str] = Query(None)):
    if status is not None and status not in JOB_STATUSES:
        raise HTTPException(400, f"Invalid status. Allowed: {', '.join(JOB_STATUSES)}")
    return job_registry.list_jobs(status)


@router.get("/jobs/{job_id}", response_model=ImportJobResponse)
async def get_job(job_id: str):
    try:
        return job_registry.get(job_id)
    except ImportJobNotFoundError:
        raise HTTPException(404, "Import job not found")


@router.delete("/jobs/{job_id}", response_model=ImportJobResponse)
async def cancel_job(job_id: str):
    try:
        return job_registry.cancel(job_id)
    except ImportJobNotFoundError:
        raise HTTPException(404, "Import job not found")
    except ImportJobStateError as e:
        raise HTTPException(409, str(e))


@router.get("/history", response_model=List[SyncHealthResponse])
async def sync_history(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await get_recent_sync_health(db, limit=limit, offset=offset)


@router.get("/stats")
async def sync_stats(days: int = Query(7, ge=1, le=365), db: AsyncSession = Depends(get_db)):
    end = datetime.utcnow()
    return await get_health_stats(db, start=end - timedelta(days=days), end=end)


@router.get("/integrity")
async def integrity(db: AsyncSession = Depends(get_db)):
    report = await check_integrity(db)
    return {**report.to_dict(), "counts": await count_rows(db)}
