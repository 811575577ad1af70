"""
In-memory registry of import jobs started through the API.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from alitools.config import get_settings
from alitools.utils.exceptions import ImportJobNotFoundError, ImportJobStateError

settings = get_settings()
logger = logging.getLogger(__name__)

JOB_STATUSES = ("created", "processing", "completed", "failed", "cancelled")
CANCELLABLE_STATUSES = ("created", "processing")
FINISHED_STATUSES = ("completed", "failed", "cancelled")


@dataclass
class ImportJob:
    id: str
    file_path: str
    original_filename: Optional[str] = None
    status: str = "created"
    progress: int = 0
    current_stage: Optional[str] = None
    results: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"


class ImportJobRegistry:
    def __init__(self, ttl_minutes: Optional[int] = None):
        self._jobs: dict[str, ImportJob] = {}
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.IMPORT_JOB_TTL_MINUTES)

    def create(self, file_path: str, original_filename: Optional[str] = None,
               job_id: Optional[str] = None) -> ImportJob:
        job_id = job_id or str(uuid.uuid4())
        if job_id in self._jobs:
            raise ImportJobStateError(f"Job with ID {job_id} already exists")
        job = ImportJob(id=job_id, file_path=file_path, original_filename=original_filename)
        self._jobs[job_id] = job
        logger.info(f"Created import job {job_id} for {file_path}")
        return job

    def get(self, job_id: str) -> ImportJob:
        self.cleanup()
        job = self._jobs.get(job_id)
        if job is None:
            raise ImportJobNotFoundError(job_id)
        return job

    def update(self, job_id: str, status: Optional[str] = None, progress: Optional[int] = None,
               current_stage: Optional[str] = None, results: Optional[dict] = None,
               error: Optional[str] = None) -> ImportJob:
        job = self.get(job_id)
        if status is not None:
            if status not in JOB_STATUSES:
                raise ImportJobStateError(f"Unknown job status '{status}'")
            job.status = status
            if status in FINISHED_STATUSES:
                job.finished_at = datetime.utcnow()
        if progress is not None:
            job.progress = max(0, min(100, progress))
        if current_stage is not None:
            job.current_stage = current_stage
        if results:
            job.results.update(results)
        if error is not None:
            job.error = error
        job.updated_at = datetime.utcnow()
        return job

    def list_jobs(self, status: Optional[str] = None) -> list[ImportJob]:
        self.cleanup()
        jobs = [job for job in self._jobs.values() if status is None or job.status == status]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    def cancel(self, job_id: str) -> ImportJob:
        job = self.get(job_id)
        if job.status not in CANCELLABLE_STATUSES:
            raise ImportJobStateError(f"Cannot cancel job with status: {job.status}")
        logger.info(f"Cancelling import job {job_id}")
        return self.update(job_id, status="cancelled")

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Forget finished jobs older than the TTL. Returns how many were removed."""
        cutoff = (now or datetime.utcnow()) - self.ttl
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.status in FINISHED_STATUSES and (job.finished_at or job.updated_at) < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info(f"Cleaned up {len(expired)} expired import jobs")
        return len(expired)


job_registry = ImportJobRegistry()
