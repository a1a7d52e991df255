"""
Processing Job Store

Persisted progress records for long-running batch jobs. Clients poll a job
instead of holding a request open.

Progress is monotonic and idempotent: a record id is counted at most once,
so replaying a record after a restart never inflates the counters.
Persisted to ~/.sift/data/jobs.json.
"""

import logging
import threading
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .errors import OwnershipError
from .record_store import read_collection, write_collection
from .schemas.knowledge_record import utcnow

logger = logging.getLogger("sift.common.job_store")

MAX_STORED_ERRORS = 50


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ProcessingJob(BaseModel):
    """Polled progress record for a background batch"""
    id: str
    owner_id: str
    job_type: str = "process_pending"
    status: JobStatus = JobStatus.RUNNING
    total_items: int = 0
    processed_items: int = 0
    failed_items: int = 0
    processed_ids: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status != JobStatus.RUNNING

    @property
    def remaining(self) -> int:
        return max(0, self.total_items - self.processed_items - self.failed_items)

    def summary(self) -> dict:
        """Client-facing view without the id ledger"""
        return self.model_dump(mode="json", exclude={"processed_ids"})


class JobStore:
    """
    Stores ProcessingJob records, optionally persisted to a JSON file.

    Args:
        path: JSON file to persist to; None keeps jobs in memory only
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else None
        self._jobs: Dict[str, ProcessingJob] = {}
        self._rejected: List[dict] = []
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        """Load jobs from disk. Rows that fail validation are kept raw and written back."""
        if self._path is None:
            return
        jobs, self._rejected = read_collection(self._path, ProcessingJob)
        self._jobs = {job.id: job for job in jobs}

    def _save(self) -> None:
        """Save jobs to disk"""
        if self._path is None:
            return
        write_collection(self._path, self._jobs.values(), self._rejected)

    def create(self, owner_id: str, total_items: int, job_type: str = "process_pending") -> ProcessingJob:
        job = ProcessingJob(
            id=f"job_{uuid.uuid4().hex[:12]}",
            owner_id=owner_id,
            job_type=job_type,
            total_items=total_items,
        )
        with self._lock:
            self._jobs[job.id] = job
            self._save()
        logger.info("Created job %s for %s (%d items)", job.id, owner_id, total_items)
        return job.model_copy(deep=True)

    def get(self, owner_id: str, job_id: str) -> ProcessingJob:
        job = self._jobs.get(job_id)
        if job is None or job.owner_id != owner_id:
            raise OwnershipError("job", job_id)
        return job.model_copy(deep=True)

    def latest(self, owner_id: str) -> Optional[ProcessingJob]:
        jobs = [j for j in self._jobs.values() if j.owner_id == owner_id]
        if not jobs:
            return None
        return max(jobs, key=lambda j: j.started_at).model_copy(deep=True)

    def list_running(self) -> List[ProcessingJob]:
        return [j.model_copy(deep=True) for j in self._jobs.values() if j.status == JobStatus.RUNNING]

    def record_progress(
        self,
        job_id: str,
        record_id: str,
        succeeded: bool,
        error: Optional[str] = None,
    ) -> ProcessingJob:
        """Count one record. Repeated calls for the same record id are no-ops."""
        with self._lock:
            job = self._jobs[job_id]
            if job.is_finished or record_id in job.processed_ids:
                return job.model_copy(deep=True)

            job.processed_ids.append(record_id)
            if succeeded:
                job.processed_items += 1
            else:
                job.failed_items += 1
                if error and len(job.errors) < MAX_STORED_ERRORS:
                    job.errors.append(f"{record_id}: {error}")
            # Newly captured records can push the count past the original total
            job.total_items = max(job.total_items, job.processed_items + job.failed_items)
            job.updated_at = utcnow()
            self._save()
            return job.model_copy(deep=True)

    def extend_total(self, job_id: str, total_items: int) -> None:
        """Raise the expected total; never lowers it."""
        with self._lock:
            job = self._jobs[job_id]
            if total_items > job.total_items:
                job.total_items = total_items
                job.updated_at = utcnow()
                self._save()

    def finish(self, job_id: str, status: JobStatus, error_message: Optional[str] = None) -> ProcessingJob:
        with self._lock:
            job = self._jobs[job_id]
            if job.is_finished:
                return job.model_copy(deep=True)
            job.status = JobStatus(status)
            job.error_message = error_message
            job.completed_at = utcnow()
            job.updated_at = job.completed_at
            self._save()
        logger.info(
            "Job %s %s: %d processed, %d failed",
            job_id, job.status.value, job.processed_items, job.failed_items,
        )
        return job.model_copy(deep=True)
