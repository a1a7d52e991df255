"""
Batch Processing

Pending records are processed sequentially, one record fully through
Fetch -> Extract -> Index before the next begins.

Two entry points:
- BatchProcessor.process_pending_batch: bounded, synchronous batch
- BatchJobRunner: "process everything" as a cancellable asyncio task whose
  progress is persisted to the JobStore and polled by clients
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..common.job_store import JobStatus, JobStore, ProcessingJob
from ..common.record_store import RecordStore
from ..common.schemas import KnowledgeRecord, RecordStatus
from .record_builder import RecordBuilder

logger = logging.getLogger("sift.ingest.batch")

DEFAULT_BATCH_SIZE = 10


@dataclass
class BatchResult:
    """Counts for one bounded batch"""
    processed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"processed": self.processed, "failed": self.failed, "errors": self.errors}


class BatchProcessor:
    """Sequential processing of an owner's pending records"""

    def __init__(self, store: RecordStore, builder: RecordBuilder):
        self._store = store
        self._builder = builder

    def pending(self, owner_id: str, limit: Optional[int] = None) -> List[KnowledgeRecord]:
        """Oldest pending records first"""
        return self._store.list_records(owner_id, statuses=[RecordStatus.PENDING], limit=limit)

    def process_one(self, record: KnowledgeRecord) -> Tuple[bool, Optional[str]]:
        """Process a record; returns (succeeded, error).

        A failure of one record (e.g. the store rejecting the update) is
        reported, not raised, so the batch moves on.
        """
        try:
            outcome = self._builder.process(record)
        except Exception as e:
            logger.error("Failed %s: %s", record.id, e)
            return False, str(e)
        return outcome.succeeded, outcome.error

    def process_pending_batch(self, owner_id: str, limit: int = DEFAULT_BATCH_SIZE) -> BatchResult:
        records = self.pending(owner_id, limit=limit)
        if not records:
            logger.info("No pending records for %s", owner_id)
            return BatchResult()

        logger.info("Processing %d pending records for %s", len(records), owner_id)
        result = BatchResult()
        for record in records:
            succeeded, error = self.process_one(record)
            if succeeded:
                result.processed += 1
            else:
                result.failed += 1
                result.errors.append(f"{record.id}: {error}")

        logger.info("Batch complete: %d succeeded, %d failed", result.processed, result.failed)
        return result


class BatchJobRunner:
    """
    Runs "process everything" jobs as asyncio tasks.

    Progress is written to the JobStore after every record. Restarting the
    process and calling resume_interrupted() continues running jobs without
    recounting records they already covered.
    """

    def __init__(self, processor: BatchProcessor, job_store: JobStore):
        self._processor = processor
        self._jobs = job_store
        self._tasks: Dict[str, asyncio.Task] = {}
        self._shutting_down = False

    def _active_job(self, owner_id: str) -> Optional[ProcessingJob]:
        latest = self._jobs.latest(owner_id)
        if latest and not latest.is_finished:
            task = self._tasks.get(latest.id)
            if task and not task.done():
                return latest
        return None

    async def start(self, owner_id: str) -> ProcessingJob:
        """Start a job for all pending records; returns the running job if one exists."""
        active = self._active_job(owner_id)
        if active:
            logger.info("Job %s already running for %s", active.id, owner_id)
            return active

        total = len(self._processor.pending(owner_id))
        job = self._jobs.create(owner_id, total_items=total)
        self._launch(job)
        return job

    def _launch(self, job: ProcessingJob) -> None:
        task = asyncio.create_task(self._run(job.id, job.owner_id), name=f"sift-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda t: self._tasks.pop(job.id, None))

    async def _run(self, job_id: str, owner_id: str) -> None:
        try:
            job = self._jobs.get(owner_id, job_id)
            done = set(job.processed_ids)
            records = [r for r in self._processor.pending(owner_id) if r.id not in done]
            self._jobs.extend_total(job_id, len(done) + len(records))

            for record in records:
                succeeded, error = await asyncio.to_thread(self._processor.process_one, record)
                self._jobs.record_progress(job_id, record.id, succeeded, error)

            self._jobs.finish(job_id, JobStatus.COMPLETED)
        except asyncio.CancelledError:
            if not self._shutting_down:
                self._jobs.finish(job_id, JobStatus.CANCELLED, "cancelled by user")
            raise
        except Exception as e:
            logger.exception("Job %s failed", job_id)
            self._jobs.finish(job_id, JobStatus.FAILED, str(e))

    def get(self, owner_id: str, job_id: str) -> ProcessingJob:
        return self._jobs.get(owner_id, job_id)

    async def cancel(self, owner_id: str, job_id: str) -> ProcessingJob:
        """Cancel a running job. The record in flight finishes; no new ones start."""
        job = self._jobs.get(owner_id, job_id)
        task = self._tasks.get(job_id)
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        elif not job.is_finished:
            # Orphaned by a restart and never resumed
            self._jobs.finish(job_id, JobStatus.CANCELLED, "cancelled by user")
        return self._jobs.get(owner_id, job_id)

    def resume_interrupted(self) -> List[str]:
        """Relaunch jobs left ``running`` by a previous process. Call from a running loop."""
        resumed = []
        for job in self._jobs.list_running():
            if job.id in self._tasks:
                continue
            logger.info("Resuming job %s (%d already counted)", job.id, len(job.processed_ids))
            self._launch(job)
            resumed.append(job.id)
        return resumed

    async def wait(self, owner_id: str, job_id: str) -> ProcessingJob:
        """Await a job's task (tests and CLI use)."""
        task = self._tasks.get(job_id)
        if task:
            await asyncio.shield(task)
        return self._jobs.get(owner_id, job_id)

    async def shutdown(self) -> None:
        """Stop all tasks but leave their jobs running so they resume on restart."""
        self._shutting_down = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
