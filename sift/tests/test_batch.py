"""Tests for job progress bookkeeping and the background batch runner."""

import asyncio
import json
import threading

import pytest

from sift.common.job_store import JobStatus, JobStore


async def wait_until(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def capture_many(pipeline, count, owner_id="owner-1"):
    return [
        pipeline.capture_reference(owner_id, f"https://example.com/article-{n}", title=f"AI models {n}")
        for n in range(count)
    ]


@pytest.fixture
def blocking_processor(pipeline, monkeypatch):
    """process_one blocks until released; the in-flight record is observable"""
    started = threading.Event()
    release = threading.Event()
    calls = []

    def process_one(record):
        calls.append(record.id)
        started.set()
        release.wait(5)
        return True, None

    monkeypatch.setattr(pipeline.processor, "process_one", process_one)
    yield started, calls, release
    release.set()


class TestJobStore:
    def test_progress_counted_once_per_record(self):
        store = JobStore()
        job = store.create("owner-1", total_items=2)

        store.record_progress(job.id, "kr_a", True)
        store.record_progress(job.id, "kr_a", True)
        job = store.record_progress(job.id, "kr_b", False, "fetch failed")

        assert job.processed_items == 1
        assert job.failed_items == 1
        assert job.errors == ["kr_b: fetch failed"]
        assert job.remaining == 0

    def test_replay_of_failed_record_does_not_flip_it(self):
        store = JobStore()
        job = store.create("owner-1", total_items=1)

        store.record_progress(job.id, "kr_a", False, "boom")
        job = store.record_progress(job.id, "kr_a", True)

        assert (job.processed_items, job.failed_items) == (0, 1)

    def test_total_never_drops_below_counted(self):
        store = JobStore()
        job = store.create("owner-1", total_items=1)

        store.record_progress(job.id, "kr_a", True)
        job = store.record_progress(job.id, "kr_b", True)

        assert job.total_items == 2

    def test_extend_total_only_raises(self):
        store = JobStore()
        job = store.create("owner-1", total_items=5)

        store.extend_total(job.id, 3)
        assert store.get("owner-1", job.id).total_items == 5
        store.extend_total(job.id, 8)
        assert store.get("owner-1", job.id).total_items == 8

    def test_finished_job_is_frozen(self):
        store = JobStore()
        job = store.create("owner-1", total_items=2)
        store.finish(job.id, JobStatus.CANCELLED, "cancelled by user")

        store.record_progress(job.id, "kr_a", True)
        job = store.finish(job.id, JobStatus.COMPLETED)

        assert job.status == JobStatus.CANCELLED
        assert job.processed_items == 0
        assert job.completed_at is not None

    def test_owner_scoping(self):
        from sift.common.errors import OwnershipError
        store = JobStore()
        job = store.create("owner-1", total_items=0)

        with pytest.raises(OwnershipError):
            store.get("owner-2", job.id)
        assert store.latest("owner-2") is None

    def test_persisted_and_reloaded(self, tmp_path):
        path = tmp_path / "jobs.json"
        store = JobStore(path)
        job = store.create("owner-1", total_items=3)
        store.record_progress(job.id, "kr_a", True)

        reloaded = JobStore(path).get("owner-1", job.id)

        assert reloaded.processed_ids == ["kr_a"]
        assert reloaded.status == JobStatus.RUNNING

    def test_unparseable_file_refuses_to_start(self, tmp_path):
        from sift.common.errors import ConfigurationError
        path = tmp_path / "jobs.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            JobStore(path)
        assert path.read_text() == "{not json"

    def test_unreadable_row_survives_rewrite(self, tmp_path):
        path = tmp_path / "jobs.json"
        store = JobStore(path)
        kept = store.create("owner-1", total_items=1)
        rows = json.loads(path.read_text())
        rows.append({"id": "job_broken", "owner_id": "owner-1", "status": "paused"})
        path.write_text(json.dumps(rows))

        reloaded = JobStore(path)
        reloaded.create("owner-1", total_items=2)

        ids = [row["id"] for row in json.loads(path.read_text())]
        assert kept.id in ids
        assert "job_broken" in ids
        assert len(ids) == 3

    def test_summary_hides_id_ledger(self):
        store = JobStore()
        job = store.create("owner-1", total_items=1)
        job = store.record_progress(job.id, "kr_a", True)

        summary = job.summary()

        assert "processed_ids" not in summary
        assert summary["status"] == "running"
        assert summary["processed_items"] == 1


class TestBatchProcessor:
    def test_bounded_batch_oldest_first(self, pipeline):
        ids = capture_many(pipeline, 3)

        result = pipeline.process_pending_batch("owner-1", limit=2)

        assert result.to_dict() == {"processed": 2, "failed": 0, "errors": []}
        statuses = [pipeline.get_record("owner-1", i).status.value for i in ids]
        assert statuses.count("extracted") == 2
        assert statuses.count("pending") == 1

    def test_nothing_pending(self, pipeline):
        assert pipeline.process_pending_batch("owner-1").processed == 0

    def test_embedding_failure_counted_as_failed(self, pipeline, embedder):
        record_id = capture_many(pipeline, 1)[0]
        embedder.fail = True

        result = pipeline.process_pending_batch("owner-1")

        assert result.failed == 1
        assert result.errors[0].startswith(f"{record_id}: embedding failed")
        record = pipeline.get_record("owner-1", record_id)
        assert record.status.value == "extracted"
        assert record.embedding is None

    def test_store_error_reported_not_raised(self, pipeline, monkeypatch):
        capture_many(pipeline, 2)

        def broken(record):
            raise RuntimeError("disk full")

        monkeypatch.setattr(pipeline.builder, "process", broken)
        result = pipeline.process_pending_batch("owner-1")

        assert result.failed == 2
        assert "disk full" in result.errors[0]


class TestBatchJobRunner:
    @pytest.mark.asyncio
    async def test_job_processes_everything(self, pipeline):
        ids = capture_many(pipeline, 3)

        job = await pipeline.start_processing_job("owner-1")
        assert job.total_items == 3
        job = await pipeline.jobs.wait("owner-1", job.id)

        assert job.status == JobStatus.COMPLETED
        assert job.processed_items == 3
        assert job.failed_items == 0
        assert sorted(job.processed_ids) == sorted(ids)
        assert all(pipeline.get_record("owner-1", i).status.value == "extracted" for i in ids)

    @pytest.mark.asyncio
    async def test_empty_job_completes(self, pipeline):
        job = await pipeline.start_processing_job("owner-1")
        job = await pipeline.jobs.wait("owner-1", job.id)

        assert job.status == JobStatus.COMPLETED
        assert job.total_items == 0

    @pytest.mark.asyncio
    async def test_failures_counted_and_job_completes(self, pipeline, embedder):
        capture_many(pipeline, 2)
        embedder.fail = True

        job = await pipeline.start_processing_job("owner-1")
        job = await pipeline.jobs.wait("owner-1", job.id)

        assert job.status == JobStatus.COMPLETED
        assert job.failed_items == 2
        assert len(job.errors) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(self, pipeline, monkeypatch):
        capture_many(pipeline, 1)

        def explode(record):
            raise RuntimeError("worker crashed")

        monkeypatch.setattr(pipeline.processor, "process_one", explode)
        job = await pipeline.start_processing_job("owner-1")
        job = await pipeline.jobs.wait("owner-1", job.id)

        assert job.status == JobStatus.FAILED
        assert job.error_message == "worker crashed"

    @pytest.mark.asyncio
    async def test_second_start_returns_active_job(self, pipeline, blocking_processor):
        started, _, release = blocking_processor
        capture_many(pipeline, 2)

        first = await pipeline.start_processing_job("owner-1")
        await wait_until(started.is_set)
        second = await pipeline.start_processing_job("owner-1")

        assert second.id == first.id
        await pipeline.cancel_job("owner-1", first.id)
        release.set()

    @pytest.mark.asyncio
    async def test_cancel_stops_before_next_record(self, pipeline, blocking_processor):
        started, calls, release = blocking_processor
        capture_many(pipeline, 3)

        job = await pipeline.start_processing_job("owner-1")
        await wait_until(started.is_set)
        job = await pipeline.cancel_job("owner-1", job.id)
        release.set()

        assert job.status == JobStatus.CANCELLED
        assert job.error_message == "cancelled by user"
        assert job.processed_items == 0
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_cancel_other_owner_rejected(self, pipeline):
        from sift.common.errors import OwnershipError
        job = await pipeline.start_processing_job("owner-1")
        await pipeline.jobs.wait("owner-1", job.id)

        with pytest.raises(OwnershipError):
            await pipeline.cancel_job("owner-2", job.id)

    @pytest.mark.asyncio
    async def test_cancel_orphaned_job(self, pipeline):
        orphan = pipeline.jobs._jobs.create("owner-1", total_items=4)

        job = await pipeline.cancel_job("owner-1", orphan.id)

        assert job.status == JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_resume_skips_counted_records(self, pipeline, tmp_path):
        from sift.ingest import BatchJobRunner
        first, second = capture_many(pipeline, 2)
        path = tmp_path / "jobs.json"

        # A previous process counted the first record, then died
        before = JobStore(path)
        job = before.create("owner-1", total_items=2)
        before.record_progress(job.id, first, True)

        runner = BatchJobRunner(pipeline.processor, JobStore(path))
        assert runner.resume_interrupted() == [job.id]
        job = await runner.wait("owner-1", job.id)

        assert job.status == JobStatus.COMPLETED
        assert job.processed_items == 2
        assert job.total_items == 2
        assert job.processed_ids == [first, second]
        # Already counted, so not run again
        assert pipeline.get_record("owner-1", first).status.value == "pending"
        assert pipeline.get_record("owner-1", second).status.value == "extracted"

    @pytest.mark.asyncio
    async def test_shutdown_leaves_job_resumable(self, pipeline, blocking_processor):
        started, _, release = blocking_processor
        capture_many(pipeline, 2)

        job = await pipeline.start_processing_job("owner-1")
        await wait_until(started.is_set)
        await pipeline.jobs.shutdown()
        release.set()

        assert pipeline.get_job("owner-1", job.id).status == JobStatus.RUNNING
