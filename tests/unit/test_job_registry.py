"""Unit tests for the in-memory job registry."""

import threading

import pytest

from multiconvert.models.job import Job, JobFamily, JobStatus
from multiconvert.services.job_registry import (
    InvalidTransitionError,
    JobNotFoundError,
    JobRegistry,
)


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def fetch_job(registry: JobRegistry) -> Job:
    return registry.new_job(JobFamily.FETCH, "audio", status=JobStatus.PENDING, progress=10)


class TestCreate:
    """Tests for job registration."""

    def test_new_job_has_uuid(self, registry: JobRegistry) -> None:
        job = registry.new_job(JobFamily.CONVERT, "png-to-jpg")

        assert len(job.job_id) == 36
        assert registry.get(job.job_id) == job
        assert job.created_at.tzinfo is not None

    def test_ids_unique(self, registry: JobRegistry) -> None:
        ids = {registry.new_job(JobFamily.CONVERT, "png-to-jpg").job_id for _ in range(50)}
        assert len(ids) == 50

    def test_duplicate_rejected(self, registry: JobRegistry, fetch_job: Job) -> None:
        with pytest.raises(ValueError):
            registry.create(fetch_job)

    def test_get_unknown(self, registry: JobRegistry) -> None:
        assert registry.get("nope") is None
        with pytest.raises(JobNotFoundError):
            registry.get_or_raise("nope")


class TestTransitions:
    """Tests for the job state machine."""

    def test_pending_to_processing(self, registry: JobRegistry, fetch_job: Job) -> None:
        job = registry.start_processing(fetch_job.job_id, progress=30)

        assert job.status == JobStatus.PROCESSING
        assert job.progress == 30
        assert job.started_at is not None

    def test_complete(self, registry: JobRegistry, fetch_job: Job) -> None:
        registry.start_processing(fetch_job.job_id)

        job = registry.complete(
            fetch_job.job_id,
            output_filename="a.mp3",
            download_url="/jobs/fetch/file/a.mp3",
            title="Song",
        )

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.title == "Song"
        assert job.completed_at is not None

    def test_fail_keeps_progress(self, registry: JobRegistry, fetch_job: Job) -> None:
        registry.start_processing(fetch_job.job_id, progress=30)

        job = registry.fail(fetch_job.job_id, "Video is unavailable or private", "unavailable")

        assert job.status == JobStatus.ERROR
        assert job.progress == 30
        assert job.error_category == "unavailable"

    def test_pending_can_fail_directly(self, registry: JobRegistry, fetch_job: Job) -> None:
        assert registry.fail(fetch_job.job_id, "Service shutting down").status == JobStatus.ERROR

    def test_pending_cannot_complete(self, registry: JobRegistry, fetch_job: Job) -> None:
        with pytest.raises(InvalidTransitionError):
            registry.complete(fetch_job.job_id, "a.mp3", "/jobs/fetch/file/a.mp3")

    def test_terminal_is_final(self, registry: JobRegistry, fetch_job: Job) -> None:
        registry.fail(fetch_job.job_id, "boom")

        with pytest.raises(InvalidTransitionError):
            registry.start_processing(fetch_job.job_id)
        with pytest.raises(InvalidTransitionError):
            registry.set_progress(fetch_job.job_id, 90)

    def test_fail_defaults_message(self, registry: JobRegistry, fetch_job: Job) -> None:
        assert registry.fail(fetch_job.job_id, "").error == "Unknown error"


class TestProgress:
    """Tests for progress bookkeeping."""

    def test_never_decreases(self, registry: JobRegistry, fetch_job: Job) -> None:
        registry.start_processing(fetch_job.job_id, progress=30)
        assert registry.set_progress(fetch_job.job_id, 20).progress == 30

    def test_clamped(self, registry: JobRegistry, fetch_job: Job) -> None:
        registry.start_processing(fetch_job.job_id)
        assert registry.set_progress(fetch_job.job_id, 250).progress == 100


class TestSnapshots:
    """Tests for immutability and listing."""

    def test_previous_snapshot_unchanged(self, registry: JobRegistry, fetch_job: Job) -> None:
        registry.start_processing(fetch_job.job_id)

        assert fetch_job.status == JobStatus.PENDING
        assert registry.get(fetch_job.job_id).status == JobStatus.PROCESSING

    def test_list_and_count(self, registry: JobRegistry, fetch_job: Job) -> None:
        done = registry.new_job(JobFamily.CONVERT, "png-to-jpg", status=JobStatus.PROCESSING)
        registry.fail(done.job_id, "bad input")

        assert registry.count() == 2
        assert registry.count_active() == 1
        assert [j.job_id for j in registry.list_jobs(JobStatus.ERROR)] == [done.job_id]

    def test_concurrent_creation(self, registry: JobRegistry) -> None:
        def create_many() -> None:
            for _ in range(100):
                registry.new_job(JobFamily.CONVERT, "png-to-jpg")

        threads = [threading.Thread(target=create_many) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert registry.count() == 400

    def test_to_dict(self, fetch_job: Job) -> None:
        data = fetch_job.to_dict()
        assert data["family"] == "fetch"
        assert data["status"] == "pending"
        assert data["completed_at"] is None
