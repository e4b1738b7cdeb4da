"""In-memory registry of asynchronous jobs.

Jobs are immutable snapshots; every update builds a new record and swaps
it into the mapping under a lock. Jobs are never evicted and do not
survive a restart.
"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from multiconvert.models.job import Job, JobFamily, JobStatus

logger = structlog.get_logger(__name__)


class JobNotFoundError(Exception):
    """Raised when a job is not found."""

    pass


class InvalidTransitionError(Exception):
    """Raised when an update would break the job state machine."""

    def __init__(self, job_id: str, current: JobStatus, requested: JobStatus):
        super().__init__(
            f"Job {job_id} cannot move from {current.value} to {requested.value}"
        )
        self.job_id = job_id
        self.current = current
        self.requested = requested


class JobRegistry:
    """Thread-safe mapping from job id to the latest job snapshot."""

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def new_job(
        self,
        family: JobFamily,
        kind: str,
        status: JobStatus = JobStatus.PENDING,
        progress: int = 0,
        **fields: Any,
    ) -> Job:
        """Build and register a job with a fresh UUID4 id."""
        job = Job(
            job_id=str(uuid.uuid4()),
            family=family,
            kind=kind,
            status=status,
            progress=progress,
            **fields,
        )
        return self.create(job)

    def create(self, job: Job) -> Job:
        """Register a new job.

        Raises:
            ValueError: If the job id is already registered.
        """
        with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Job already exists: {job.job_id}")
            self._jobs[job.job_id] = job

        logger.info(
            "job_created",
            job_id=job.job_id,
            family=job.family.value,
            kind=job.kind,
            status=job.status.value,
        )
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def get_or_raise(self, job_id: str) -> Job:
        """Get a job by ID or raise an error.

        Raises:
            JobNotFoundError: If the job is not found.
        """
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def update(self, job_id: str, **changes: Any) -> Job:
        """Apply a partial update atomically.

        A status change must follow the job state machine. Progress never
        decreases while the job is not terminal and is clamped to [0, 100].

        Raises:
            JobNotFoundError: If the job is not found.
            InvalidTransitionError: If the status change is not allowed.
        """
        now = datetime.now(timezone.utc)

        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(f"Job not found: {job_id}")

            status = changes.get("status", current.status)
            if status != current.status:
                if not current.can_transition_to(status):
                    raise InvalidTransitionError(job_id, current.status, status)
                if status == JobStatus.PROCESSING and current.started_at is None:
                    changes.setdefault("started_at", now)
                if status in (JobStatus.COMPLETED, JobStatus.ERROR):
                    changes.setdefault("completed_at", now)
            elif current.is_terminal() and changes:
                raise InvalidTransitionError(job_id, current.status, status)

            if "progress" in changes:
                progress = max(0, min(100, int(changes["progress"])))
                changes["progress"] = max(progress, current.progress)

            updated = replace(current, **changes)
            self._jobs[job_id] = updated

        if updated.status != current.status:
            logger.info(
                "job_status_updated",
                job_id=job_id,
                old_status=current.status.value,
                new_status=updated.status.value,
                progress=updated.progress,
            )
        return updated

    def set_progress(self, job_id: str, progress: int) -> Job:
        job = self.update(job_id, progress=progress)
        logger.debug("job_progress_updated", job_id=job_id, progress=job.progress)
        return job

    def start_processing(self, job_id: str, progress: Optional[int] = None) -> Job:
        """Mark a job as processing."""
        changes: Dict[str, Any] = {"status": JobStatus.PROCESSING}
        if progress is not None:
            changes["progress"] = progress
        return self.update(job_id, **changes)

    def complete(
        self,
        job_id: str,
        output_filename: str,
        download_url: str,
        secondary_filename: Optional[str] = None,
        secondary_download_url: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Job:
        """Mark a job as completed with its artifact references."""
        changes: Dict[str, Any] = {
            "status": JobStatus.COMPLETED,
            "progress": 100,
            "output_filename": output_filename,
            "download_url": download_url,
            "secondary_filename": secondary_filename,
            "secondary_download_url": secondary_download_url,
        }
        if title:
            changes["title"] = title
        return self.update(job_id, **changes)

    def fail(
        self,
        job_id: str,
        error: str,
        error_category: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Job:
        """Mark a job as failed. Progress is left as is."""
        changes: Dict[str, Any] = {
            "status": JobStatus.ERROR,
            "error": error or "Unknown error",
            "error_category": error_category,
        }
        if title:
            changes["title"] = title
        return self.update(job_id, **changes)

    def list_jobs(self, status: Optional[JobStatus] = None) -> List[Job]:
        """Jobs sorted by creation time (newest first), optionally filtered."""
        with self._lock:
            jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    def count(self) -> int:
        with self._lock:
            return len(self._jobs)

    def count_active(self) -> int:
        with self._lock:
            return sum(1 for job in self._jobs.values() if not job.is_terminal())


# Global job registry instance
_job_registry: Optional[JobRegistry] = None


def configure_job_registry() -> JobRegistry:
    """Configure and initialize the global job registry."""
    global _job_registry
    _job_registry = JobRegistry()
    return _job_registry


def get_job_registry() -> JobRegistry:
    """Get the global job registry instance.

    Raises:
        RuntimeError: If the job registry is not configured.
    """
    if _job_registry is None:
        raise RuntimeError("Job registry not configured. Call configure_job_registry() first.")
    return _job_registry
