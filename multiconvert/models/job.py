"""Job data models for asynchronous conversion tracking."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class JobStatus(str, Enum):
    """Status of a job.

    State transitions:
    - PENDING -> PROCESSING: When the strategy starts running
    - PENDING -> ERROR: When the job is abandoned before it starts
    - PROCESSING -> COMPLETED: When the strategy produced its artifact(s)
    - PROCESSING -> ERROR: When the strategy failed
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.ERROR},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.ERROR},
    JobStatus.COMPLETED: set(),
    JobStatus.ERROR: set(),
}


class JobFamily(str, Enum):
    """Route family a job belongs to."""

    CONVERT = "convert"
    FETCH = "fetch"


@dataclass(frozen=True)
class Job:
    """Immutable snapshot of an asynchronous job.

    The registry never mutates a stored Job; each update builds a new
    record and swaps it in.
    """

    job_id: str
    family: JobFamily
    kind: str
    status: JobStatus = JobStatus.PENDING
    progress: int = 0  # 0-100 percentage
    title: Optional[str] = None
    output_filename: Optional[str] = None
    download_url: Optional[str] = None
    secondary_filename: Optional[str] = None
    secondary_download_url: Optional[str] = None
    error: Optional[str] = None
    error_category: Optional[str] = None
    input_path: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def is_terminal(self) -> bool:
        """Check if the job is in a terminal state (completed or error)."""
        return self.status in (JobStatus.COMPLETED, JobStatus.ERROR)

    def can_transition_to(self, status: JobStatus) -> bool:
        return status == self.status or status in ALLOWED_TRANSITIONS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for logging and diagnostics."""
        return {
            "job_id": self.job_id,
            "family": self.family.value,
            "kind": self.kind,
            "status": self.status.value,
            "progress": self.progress,
            "title": self.title,
            "output_filename": self.output_filename,
            "download_url": self.download_url,
            "secondary_filename": self.secondary_filename,
            "secondary_download_url": self.secondary_download_url,
            "error": self.error,
            "error_category": self.error_category,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
