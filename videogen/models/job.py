"""Job Pydantic models and status state machine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Lifecycle status of a video job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobPriority(str, Enum):
    """Informational priority; does not affect scheduling."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


TERMINAL_JOB_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

# pending -> failed covers a submission that fails before a handle exists.
VALID_STATUS_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset(
        {JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def is_terminal(status: JobStatus) -> bool:
    """Check whether no further transition can leave this status."""
    return status in TERMINAL_JOB_STATUSES


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Self-transitions are permitted as no-ops."""
    return current == target or target in VALID_STATUS_TRANSITIONS[current]


class VideoResult(BaseModel):
    """Generated media reference and its metadata."""

    video_url: str = Field(min_length=1)
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    resolution: Optional[str] = None
    duration: Optional[int] = None
    file_size: Optional[int] = None
    format: Optional[str] = None


class JobError(BaseModel):
    """Structured failure record."""

    code: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class Job(BaseModel):
    """One video-generation request and its tracked lifecycle."""

    id: str = Field(default_factory=lambda: f"job_{uuid4().hex}", min_length=1)
    prompt: str = Field(min_length=1)
    status: JobStatus = JobStatus.PENDING
    priority: JobPriority = JobPriority.NORMAL
    provider_job_id: Optional[str] = None
    result: Optional[VideoResult] = None
    error: Optional[JobError] = None
    metadata: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


def transition_fields(
    job: Job,
    status: JobStatus,
    *,
    result: Optional[VideoResult] = None,
    error: Optional[JobError] = None,
) -> dict[str, Any]:
    """
    Build the partial update for moving a job into a new status.

    Sets started_at the first time the job enters processing and
    completed_at the first time it enters a terminal status.

    Args:
        job: Job as currently stored
        status: Target status
        result: Result payload, only meaningful for completed
        error: Failure record, for failed (optionally cancelled)

    Returns:
        Fields to merge through the job store
    """
    now = utcnow()
    fields: dict[str, Any] = {"status": status}

    if status == JobStatus.PROCESSING and job.started_at is None:
        fields["started_at"] = now

    if is_terminal(status) and job.completed_at is None:
        fields["completed_at"] = now

    if status == JobStatus.COMPLETED:
        fields["result"] = result
    if error is not None:
        fields["error"] = error

    return fields
