"""Batch Pydantic models and status aggregation."""

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from videogen.models.job import JobStatus, is_terminal, utcnow

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 10


class BatchStatus(str, Enum):
    """Aggregate status of a batch, derived from its jobs."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_BATCH_STATUSES: frozenset[BatchStatus] = frozenset(
    {
        BatchStatus.COMPLETED,
        BatchStatus.PARTIAL,
        BatchStatus.FAILED,
        BatchStatus.CANCELLED,
    }
)


class BatchProgress(BaseModel):
    """Progress counters; pending counts both pending and processing jobs."""

    total: int = Field(ge=0)
    completed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    processing: int = Field(default=0, ge=0)
    cancelled: int = Field(default=0, ge=0)
    percentage: int = Field(default=0, ge=0, le=100)


class Batch(BaseModel):
    """A fixed group of jobs submitted and tracked together."""

    id: str = Field(default_factory=lambda: f"batch_{uuid4().hex}", min_length=1)
    name: Optional[str] = None
    job_ids: list[str] = Field(min_length=MIN_BATCH_SIZE, max_length=MAX_BATCH_SIZE)
    status: BatchStatus = BatchStatus.PENDING
    progress: BatchProgress
    cancel_requested: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BATCH_STATUSES


def compute_progress(statuses: Iterable[JobStatus]) -> BatchProgress:
    """Count constituent job statuses into a progress record."""
    statuses = list(statuses)
    total = len(statuses)
    completed = statuses.count(JobStatus.COMPLETED)
    failed = statuses.count(JobStatus.FAILED)
    pending = statuses.count(JobStatus.PENDING)
    processing = statuses.count(JobStatus.PROCESSING)
    cancelled = statuses.count(JobStatus.CANCELLED)
    percentage = round(100 * (completed + failed) / total) if total else 0

    return BatchProgress(
        total=total,
        completed=completed,
        failed=failed,
        pending=pending + processing,
        processing=processing,
        cancelled=cancelled,
        percentage=percentage,
    )


def aggregate_status(statuses: Iterable[JobStatus]) -> BatchStatus:
    """
    Derive the batch status from constituent job statuses.

    While any job is non-terminal the batch is processing once at least one
    job has left pending, otherwise pending. Once every job is terminal:
    all completed gives completed, all failed gives failed, any completed
    mixed with failures or cancellations gives partial, and cancellations
    without any completion give cancelled.
    """
    statuses = list(statuses)
    if not statuses:
        return BatchStatus.PENDING

    if not all(is_terminal(s) for s in statuses):
        if any(s != JobStatus.PENDING for s in statuses):
            return BatchStatus.PROCESSING
        return BatchStatus.PENDING

    completed = statuses.count(JobStatus.COMPLETED)
    failed = statuses.count(JobStatus.FAILED)

    if completed == len(statuses):
        return BatchStatus.COMPLETED
    if failed == len(statuses):
        return BatchStatus.FAILED
    if completed > 0:
        return BatchStatus.PARTIAL
    return BatchStatus.CANCELLED
