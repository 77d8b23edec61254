"""Pydantic data models for the video generation service."""

from videogen.models.batch import (
    MAX_BATCH_SIZE,
    MIN_BATCH_SIZE,
    Batch,
    BatchProgress,
    BatchStatus,
    aggregate_status,
    compute_progress,
)
from videogen.models.job import (
    Job,
    JobError,
    JobPriority,
    JobStatus,
    VideoResult,
    can_transition,
    is_terminal,
)
from videogen.models.requests import CreateBatchRequest, CreateVideoRequest

__all__ = [
    "Job",
    "JobError",
    "JobPriority",
    "JobStatus",
    "VideoResult",
    "can_transition",
    "is_terminal",
    "Batch",
    "BatchProgress",
    "BatchStatus",
    "MIN_BATCH_SIZE",
    "MAX_BATCH_SIZE",
    "aggregate_status",
    "compute_progress",
    "CreateVideoRequest",
    "CreateBatchRequest",
]
