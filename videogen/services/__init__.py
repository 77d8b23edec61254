"""Orchestration services and stores."""

from videogen.services.batches import BatchOrchestrator, validate_batch_request
from videogen.services.health import HealthService
from videogen.services.jobs import (
    JobOrchestrator,
    map_provider_status,
    to_provider_request,
    validate_video_request,
)
from videogen.services.store import (
    BatchStore,
    InMemoryBatchStore,
    InMemoryJobStore,
    JobPage,
    JobStore,
)

__all__ = [
    "BatchOrchestrator",
    "validate_batch_request",
    "HealthService",
    "JobOrchestrator",
    "map_provider_status",
    "to_provider_request",
    "validate_video_request",
    "BatchStore",
    "InMemoryBatchStore",
    "InMemoryJobStore",
    "JobPage",
    "JobStore",
]
