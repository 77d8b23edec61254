"""Pytest fixtures for video generation orchestrator tests."""

import pytest

from videogen.clients.mock import MockProviderClient
from videogen.services.batches import BatchOrchestrator
from videogen.services.jobs import JobOrchestrator
from videogen.services.store import InMemoryBatchStore, InMemoryJobStore


@pytest.fixture
def sample_video_request_data() -> dict:
    """Valid single-video request body."""
    return {
        "prompt": "A red fox running through fresh snow at dawn",
        "duration": 10,
        "resolution": "1080p",
        "aspect_ratio": "16:9",
        "priority": "high",
        "metadata": {"campaign": "winter"},
    }


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def batch_store() -> InMemoryBatchStore:
    return InMemoryBatchStore()


@pytest.fixture
def mock_provider() -> MockProviderClient:
    """Provider that reaches processing after one poll and finishes after two."""
    return MockProviderClient()


@pytest.fixture
def job_orchestrator(
    job_store: InMemoryJobStore, mock_provider: MockProviderClient
) -> JobOrchestrator:
    return JobOrchestrator(job_store, mock_provider)


@pytest.fixture
def batch_orchestrator(
    job_orchestrator: JobOrchestrator, batch_store: InMemoryBatchStore
) -> BatchOrchestrator:
    """Batch orchestrator that polls without delay."""
    return BatchOrchestrator(
        job_orchestrator, batch_store, concurrency=5, poll_interval=0, job_timeout=5.0
    )
