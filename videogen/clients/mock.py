"""In-process provider client for development and tests."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import uuid4

from videogen.clients.base import (
    ProviderClient,
    ProviderFailure,
    ProviderHandle,
    ProviderResult,
    ProviderStatus,
    ProviderStatusResponse,
    ProviderVideoRequest,
)
from videogen.utils.errors import BadRequestError

logger = logging.getLogger(__name__)

MOCK_STORAGE_URL = "https://mock-storage.example.com"


@dataclass
class _MockJob:
    request: ProviderVideoRequest
    status: ProviderStatus = ProviderStatus.QUEUED
    polls: int = 0


class MockProviderClient(ProviderClient):
    """
    Provider that advances its jobs one step per status poll.

    A job is queued on creation, processing after `polls_until_processing`
    polls and terminal after `polls_until_complete` polls. Prompts listed in
    `fail_prompts` end in failure; everything else succeeds.
    """

    def __init__(
        self,
        polls_until_processing: int = 1,
        polls_until_complete: int = 2,
        fail_prompts: Optional[set[str]] = None,
        latency: float = 0.0,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.polls_until_processing = polls_until_processing
        self.polls_until_complete = polls_until_complete
        self.fail_prompts = fail_prompts or set()
        self.latency = latency
        self.id_factory = id_factory or (lambda: f"mock_{uuid4().hex}")
        self.jobs: dict[str, _MockJob] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.cancelled: list[str] = []

    async def _simulate_call(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1

    def _get(self, handle: str) -> _MockJob:
        job = self.jobs.get(handle)
        if job is None:
            raise BadRequestError(f"Video job '{handle}' not found", 404, "not_found")
        return job

    async def create_video(self, request: ProviderVideoRequest) -> ProviderHandle:
        await self._simulate_call()
        handle = self.id_factory()
        self.jobs[handle] = _MockJob(request=request)
        logger.info(f"Mock video job {handle} created")
        return ProviderHandle(id=handle, status=ProviderStatus.QUEUED)

    async def get_video_status(self, handle: str) -> ProviderStatusResponse:
        await self._simulate_call()
        job = self._get(handle)

        if job.status in (ProviderStatus.QUEUED, ProviderStatus.PROCESSING):
            job.polls += 1
            if job.polls >= self.polls_until_complete:
                job.status = (
                    ProviderStatus.FAILED
                    if job.request.prompt in self.fail_prompts
                    else ProviderStatus.SUCCEEDED
                )
            elif job.polls >= self.polls_until_processing:
                job.status = ProviderStatus.PROCESSING

        return self.describe(handle)

    def describe(self, handle: str) -> ProviderStatusResponse:
        """Current state of a mock job without advancing it."""
        job = self._get(handle)
        response = ProviderStatusResponse(id=handle, status=job.status)

        if job.status == ProviderStatus.SUCCEEDED:
            response.result = ProviderResult(
                url=f"{MOCK_STORAGE_URL}/videos/{handle}.mp4",
                thumbnail_url=f"{MOCK_STORAGE_URL}/thumbnails/{handle}.jpg",
                width=1920,
                height=1080,
                duration=job.request.duration or 10,
                file_size=15_728_640,
                format="mp4",
            )
        elif job.status == ProviderStatus.FAILED:
            response.error = ProviderFailure(
                code="PROCESSING_ERROR", message="Mock processing error"
            )
        return response

    def set_status(self, handle: str, status: ProviderStatus) -> None:
        self._get(handle).status = status

    async def cancel_video(self, handle: str) -> None:
        await self._simulate_call()
        job = self._get(handle)
        if job.status in (ProviderStatus.QUEUED, ProviderStatus.PROCESSING):
            job.status = ProviderStatus.CANCELLED
        self.cancelled.append(handle)
        logger.info(f"Mock video job {handle} cancelled")
