"""Tests for the job orchestrator.

Property 12: Job Lifecycle Follows Provider Observations
Property 13: Stale Updates Never Overwrite Terminal Jobs
"""

import asyncio
import logging
from typing import Optional

import httpx
import pytest
from hypothesis import given, settings, strategies as st

from videogen.clients.base import (
    ProviderClient,
    ProviderFailure,
    ProviderHandle,
    ProviderResult,
    ProviderStatus,
    ProviderStatusResponse,
    ProviderVideoRequest,
)
from videogen.clients.contracts import SORA_1
from videogen.clients.http import HttpProviderClient
from videogen.models.job import JobPriority, JobStatus
from videogen.models.requests import CreateVideoRequest
from videogen.services.jobs import JobOrchestrator
from videogen.services.store import InMemoryJobStore
from videogen.utils.errors import (
    BadRequestError,
    ConflictError,
    JobNotReadyError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from videogen.utils.retry import RetryPolicy


class ScriptedProvider(ProviderClient):
    """Provider whose responses are set by the test."""

    def __init__(self, handle: str = "prov_123") -> None:
        self.handle = handle
        self.create_error: Optional[Exception] = None
        self.create_gate: Optional[asyncio.Event] = None
        self.poll_gate: Optional[asyncio.Event] = None
        self.poll_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None
        self.statuses: dict[str, ProviderStatusResponse] = {}
        self.created: list[ProviderVideoRequest] = []
        self.polls = 0
        self.cancelled: list[str] = []

    async def create_video(self, request: ProviderVideoRequest) -> ProviderHandle:
        self.created.append(request)
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.create_error is not None:
            raise self.create_error
        self.statuses.setdefault(
            self.handle, ProviderStatusResponse(id=self.handle, status=ProviderStatus.QUEUED)
        )
        return ProviderHandle(id=self.handle, status=ProviderStatus.QUEUED)

    async def get_video_status(self, handle: str) -> ProviderStatusResponse:
        self.polls += 1
        if self.poll_gate is not None:
            await self.poll_gate.wait()
        if self.poll_error is not None:
            raise self.poll_error
        return self.statuses[handle]

    async def cancel_video(self, handle: str) -> None:
        self.cancelled.append(handle)
        if self.cancel_error is not None:
            raise self.cancel_error

    def report(self, status: ProviderStatus, **kwargs) -> None:
        self.statuses[self.handle] = ProviderStatusResponse(
            id=self.handle, status=status, **kwargs
        )

    def succeed(self, url: str = "https://cdn.test/prov_123.mp4") -> None:
        self.report(
            ProviderStatus.SUCCEEDED,
            result=ProviderResult(url=url, width=1920, height=1080, duration=10, format="mp4"),
        )


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def orchestrator(provider: ScriptedProvider) -> JobOrchestrator:
    return JobOrchestrator(InMemoryJobStore(), provider)


async def submitted_job(orchestrator: JobOrchestrator, prompt: str = "A calico cat"):
    job = await orchestrator.create_video(CreateVideoRequest(prompt=prompt))
    await orchestrator.wait_for_submission(job.id)
    return await orchestrator.store.find_by_id(job.id)


class TestProperty12JobLifecycle:
    """Property 12: Job Lifecycle Follows Provider Observations.

    A created job SHALL be pending, move to processing once the provider
    accepts it, and reach the terminal status the provider reports.
    """

    @pytest.mark.asyncio
    async def test_create_then_processing(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        prompt = "A calico cat playing a piano on stage"
        job = await orchestrator.create_video(CreateVideoRequest(prompt=prompt))

        assert job.status == JobStatus.PENDING
        assert job.id
        assert job.prompt == prompt

        await orchestrator.wait_for_submission(job.id)
        current = await orchestrator.get_job_status(job.id)

        assert current.status == JobStatus.PROCESSING
        assert current.provider_job_id == "prov_123"
        assert current.started_at is not None
        assert provider.created[0].idempotency_key == job.id

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected_and_not_persisted(
        self, orchestrator: JobOrchestrator
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.create_video(CreateVideoRequest(prompt="", duration=10))

        assert exc_info.value.field == "prompt"
        assert (await orchestrator.list_jobs()).total == 0

    @pytest.mark.asyncio
    async def test_duration_over_limit_rejected(self, orchestrator: JobOrchestrator) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.create_video(CreateVideoRequest(prompt="Test", duration=100))

        assert exc_info.value.message == "Duration must be between 1 and 20 seconds"
        assert (await orchestrator.list_jobs()).total == 0

    @pytest.mark.asyncio
    async def test_completed_job_exposes_result(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        job = await submitted_job(orchestrator)
        provider.succeed()

        completed = await orchestrator.get_job_status(job.id)
        assert completed.status == JobStatus.COMPLETED
        assert completed.completed_at is not None
        assert completed.result.video_url == "https://cdn.test/prov_123.mp4"
        assert completed.result.resolution == "1920x1080"

        result = await orchestrator.get_video_result(job.id)
        assert result.result == completed.result

    @pytest.mark.asyncio
    async def test_provider_failure_recorded(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        job = await submitted_job(orchestrator)
        provider.report(
            ProviderStatus.FAILED,
            error=ProviderFailure(code="CONTENT_POLICY", message="Rejected by policy"),
        )

        failed = await orchestrator.sync_job_status(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error.code == "CONTENT_POLICY"
        assert failed.completed_at is not None

    @pytest.mark.asyncio
    async def test_success_without_url_marks_failed(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        job = await submitted_job(orchestrator)
        provider.report(ProviderStatus.SUCCEEDED)

        failed = await orchestrator.sync_job_status(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error.code == "PROVIDER_MISSING_RESULT"

    @pytest.mark.asyncio
    async def test_submission_failure_marks_job_failed(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        provider.create_error = BadRequestError("Prompt rejected", 400, "content_policy")

        job = await submitted_job(orchestrator)
        assert job.status == JobStatus.FAILED
        assert job.error.code == "PROVIDER_BAD_REQUEST"
        assert job.provider_job_id is None

        with pytest.raises(JobNotReadyError) as exc_info:
            await orchestrator.get_video_result(job.id)
        assert exc_info.value.details["status"] == "failed"

    @pytest.mark.asyncio
    async def test_result_while_pending_not_ready(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        provider.create_gate = asyncio.Event()
        job = await orchestrator.create_video(CreateVideoRequest(prompt="slow"))

        with pytest.raises(JobNotReadyError) as exc_info:
            await orchestrator.get_video_result(job.id)
        assert exc_info.value.details["status"] == "pending"
        assert exc_info.value.status_code == 400

        provider.create_gate.set()
        await orchestrator.drain()

    @pytest.mark.asyncio
    async def test_sync_without_change_keeps_updated_at(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        job = await submitted_job(orchestrator)
        provider.report(ProviderStatus.PROCESSING)

        first = await orchestrator.sync_job_status(job.id)
        second = await orchestrator.sync_job_status(job.id)
        assert first == second
        assert second.updated_at == job.updated_at

    @pytest.mark.asyncio
    async def test_sync_error_on_read_returns_cached_job(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        job = await submitted_job(orchestrator)
        provider.poll_error = ServiceUnavailableError("upstream down", 503)

        current = await orchestrator.get_job_status(job.id)
        assert current.status == JobStatus.PROCESSING

        with pytest.raises(ServiceUnavailableError):
            await orchestrator.sync_job_status(job.id)

    @pytest.mark.asyncio
    async def test_unknown_job(self, orchestrator: JobOrchestrator) -> None:
        with pytest.raises(NotFoundError):
            await orchestrator.get_job_status("job_missing")
        with pytest.raises(NotFoundError):
            await orchestrator.cancel_job("job_missing")

    @pytest.mark.asyncio
    async def test_list_jobs_filters(self, orchestrator: JobOrchestrator) -> None:
        await orchestrator.create_video(
            CreateVideoRequest(prompt="one", priority=JobPriority.HIGH), submit=False
        )
        await orchestrator.create_video(CreateVideoRequest(prompt="two"), submit=False)

        page = await orchestrator.list_jobs(priority=JobPriority.HIGH)
        assert page.total == 1
        assert page.items[0].prompt == "one"
        assert (await orchestrator.list_jobs(status=JobStatus.PENDING)).total == 2

    @settings(max_examples=30, deadline=None)
    @given(
        observations=st.lists(st.sampled_from(list(ProviderStatus)), min_size=1, max_size=6)
    )
    def test_terminal_status_never_changes(self, observations: list) -> None:
        """Once terminal, further provider observations SHALL not move the job."""

        async def run_test() -> None:
            provider = ScriptedProvider()
            orchestrator = JobOrchestrator(InMemoryJobStore(), provider)
            job = await submitted_job(orchestrator)

            first_terminal = None
            for status in observations:
                if status == ProviderStatus.SUCCEEDED:
                    provider.succeed()
                else:
                    provider.report(status)
                job = await orchestrator.sync_job_status(job.id)
                if first_terminal is None and job.is_terminal:
                    first_terminal = job.status
                if first_terminal is not None:
                    assert job.status == first_terminal

        asyncio.run(run_test())


class TestProperty13StaleUpdates:
    """Property 13: Stale Updates Never Overwrite Terminal Jobs.

    A cancellation SHALL win over a submission or poll result that arrives
    after it, and upstream cancel failures SHALL only be logged.
    """

    @pytest.mark.asyncio
    async def test_cancel_with_failing_upstream_cancel(
        self,
        orchestrator: JobOrchestrator,
        provider: ScriptedProvider,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        job = await submitted_job(orchestrator)
        assert job.status == JobStatus.PROCESSING
        provider.cancel_error = ServiceUnavailableError("connection reset", 503)

        with caplog.at_level(logging.WARNING, logger="videogen.services.jobs"):
            cancelled = await orchestrator.cancel_job(job.id)
            await orchestrator.drain()

        assert cancelled.status == JobStatus.CANCELLED
        assert cancelled.completed_at is not None
        assert provider.cancelled == ["prov_123"]
        assert "Failed to cancel provider job prov_123" in caplog.text
        assert (await orchestrator.get_job_status(job.id)).status == JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_twice_conflicts(self, orchestrator: JobOrchestrator) -> None:
        job = await submitted_job(orchestrator)
        await orchestrator.cancel_job(job.id)
        await orchestrator.drain()

        with pytest.raises(ConflictError):
            await orchestrator.cancel_job(job.id)

    @pytest.mark.asyncio
    async def test_submission_after_cancel_is_discarded(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        provider.create_gate = asyncio.Event()
        job = await orchestrator.create_video(CreateVideoRequest(prompt="late"))
        await asyncio.sleep(0)

        await orchestrator.cancel_job(job.id)
        provider.create_gate.set()
        await orchestrator.wait_for_submission(job.id)
        await orchestrator.drain()

        current = await orchestrator.store.find_by_id(job.id)
        assert current.status == JobStatus.CANCELLED
        assert current.provider_job_id is None
        assert provider.cancelled == ["prov_123"]

    @pytest.mark.asyncio
    async def test_poll_result_after_cancel_is_discarded(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        job = await submitted_job(orchestrator)
        provider.succeed()
        provider.poll_gate = asyncio.Event()

        sync = asyncio.create_task(orchestrator.sync_job_status(job.id))
        await asyncio.sleep(0)
        await orchestrator.cancel_job(job.id)
        provider.poll_gate.set()
        result = await sync
        await orchestrator.drain()

        assert result.status == JobStatus.CANCELLED
        assert result.result is None

    @pytest.mark.asyncio
    async def test_fail_job_is_noop_when_terminal(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        job = await submitted_job(orchestrator)
        failed = await orchestrator.fail_job(job.id, "JOB_TIMEOUT", "too slow", cancel_upstream=True)
        await orchestrator.drain()

        assert failed.status == JobStatus.FAILED
        assert failed.error.code == "JOB_TIMEOUT"
        assert provider.cancelled == ["prov_123"]

        again = await orchestrator.fail_job(job.id, "OTHER", "ignored")
        assert again.error.code == "JOB_TIMEOUT"

    @pytest.mark.asyncio
    async def test_deleted_during_submission_resolves_quietly(
        self, orchestrator: JobOrchestrator, provider: ScriptedProvider
    ) -> None:
        provider.create_gate = asyncio.Event()
        job = await orchestrator.create_video(CreateVideoRequest(prompt="gone"))
        await asyncio.sleep(0)

        assert await orchestrator.store.delete(job.id)
        provider.create_gate.set()
        task = orchestrator.start_submission(job.id)
        assert await task is None
        await orchestrator.wait_for_submission(job.id)
        await orchestrator.drain()

        assert provider.cancelled == ["prov_123"]


class TestSyncOverHttpProvider:
    """Sync-on-read against the HTTP client with unusual status payloads."""

    @staticmethod
    def build(status_body: dict) -> JobOrchestrator:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json={"id": "task_1", "status": "queued"})
            return httpx.Response(200, json=status_body)

        client = HttpProviderClient(
            api_key="sk-test",
            contract=SORA_1,
            base_url="https://provider.test/v1",
            retry_policy=RetryPolicy(max_attempts=1, base_delay=0.0, max_delay=0.0),
            transport=httpx.MockTransport(handler),
        )
        return JobOrchestrator(InMemoryJobStore(), client)

    @pytest.mark.asyncio
    async def test_fractional_duration_completes_job(self) -> None:
        orchestrator = self.build(
            {
                "id": "task_1",
                "status": "succeeded",
                "result": {"url": "https://cdn.test/task_1.mp4", "duration": 10.04},
            }
        )
        job = await submitted_job(orchestrator)

        current = await orchestrator.get_job_status(job.id)
        await orchestrator.provider.aclose()

        assert current.status == JobStatus.COMPLETED
        assert current.result.video_url == "https://cdn.test/task_1.mp4"
        assert current.result.duration == 10

    @pytest.mark.asyncio
    async def test_malformed_payload_returns_cached_job(self) -> None:
        orchestrator = self.build(
            {
                "id": "task_1",
                "status": "succeeded",
                "width": "wide",
                "generations": {"video_url": "https://cdn.test/task_1.mp4"},
                "result": {"url": "https://cdn.test/task_1.mp4"},
            }
        )
        job = await submitted_job(orchestrator)

        current = await orchestrator.get_job_status(job.id)
        assert current.status == JobStatus.PROCESSING
        assert current.provider_job_id == "task_1"

        with pytest.raises(JobNotReadyError):
            await orchestrator.get_video_result(job.id)
        await orchestrator.provider.aclose()
