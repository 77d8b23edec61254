"""Job orchestrator: creates video jobs, submits them and keeps them in sync."""

import asyncio
import logging
from typing import Any, Coroutine, Optional

from videogen.clients.base import (
    ProviderClient,
    ProviderStatus,
    ProviderStatusResponse,
    ProviderVideoRequest,
)
from videogen.clients.contracts import SORA_1, ProviderContract
from videogen.models.job import (
    Job,
    JobError,
    JobPriority,
    JobStatus,
    VideoResult,
    can_transition,
    transition_fields,
)
from videogen.models.requests import CreateVideoRequest
from videogen.services.store import JobPage, JobStore
from videogen.utils.errors import (
    ConflictError,
    ExternalProviderError,
    InternalConsistencyError,
    JobNotReadyError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

PROVIDER_STATUS_MAP: dict[ProviderStatus, JobStatus] = {
    ProviderStatus.QUEUED: JobStatus.PENDING,
    ProviderStatus.PROCESSING: JobStatus.PROCESSING,
    ProviderStatus.SUCCEEDED: JobStatus.COMPLETED,
    ProviderStatus.FAILED: JobStatus.FAILED,
    ProviderStatus.CANCELLED: JobStatus.CANCELLED,
}


def map_provider_status(status: ProviderStatus) -> JobStatus:
    """Translate the provider status vocabulary onto the internal one."""
    try:
        return PROVIDER_STATUS_MAP[status]
    except KeyError:
        raise InternalConsistencyError(f"Unmapped provider status: {status!r}") from None


def validate_video_request(request: CreateVideoRequest, contract: ProviderContract) -> None:
    """
    Check a request against the active provider contract.

    Stops at the first violation.

    Args:
        request: Incoming video request
        contract: Provider limits to enforce

    Raises:
        ValidationError: Identifying the offending field
    """
    prompt = request.prompt
    if prompt is None or not prompt.strip():
        raise ValidationError("prompt", "Prompt is required")
    if len(prompt) > contract.max_prompt_length:
        raise ValidationError(
            "prompt",
            f"Prompt must be at most {contract.max_prompt_length} characters",
            len(prompt),
        )

    duration = request.duration
    if duration is not None:
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            raise ValidationError("duration", "Duration must be an integer", duration)
        if duration < contract.min_duration or duration > contract.max_duration:
            raise ValidationError(
                "duration",
                f"Duration must be between {contract.min_duration} and "
                f"{contract.max_duration} seconds",
                duration,
            )
        if isinstance(duration, float) and not duration.is_integer():
            raise ValidationError("duration", "Duration must be an integer", duration)

    if request.resolution is not None and request.resolution not in contract.resolutions:
        raise ValidationError(
            "resolution",
            f"Resolution must be one of: {', '.join(contract.resolutions)}",
            request.resolution,
        )

    if request.aspect_ratio is not None and request.aspect_ratio not in contract.aspect_ratios:
        raise ValidationError(
            "aspect_ratio",
            f"Aspect ratio must be one of: {', '.join(contract.aspect_ratios)}",
            request.aspect_ratio,
        )


def to_provider_request(request: CreateVideoRequest) -> ProviderVideoRequest:
    """Build the provider-facing request from a validated video request."""
    return ProviderVideoRequest(
        prompt=request.prompt,
        duration=int(request.duration) if request.duration is not None else None,
        resolution=request.resolution,
        aspect_ratio=request.aspect_ratio,
        style=request.style,
        seed=request.seed,
    )


class JobOrchestrator:
    """Drives video jobs through pending -> processing -> terminal."""

    def __init__(
        self,
        store: JobStore,
        provider: ProviderClient,
        contract: ProviderContract = SORA_1,
    ) -> None:
        """
        Initialize the JobOrchestrator.

        Args:
            store: Job store, the source of truth for job records
            provider: Client for the remote video generation API
            contract: Provider contract used for request validation
        """
        self.store = store
        self.provider = provider
        self.contract = contract
        self._requests: dict[str, ProviderVideoRequest] = {}
        self._submissions: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()

    # ==================== Background tasks ====================

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_submission(self, job_id: str) -> None:
        """Wait until a background submission for the job has finished."""
        task = self._submissions.get(job_id)
        if task is not None:
            await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for every outstanding background submission and upstream cancel."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ==================== Lookup ====================

    async def _get(self, job_id: str) -> Job:
        job = await self.store.find_by_id(job_id)
        if job is None:
            raise NotFoundError("Video job", job_id)
        return job

    async def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        priority: Optional[JobPriority] = None,
        page: int = 1,
        limit: int = 20,
    ) -> JobPage:
        return await self.store.find_all(status=status, priority=priority, page=page, limit=limit)

    # ==================== Creation and submission ====================

    async def create_video(self, request: CreateVideoRequest, submit: bool = True) -> Job:
        """
        Validate and persist a new pending job.

        Submission to the provider runs as a background task; the caller gets
        the pending job back without waiting on the provider.

        Args:
            request: Video request
            submit: Start the background submission immediately. Batch
                processing passes False and submits under its own limiter.

        Returns:
            The newly created job in pending

        Raises:
            ValidationError: If the request violates the provider contract
        """
        validate_video_request(request, self.contract)

        job = Job(
            prompt=request.prompt,
            priority=request.priority or JobPriority.NORMAL,
            metadata=request.metadata,
        )
        job = await self.store.create(job)
        self._requests[job.id] = to_provider_request(request)

        logger.info(f"Video job {job.id} created (priority={job.priority.value})")

        if submit:
            self.start_submission(job.id)

        return job

    def start_submission(self, job_id: str) -> asyncio.Task:
        """
        Run submit_job in a tracked background task.

        Returns the outstanding task when one already exists for the job. The
        task resolves to None if the job was deleted before submission ended.
        """
        task = self._submissions.get(job_id)
        if task is None:
            task = self._spawn(self._run_submission(job_id))
            self._submissions[job_id] = task
            task.add_done_callback(lambda _t: self._submissions.pop(job_id, None))
        return task

    async def _run_submission(self, job_id: str) -> Optional[Job]:
        try:
            return await self.submit_job(job_id)
        except NotFoundError:
            logger.warning(f"Job {job_id} was deleted before its submission finished")
            return None

    async def submit_job(self, job_id: str) -> Job:
        """
        Submit a pending job to the provider and record the outcome.

        A job that is no longer pending, or already has a provider handle, is
        returned unchanged. Provider failures mark the job failed instead of
        propagating. A result that arrives after the job left pending is
        discarded.

        Returns:
            The job as stored after the attempt
        """
        job = await self._get(job_id)
        if job.status != JobStatus.PENDING or job.provider_job_id:
            logger.debug(f"Skipping submission of job {job_id} ({job.status.value})")
            self._requests.pop(job_id, None)
            return job

        provider_request = self._requests.get(job_id) or ProviderVideoRequest(prompt=job.prompt)
        provider_request = provider_request.model_copy(update={"idempotency_key": job_id})

        try:
            handle = await self.provider.create_video(provider_request)
        except ExternalProviderError as e:
            logger.error(f"Failed to submit job {job_id} to provider: {e}")
            return await self._record_submission_failure(job_id, e.code, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error submitting job {job_id}: {e}")
            return await self._record_submission_failure(
                job_id, "SUBMISSION_FAILED", "Failed to submit to video provider"
            )
        finally:
            self._requests.pop(job_id, None)

        current = await self.store.find_by_id(job_id)
        if current is None or current.status != JobStatus.PENDING:
            state = current.status.value if current else "deleted"
            logger.warning(
                f"Discarding stale submission result for job {job_id} "
                f"(provider job {handle.id}, job is now {state})"
            )
            await self._cancel_upstream(job_id, handle.id)
            if current is None:
                raise NotFoundError("Video job", job_id)
            return current

        fields = transition_fields(current, JobStatus.PROCESSING)
        fields["provider_job_id"] = handle.id
        updated = await self.store.update(job_id, fields)

        logger.info(
            f"Job {job_id} submitted to provider as {handle.id} "
            f"(provider status {handle.status.value})"
        )
        return updated

    async def _record_submission_failure(self, job_id: str, code: str, message: str) -> Job:
        current = await self._get(job_id)
        if current.is_terminal:
            logger.warning(
                f"Submission failure for job {job_id} ignored, job already {current.status.value}"
            )
            return current
        return await self.store.update(
            job_id,
            transition_fields(
                current, JobStatus.FAILED, error=JobError(code=code, message=message)
            ),
        )

    # ==================== Status ====================

    async def sync_job_status(self, job_id: str) -> Job:
        """
        Refresh a job from the provider.

        No-op for jobs without a provider handle or already terminal.
        Persists only when the mapped status differs from the stored one.

        Raises:
            NotFoundError: If the job does not exist
            ExternalProviderError: If the provider poll fails
        """
        job = await self._get(job_id)
        if job.is_terminal or not job.provider_job_id:
            return job

        response = await self.provider.get_video_status(job.provider_job_id)

        # The poll suspended; re-read so a concurrent cancel is not overwritten.
        current = await self._get(job_id)
        if current.is_terminal or current.provider_job_id != job.provider_job_id:
            logger.info(
                f"Dropping sync result for job {job_id}, job is now {current.status.value}"
            )
            return current

        fields = self._reconcile(current, response)
        if not fields:
            return current

        updated = await self.store.update(job_id, fields)
        logger.info(
            f"Job {job_id} synced: {current.status.value} -> {updated.status.value}"
        )
        return updated

    def _reconcile(self, job: Job, response: ProviderStatusResponse) -> Optional[dict[str, Any]]:
        """Fields to persist for a provider observation, or None if nothing changes."""
        target = map_provider_status(response.status)

        if target == job.status:
            return None
        if not can_transition(job.status, target):
            # e.g. provider still reports queued after the job entered processing
            logger.debug(
                f"Ignoring provider status {response.status.value} for job {job.id} "
                f"in {job.status.value}"
            )
            return None

        if target == JobStatus.COMPLETED:
            if response.result is None:
                logger.error(f"Provider reported success for job {job.id} without a video URL")
                return transition_fields(
                    job,
                    JobStatus.FAILED,
                    error=JobError(
                        code="PROVIDER_MISSING_RESULT",
                        message="Provider reported success without a video URL",
                    ),
                )
            result = VideoResult(
                video_url=response.result.url,
                thumbnail_url=response.result.thumbnail_url,
                width=response.result.width,
                height=response.result.height,
                resolution=(
                    f"{response.result.width}x{response.result.height}"
                    if response.result.width and response.result.height
                    else None
                ),
                duration=(
                    round(response.result.duration)
                    if response.result.duration is not None
                    else None
                ),
                file_size=response.result.file_size,
                format=response.result.format,
            )
            return transition_fields(job, JobStatus.COMPLETED, result=result)

        if target == JobStatus.FAILED:
            failure = response.error
            return transition_fields(
                job,
                JobStatus.FAILED,
                error=JobError(
                    code=failure.code if failure else "GENERATION_FAILED",
                    message=failure.message if failure else "Video generation failed",
                ),
            )

        return transition_fields(job, target)

    async def _sync_for_read(self, job: Job) -> Job:
        """Sync-on-read: provider failures fall back to the cached job."""
        if job.is_terminal or not job.provider_job_id:
            return job
        try:
            return await self.sync_job_status(job.id)
        except ExternalProviderError as e:
            logger.warning(f"Sync of job {job.id} failed, returning cached state: {e}")
        except ConflictError as e:
            logger.warning(f"Sync of job {job.id} conflicted, returning current state: {e}")
        return await self._get(job.id)

    async def get_job_status(self, job_id: str) -> Job:
        """
        Return a job, refreshed from the provider when non-terminal.

        Raises:
            NotFoundError: If the job does not exist
        """
        job = await self._get(job_id)
        return await self._sync_for_read(job)

    async def get_video_result(self, job_id: str) -> Job:
        """
        Return a completed job with its result.

        Raises:
            NotFoundError: If the job does not exist
            JobNotReadyError: If the job is not completed after a sync
            InternalConsistencyError: If a completed job has no result
        """
        job = await self._get(job_id)
        if job.status != JobStatus.COMPLETED:
            job = await self._sync_for_read(job)

        if job.status != JobStatus.COMPLETED:
            raise JobNotReadyError(job.id, job.status.value)

        if job.result is None:
            logger.error(f"Job {job_id} is completed but has no result")
            raise InternalConsistencyError(
                "Video job completed but no result available", {"job_id": job_id}
            )
        return job

    # ==================== Cancellation and failure ====================

    async def cancel_job(self, job_id: str) -> Job:
        """
        Cancel a pending or processing job.

        The local transition happens immediately; the upstream cancel runs in
        the background and its failure is only logged.

        Raises:
            NotFoundError: If the job does not exist
            ConflictError: If the job is already terminal
        """
        job = await self._get(job_id)
        if job.is_terminal:
            raise ConflictError(
                f"Cannot cancel job with status: {job.status.value}",
                {"job_id": job_id, "status": job.status.value},
            )

        updated = await self.store.update(job_id, transition_fields(job, JobStatus.CANCELLED))
        self._requests.pop(job_id, None)
        logger.info(f"Video job {job_id} cancelled")

        if job.provider_job_id:
            self._spawn(self._cancel_upstream(job_id, job.provider_job_id))

        return updated

    async def fail_job(
        self, job_id: str, code: str, message: str, cancel_upstream: bool = False
    ) -> Job:
        """Mark a non-terminal job failed. Terminal jobs are returned unchanged."""
        job = await self._get(job_id)
        if job.is_terminal:
            return job

        updated = await self.store.update(
            job_id,
            transition_fields(job, JobStatus.FAILED, error=JobError(code=code, message=message)),
        )
        logger.warning(f"Video job {job_id} failed: {code}: {message}")

        if cancel_upstream and job.provider_job_id:
            self._spawn(self._cancel_upstream(job_id, job.provider_job_id))
        return updated

    async def _cancel_upstream(self, job_id: str, handle: str) -> None:
        try:
            await self.provider.cancel_video(handle)
        except ExternalProviderError as e:
            logger.warning(f"Failed to cancel provider job {handle} for job {job_id}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error cancelling provider job {handle}: {e}")
