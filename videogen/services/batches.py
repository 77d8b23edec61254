"""Batch orchestrator: fans out groups of video jobs under a concurrency limit."""

import asyncio
import logging
from typing import Optional

from videogen.models.batch import (
    MAX_BATCH_SIZE,
    MIN_BATCH_SIZE,
    Batch,
    BatchStatus,
    aggregate_status,
    compute_progress,
)
from videogen.models.job import Job, JobStatus, is_terminal, utcnow
from videogen.models.requests import CreateBatchRequest
from videogen.services.jobs import JobOrchestrator, validate_video_request
from videogen.services.store import BatchStore
from videogen.utils.errors import (
    ConflictError,
    ExternalProviderError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


def validate_batch_request(request: CreateBatchRequest, orchestrator: JobOrchestrator) -> None:
    """
    Check batch size and every video in it.

    Raises:
        ValidationError: For a batch outside 1..10 videos, or the first
            invalid video (field prefixed with its index)
    """
    count = len(request.videos)
    if count < MIN_BATCH_SIZE:
        raise ValidationError("videos", "At least one video is required in the batch", count)
    if count > MAX_BATCH_SIZE:
        raise ValidationError(
            "videos", f"Maximum {MAX_BATCH_SIZE} videos allowed per batch", count
        )

    for index, video in enumerate(request.videos):
        try:
            validate_video_request(video, orchestrator.contract)
        except ValidationError as e:
            raise ValidationError(
                f"videos[{index}].{e.field}",
                f"Video at index {index}: {e.message}",
                e.details.get("value"),
            ) from e


class BatchOrchestrator:
    """Creates batches, processes them with a bounded worker pool, aggregates progress."""

    def __init__(
        self,
        jobs: JobOrchestrator,
        store: BatchStore,
        concurrency: int = DEFAULT_CONCURRENCY,
        poll_interval: float = 5.0,
        job_timeout: Optional[float] = 600.0,
    ) -> None:
        """
        Initialize the BatchOrchestrator.

        Args:
            jobs: Job orchestrator used to create, submit and sync jobs
            store: Batch store
            concurrency: Maximum jobs in flight across all batches
            poll_interval: Seconds between provider polls for one job
            job_timeout: Seconds a single job may take before it is failed;
                None disables the timeout
        """
        self.jobs = jobs
        self.store = store
        self.concurrency = max(concurrency, 1)
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._tasks: dict[str, asyncio.Task] = {}

    async def _get(self, batch_id: str) -> Batch:
        batch = await self.store.find_by_id(batch_id)
        if batch is None:
            raise NotFoundError("Batch", batch_id)
        return batch

    # ==================== Creation ====================

    async def create_batch(self, request: CreateBatchRequest, process: bool = True) -> Batch:
        """
        Create one job per video and a pending batch referencing them.

        Every video is validated before any job is created, so an invalid
        batch leaves no jobs behind. Processing starts in the background.

        Args:
            request: Batch request with 1..10 videos
            process: Start background processing immediately

        Returns:
            The pending batch

        Raises:
            ValidationError: If the batch or any video in it is invalid
        """
        validate_batch_request(request, self.jobs)

        logger.info(f"Creating video batch with {len(request.videos)} videos")

        job_ids: list[str] = []
        for video in request.videos:
            if request.priority is not None:
                video = video.model_copy(update={"priority": request.priority})
            job = await self.jobs.create_video(video, submit=False)
            job_ids.append(job.id)

        batch = Batch(
            name=request.name,
            job_ids=job_ids,
            progress=compute_progress([JobStatus.PENDING] * len(job_ids)),
        )
        batch = await self.store.create(batch)

        logger.info(f"Batch {batch.id} created with {len(job_ids)} jobs")

        if process:
            self.start_processing(batch.id)
        return batch

    def start_processing(self, batch_id: str) -> asyncio.Task:
        """Run process_batch in the background."""
        task = asyncio.create_task(self.process_batch(batch_id))
        self._tasks[batch_id] = task
        task.add_done_callback(lambda t: self._on_processing_done(batch_id, t))
        return task

    def _on_processing_done(self, batch_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(batch_id, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Processing of batch {batch_id} failed: {task.exception()}")

    async def wait_for_batch(self, batch_id: str) -> Batch:
        """Wait for background processing of a batch, then return it."""
        task = self._tasks.get(batch_id)
        if task is not None:
            await asyncio.shield(task)
        return await self._get(batch_id)

    # ==================== Processing ====================

    async def process_batch(self, batch_id: str) -> Batch:
        """
        Drive every job in the batch to a terminal state.

        At most `concurrency` jobs, counted across every batch, are submitted
        or awaited at once. A job failure does not affect its siblings. The
        batch aggregate is recomputed after every job transition.

        Raises:
            NotFoundError: If the batch does not exist
        """
        batch = await self._get(batch_id)
        if batch.is_terminal:
            return batch

        logger.info(
            f"Processing batch {batch_id}: {len(batch.job_ids)} jobs, "
            f"concurrency {self.concurrency}"
        )

        async def run_one(job_id: str) -> None:
            async with self._semaphore:
                try:
                    if self.job_timeout is None:
                        await self._drive_job(batch_id, job_id)
                    else:
                        await asyncio.wait_for(
                            self._drive_job(batch_id, job_id), timeout=self.job_timeout
                        )
                except asyncio.TimeoutError:
                    logger.warning(
                        f"Job {job_id} in batch {batch_id} timed out after {self.job_timeout}s"
                    )
                    await self._fail_quietly(
                        job_id,
                        "JOB_TIMEOUT",
                        f"Job did not finish within {self.job_timeout} seconds",
                    )
                except Exception as e:
                    logger.exception(f"Error processing job {job_id} in batch {batch_id}: {e}")
                    await self._fail_quietly(job_id, "BATCH_PROCESSING_ERROR", str(e))
            await self.refresh_batch(batch_id)

        await asyncio.gather(*(run_one(job_id) for job_id in batch.job_ids))

        batch = await self.refresh_batch(batch_id)
        logger.info(f"Batch {batch_id} processing finished with status {batch.status.value}")
        return batch

    async def _fail_quietly(self, job_id: str, code: str, message: str) -> None:
        """Fail one job and cancel it upstream; a vanished job is only logged."""
        try:
            await self.jobs.fail_job(job_id, code, message, cancel_upstream=True)
        except NotFoundError:
            logger.warning(f"Job {job_id} no longer exists, cannot record {code}")
        except ConflictError:
            logger.debug(f"Job {job_id} finished concurrently, {code} not recorded")

    async def _drive_job(self, batch_id: str, job_id: str) -> Optional[Job]:
        """Submit one job and poll it until terminal."""
        # The submission task keeps running past a timeout; submit_job then
        # cancels the late provider handle upstream.
        job = await asyncio.shield(self.jobs.start_submission(job_id))
        if job is None:
            return None
        await self.refresh_batch(batch_id)

        while not job.is_terminal:
            await asyncio.sleep(self.poll_interval)
            previous = job.status
            try:
                job = await self.jobs.sync_job_status(job_id)
            except ExternalProviderError as e:
                if e.retryable:
                    logger.warning(f"Transient provider error polling job {job_id}: {e}")
                    continue
                job = await self.jobs.fail_job(job_id, e.code, e.message)
            if job.status != previous:
                await self.refresh_batch(batch_id)

        return job

    # ==================== Aggregation ====================

    async def _job_statuses(self, batch: Batch) -> list[JobStatus]:
        statuses: list[JobStatus] = []
        for job_id in batch.job_ids:
            job = await self.jobs.store.find_by_id(job_id)
            if job is None:
                # A job removed out from under its batch counts as failed.
                logger.warning(f"Job {job_id} of batch {batch.id} no longer exists")
                statuses.append(JobStatus.FAILED)
            else:
                statuses.append(job.status)
        return statuses

    async def refresh_batch(self, batch_id: str) -> Batch:
        """
        Recompute progress and status from the constituent jobs and persist
        them when they changed.
        """
        batch = await self._get(batch_id)
        statuses = await self._job_statuses(batch)
        progress = compute_progress(statuses)

        if batch.status == BatchStatus.CANCELLED:
            status = BatchStatus.CANCELLED
        elif batch.cancel_requested and all(is_terminal(s) for s in statuses):
            status = BatchStatus.CANCELLED
        else:
            status = aggregate_status(statuses)

        if status == batch.status and progress == batch.progress:
            return batch

        fields: dict = {"status": status, "progress": progress}
        if status != batch.status and batch.completed_at is None and status in (
            BatchStatus.COMPLETED,
            BatchStatus.PARTIAL,
            BatchStatus.FAILED,
            BatchStatus.CANCELLED,
        ):
            fields["completed_at"] = utcnow()

        updated = await self.store.update(batch_id, fields)
        if status != batch.status:
            logger.info(
                f"Batch {batch_id}: {batch.status.value} -> {status.value} "
                f"({progress.completed} completed, {progress.failed} failed, "
                f"{progress.pending} pending, {progress.percentage}%)"
            )
        return updated

    # ==================== Queries and cancellation ====================

    async def get_batch_status(self, batch_id: str) -> Batch:
        """
        Return the batch with live progress counts.

        Raises:
            NotFoundError: If the batch does not exist
        """
        return await self.refresh_batch(batch_id)

    async def list_batches(self) -> list[Batch]:
        return await self.store.find_all()

    async def cancel_batch(self, batch_id: str) -> Batch:
        """
        Cancel every non-terminal job of the batch.

        Upstream cancellation is best-effort per job. The batch becomes
        cancelled once all its jobs are terminal.

        Raises:
            NotFoundError: If the batch does not exist
            ConflictError: If the batch is already terminal
        """
        batch = await self.refresh_batch(batch_id)
        if batch.is_terminal:
            raise ConflictError(
                f"Cannot cancel batch with status: {batch.status.value}",
                {"batch_id": batch_id, "status": batch.status.value},
            )

        logger.info(f"Cancelling batch {batch_id} ({len(batch.job_ids)} jobs)")
        await self.store.update(batch_id, {"cancel_requested": True})

        for job_id in batch.job_ids:
            try:
                await self.jobs.cancel_job(job_id)
            except ConflictError:
                logger.debug(f"Job {job_id} already terminal, not cancelled")
            except NotFoundError:
                logger.warning(f"Job {job_id} of batch {batch_id} not found during cancel")

        return await self.refresh_batch(batch_id)

    async def drain(self) -> None:
        """Wait for every background batch processing task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel batch processing still in progress."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            logger.info(f"Cancelled processing of {len(tasks)} batches on shutdown")
            await asyncio.gather(*tasks, return_exceptions=True)
