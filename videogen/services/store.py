"""In-memory job and batch stores.

The abstract contracts are the seam where a durable backend can be swapped
in without touching orchestration logic.
"""

import logging
from abc import ABC, abstractmethod
from math import ceil
from typing import Any, Literal, Optional

from pydantic import BaseModel

from videogen.models.batch import Batch
from videogen.models.job import Job, JobPriority, JobStatus, can_transition, utcnow
from videogen.utils.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

SortField = Literal["created_at", "updated_at"]
SortOrder = Literal["asc", "desc"]

# Fields that never change after creation.
_IMMUTABLE_JOB_FIELDS = {"id", "created_at"}


class JobPage(BaseModel):
    """One page of a job listing plus pagination metadata."""

    items: list[Job]
    total: int
    page: int
    limit: int
    total_pages: int
    has_more: bool


class JobStore(ABC):
    """Contract for job persistence."""

    @abstractmethod
    async def create(self, job: Job) -> Job: ...

    @abstractmethod
    async def find_by_id(self, job_id: str) -> Optional[Job]: ...

    @abstractmethod
    async def update(self, job_id: str, fields: dict[str, Any]) -> Job: ...

    @abstractmethod
    async def find_all(
        self,
        status: Optional[JobStatus] = None,
        priority: Optional[JobPriority] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: SortField = "created_at",
        sort_order: SortOrder = "desc",
    ) -> JobPage: ...

    @abstractmethod
    async def delete(self, job_id: str) -> bool: ...

    @abstractmethod
    async def count_by_status(self) -> dict[JobStatus, int]: ...

    async def count(self) -> int:
        return sum((await self.count_by_status()).values())


class InMemoryJobStore(JobStore):
    """Job store backed by a dict; lifetime is the process lifetime."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    async def create(self, job: Job) -> Job:
        """
        Insert a new job.

        Raises:
            ConflictError: If a job with the same id already exists
        """
        if job.id in self._jobs:
            raise ConflictError(f"Job with id '{job.id}' already exists", {"id": job.id})

        self._jobs[job.id] = job.model_copy(deep=True)
        logger.debug(f"Job {job.id} created in store")
        return job.model_copy(deep=True)

    async def find_by_id(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def update(self, job_id: str, fields: dict[str, Any]) -> Job:
        """
        Merge fields into an existing job and bump updated_at.

        Args:
            job_id: Job to update
            fields: Partial fields; id and created_at are ignored

        Returns:
            The updated job

        Raises:
            NotFoundError: If the job does not exist
            ConflictError: If the update requests an illegal status transition
        """
        existing = self._jobs.get(job_id)
        if existing is None:
            raise NotFoundError("Job", job_id)

        changes = {k: v for k, v in fields.items() if k not in _IMMUTABLE_JOB_FIELDS}

        new_status = changes.get("status")
        if new_status is not None and not can_transition(existing.status, JobStatus(new_status)):
            raise ConflictError(
                f"Invalid status transition from '{existing.status.value}' "
                f"to '{JobStatus(new_status).value}'",
                {"id": job_id, "from": existing.status.value, "to": JobStatus(new_status).value},
            )

        updated_at = max(utcnow(), existing.updated_at)
        merged = existing.model_dump()
        merged.update(changes)
        merged["updated_at"] = updated_at
        updated = Job.model_validate(merged)

        self._jobs[job_id] = updated
        logger.debug(f"Job {job_id} updated in store: {sorted(changes)}")
        return updated.model_copy(deep=True)

    async def find_all(
        self,
        status: Optional[JobStatus] = None,
        priority: Optional[JobPriority] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: SortField = "created_at",
        sort_order: SortOrder = "desc",
    ) -> JobPage:
        """
        List jobs matching optional filters, sorted and paginated.

        Args:
            status: Only jobs in this status
            priority: Only jobs with this priority
            page: 1-based page number
            limit: Page size
            sort_by: Timestamp field to sort on
            sort_order: "asc" or "desc"

        Returns:
            JobPage with the requested slice and total count
        """
        page = max(page, 1)
        limit = max(limit, 1)

        jobs = list(self._jobs.values())
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        if priority is not None:
            jobs = [j for j in jobs if j.priority == priority]

        jobs.sort(key=lambda j: getattr(j, sort_by), reverse=sort_order == "desc")

        total = len(jobs)
        offset = (page - 1) * limit
        items = [j.model_copy(deep=True) for j in jobs[offset : offset + limit]]

        return JobPage(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=ceil(total / limit) if total else 0,
            has_more=offset + limit < total,
        )

    async def delete(self, job_id: str) -> bool:
        deleted = self._jobs.pop(job_id, None) is not None
        if deleted:
            logger.debug(f"Job {job_id} deleted from store")
        return deleted

    async def count_by_status(self) -> dict[JobStatus, int]:
        counts = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status] += 1
        return counts

    def clear(self) -> None:
        self._jobs.clear()


class BatchStore(ABC):
    """Contract for batch persistence."""

    @abstractmethod
    async def create(self, batch: Batch) -> Batch: ...

    @abstractmethod
    async def find_by_id(self, batch_id: str) -> Optional[Batch]: ...

    @abstractmethod
    async def update(self, batch_id: str, fields: dict[str, Any]) -> Batch: ...

    @abstractmethod
    async def find_all(self) -> list[Batch]: ...


class InMemoryBatchStore(BatchStore):
    """Batch store backed by a dict."""

    def __init__(self) -> None:
        self._batches: dict[str, Batch] = {}

    async def create(self, batch: Batch) -> Batch:
        if batch.id in self._batches:
            raise ConflictError(f"Batch with id '{batch.id}' already exists", {"id": batch.id})
        self._batches[batch.id] = batch.model_copy(deep=True)
        return batch.model_copy(deep=True)

    async def find_by_id(self, batch_id: str) -> Optional[Batch]:
        batch = self._batches.get(batch_id)
        return batch.model_copy(deep=True) if batch else None

    async def update(self, batch_id: str, fields: dict[str, Any]) -> Batch:
        existing = self._batches.get(batch_id)
        if existing is None:
            raise NotFoundError("Batch", batch_id)

        merged = existing.model_dump()
        merged.update({k: v for k, v in fields.items() if k not in ("id", "created_at", "job_ids")})
        merged["updated_at"] = max(utcnow(), existing.updated_at)
        updated = Batch.model_validate(merged)

        self._batches[batch_id] = updated
        return updated.model_copy(deep=True)

    async def find_all(self) -> list[Batch]:
        batches = sorted(self._batches.values(), key=lambda b: b.created_at, reverse=True)
        return [b.model_copy(deep=True) for b in batches]

    def clear(self) -> None:
        self._batches.clear()
