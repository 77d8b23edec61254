"""FastAPI routes for the video generation API."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from videogen.api.deps import (
    get_batch_orchestrator,
    get_health_service,
    get_job_orchestrator,
    require_api_key,
)
from videogen.models.batch import Batch
from videogen.models.job import Job, JobPriority, JobStatus
from videogen.models.requests import CreateBatchRequest, CreateVideoRequest
from videogen.services.batches import BatchOrchestrator
from videogen.services.health import HealthService
from videogen.services.jobs import JobOrchestrator
from videogen.services.store import JobPage
from videogen.utils.errors import InternalConsistencyError, VideoGenError

logger = logging.getLogger(__name__)

# ==================== Error Response Model ====================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
    error_type: str
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    errors: Optional[List[Dict[str, Any]]] = None


# Create routers
_error_responses = {code: {"model": ErrorResponse} for code in (400, 404, 409)}
router = APIRouter(
    prefix="/videos",
    dependencies=[Depends(require_api_key)],
    responses=_error_responses,
)
health_router = APIRouter(prefix="/health")


# ==================== Exception Handlers ====================


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body and query parsing errors."""
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "error_type": "ValidationError",
            "errors": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                for err in exc.errors()
            ],
        },
    )


async def videogen_exception_handler(request: Request, exc: VideoGenError) -> JSONResponse:
    """Handle application errors using the status code each error carries."""
    if isinstance(exc, InternalConsistencyError):
        logger.error(f"Internal consistency error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "InternalError"},
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error_type": type(exc).__name__,
            "code": exc.code,
            "details": exc.details or None,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_type": "HTTPException",
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_type": "InternalError",
        },
    )


# ==================== Batch Endpoints ====================
# Declared before the single-job routes so "batch" is never read as a job id.


@router.post("/batch", response_model=Batch, status_code=202)
async def create_batch(
    request: CreateBatchRequest,
    batches: BatchOrchestrator = Depends(get_batch_orchestrator),
) -> Batch:
    """
    Create a batch of 1 to 10 video jobs.

    Jobs are submitted in the background under the configured concurrency
    limit. Returns the pending batch immediately.
    """
    return await batches.create_batch(request)


@router.get("/batch", response_model=List[Batch])
async def list_batches(
    batches: BatchOrchestrator = Depends(get_batch_orchestrator),
) -> List[Batch]:
    """List batches, newest first."""
    return await batches.list_batches()


@router.get("/batch/{batch_id}", response_model=Batch)
async def get_batch(
    batch_id: str,
    batches: BatchOrchestrator = Depends(get_batch_orchestrator),
) -> Batch:
    """Get a batch with live progress counts."""
    return await batches.get_batch_status(batch_id)


@router.delete("/batch/{batch_id}", response_model=Batch)
async def cancel_batch(
    batch_id: str,
    batches: BatchOrchestrator = Depends(get_batch_orchestrator),
) -> Batch:
    """Cancel every unfinished job in a batch."""
    return await batches.cancel_batch(batch_id)


# ==================== Job Endpoints ====================


@router.post("", response_model=Job, status_code=202)
async def create_video(
    request: CreateVideoRequest,
    jobs: JobOrchestrator = Depends(get_job_orchestrator),
) -> Job:
    """
    Create a video generation job.

    The request is validated against the active provider contract and the
    job is submitted in the background. Returns the pending job.
    """
    return await jobs.create_video(request)


@router.get("", response_model=JobPage)
async def list_videos(
    status: Optional[JobStatus] = None,
    priority: Optional[JobPriority] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    jobs: JobOrchestrator = Depends(get_job_orchestrator),
) -> JobPage:
    """List jobs, newest first, with optional status and priority filters."""
    return await jobs.list_jobs(status=status, priority=priority, page=page, limit=limit)


@router.get("/{job_id}", response_model=Job)
async def get_video(
    job_id: str,
    jobs: JobOrchestrator = Depends(get_job_orchestrator),
) -> Job:
    """Get a job, refreshed from the provider when it is not finished."""
    return await jobs.get_job_status(job_id)


@router.get("/{job_id}/result", response_model=Job)
async def get_video_result(
    job_id: str,
    jobs: JobOrchestrator = Depends(get_job_orchestrator),
) -> Job:
    """Get a completed job with its video result."""
    return await jobs.get_video_result(job_id)


@router.delete("/{job_id}", response_model=Job)
async def cancel_video(
    job_id: str,
    jobs: JobOrchestrator = Depends(get_job_orchestrator),
) -> Job:
    """Cancel a pending or processing job."""
    return await jobs.cancel_job(job_id)


# ==================== Health Endpoints ====================


@health_router.get("")
async def health(service: HealthService = Depends(get_health_service)) -> Dict[str, Any]:
    """Liveness probe."""
    return await service.health()


@health_router.get("/ready")
async def readiness(service: HealthService = Depends(get_health_service)) -> JSONResponse:
    """Readiness probe; 503 when a dependency is down."""
    report = await service.readiness()
    return JSONResponse(status_code=200 if report["ready"] else 503, content=report)


@health_router.get("/metrics")
async def metrics(service: HealthService = Depends(get_health_service)) -> Dict[str, Any]:
    """Job counts per status and uptime."""
    return await service.metrics()
