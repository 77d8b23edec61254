"""FastAPI dependencies for the video generation API."""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from videogen.config import Settings
from videogen.services.batches import BatchOrchestrator
from videogen.services.health import HealthService
from videogen.services.jobs import JobOrchestrator


def get_settings_dep(request: Request) -> Settings:
    """Dependency for application settings."""
    return request.app.state.settings


def get_job_orchestrator(request: Request) -> JobOrchestrator:
    """Dependency for the job orchestrator."""
    return request.app.state.job_orchestrator


def get_batch_orchestrator(request: Request) -> BatchOrchestrator:
    """Dependency for the batch orchestrator."""
    return request.app.state.batch_orchestrator


def get_health_service(request: Request) -> HealthService:
    """Dependency for the health service."""
    return request.app.state.health_service


def require_api_key(
    x_api_key: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings_dep),
) -> None:
    """Reject requests without the configured X-API-Key. No-op when no key is configured."""
    expected = settings.api_key
    if not expected:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
