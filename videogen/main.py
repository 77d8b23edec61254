"""FastAPI application factory and server entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from videogen import __version__
from videogen.api.routes import (
    generic_exception_handler,
    health_router,
    http_exception_handler,
    request_validation_exception_handler,
    router,
    videogen_exception_handler,
)
from videogen.clients import ProviderClient, create_provider_client, get_contract
from videogen.config import Settings, get_settings
from videogen.services.batches import BatchOrchestrator
from videogen.services.health import HealthService
from videogen.services.jobs import JobOrchestrator
from videogen.services.store import InMemoryBatchStore, InMemoryJobStore
from videogen.utils.errors import VideoGenError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[ProviderClient] = None,
) -> FastAPI:
    """
    Build the application with its stores, provider client and orchestrators.

    Args:
        settings: Application settings; read from the environment if omitted
        provider: Provider client override; built from settings if omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    contract = get_contract(settings.provider_contract)
    provider = provider or create_provider_client(settings)

    job_store = InMemoryJobStore()
    batch_store = InMemoryBatchStore()
    job_orchestrator = JobOrchestrator(job_store, provider, contract)
    batch_orchestrator = BatchOrchestrator(
        job_orchestrator,
        batch_store,
        concurrency=settings.batch_concurrency,
        poll_interval=settings.batch_poll_interval_seconds,
        job_timeout=settings.batch_job_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            f"Video generation service starting (provider={settings.provider_mode}, "
            f"contract={contract.name})"
        )
        yield
        await batch_orchestrator.shutdown()
        await job_orchestrator.drain()
        await provider.aclose()
        logger.info("Video generation service stopped")

    app = FastAPI(title="Video Generation Orchestrator", version=__version__, lifespan=lifespan)

    app.state.settings = settings
    app.state.job_orchestrator = job_orchestrator
    app.state.batch_orchestrator = batch_orchestrator
    app.state.health_service = HealthService(
        job_store, provider, batch_store=batch_store, version=__version__
    )

    app.include_router(router, prefix="/api/v1")
    app.include_router(health_router)

    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(VideoGenError, videogen_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
