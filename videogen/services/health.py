"""Liveness, readiness and metrics reporting."""

import logging
import time
from typing import Any, Optional

from videogen.clients.base import ProviderClient
from videogen.services.store import BatchStore, JobStore

logger = logging.getLogger(__name__)


class HealthService:
    """Reports service health from the stores and the provider client."""

    def __init__(
        self,
        job_store: JobStore,
        provider: ProviderClient,
        batch_store: Optional[BatchStore] = None,
        version: str = "0.1.0",
    ) -> None:
        self.job_store = job_store
        self.batch_store = batch_store
        self.provider = provider
        self.version = version
        self._started = time.monotonic()

    def uptime_seconds(self) -> float:
        return round(time.monotonic() - self._started, 3)

    async def health(self) -> dict[str, Any]:
        """Liveness: the process is up."""
        return {
            "status": "healthy",
            "version": self.version,
            "uptime_seconds": self.uptime_seconds(),
        }

    async def readiness(self) -> dict[str, Any]:
        """
        Readiness: the job store answers and the provider is reachable.

        A failing check marks the service not ready; the error is reported,
        not raised.
        """
        checks: dict[str, dict[str, Any]] = {}

        try:
            await self.job_store.count()
            checks["store"] = {"status": "up"}
        except Exception as e:
            logger.error(f"Job store readiness check failed: {e}")
            checks["store"] = {"status": "down", "error": str(e)}

        try:
            reachable = await self.provider.health_check()
            checks["provider"] = {"status": "up" if reachable else "down"}
        except Exception as e:
            logger.error(f"Provider readiness check failed: {e}")
            checks["provider"] = {"status": "down", "error": str(e)}

        ready = all(check["status"] == "up" for check in checks.values())
        if not ready:
            logger.warning(f"Service not ready: {checks}")
        return {"ready": ready, "checks": checks}

    async def metrics(self) -> dict[str, Any]:
        """Job counts per status, batch count and uptime."""
        counts = await self.job_store.count_by_status()
        jobs = {status.value: count for status, count in counts.items()}
        payload: dict[str, Any] = {
            "jobs": {"total": sum(jobs.values()), "by_status": jobs},
            "uptime_seconds": self.uptime_seconds(),
        }
        if self.batch_store is not None:
            payload["batches"] = {"total": len(await self.batch_store.find_all())}
        return payload
