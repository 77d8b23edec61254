"""Provider client contract and the types that cross it."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from videogen.utils.errors import UnknownProviderError


class ProviderStatus(str, Enum):
    """Provider-side status vocabulary, kept separate from JobStatus."""

    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Wire spellings seen across provider versions.
_WIRE_STATUSES: dict[str, ProviderStatus] = {
    "queued": ProviderStatus.QUEUED,
    "pending": ProviderStatus.QUEUED,
    "in_progress": ProviderStatus.PROCESSING,
    "processing": ProviderStatus.PROCESSING,
    "running": ProviderStatus.PROCESSING,
    "succeeded": ProviderStatus.SUCCEEDED,
    "completed": ProviderStatus.SUCCEEDED,
    "failed": ProviderStatus.FAILED,
    "cancelled": ProviderStatus.CANCELLED,
    "canceled": ProviderStatus.CANCELLED,
}


def parse_provider_status(value: object) -> ProviderStatus:
    """
    Translate a wire status string into ProviderStatus.

    Raises:
        UnknownProviderError: If the provider returned an unrecognised status
    """
    status = _WIRE_STATUSES.get(str(value).strip().lower()) if value is not None else None
    if status is None:
        raise UnknownProviderError(
            f"Unrecognised provider status: {value!r}", details={"status": value}
        )
    return status


class ProviderVideoRequest(BaseModel):
    """Generation parameters handed to the provider."""

    prompt: str
    duration: Optional[int] = None
    resolution: Optional[str] = None
    aspect_ratio: Optional[str] = None
    style: Optional[str] = None
    seed: Optional[int] = None
    idempotency_key: Optional[str] = None


class ProviderHandle(BaseModel):
    """Opaque provider job identifier plus the status reported at creation."""

    id: str
    status: ProviderStatus = ProviderStatus.QUEUED


class ProviderResult(BaseModel):
    """Downloadable media reference reported on success."""

    url: str
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    file_size: Optional[int] = None
    format: Optional[str] = None


class ProviderFailure(BaseModel):
    """Error code and message reported on failure."""

    code: str = "GENERATION_FAILED"
    message: str = "Video generation failed"


class ProviderStatusResponse(BaseModel):
    """Result of polling a provider job."""

    id: str
    status: ProviderStatus
    result: Optional[ProviderResult] = None
    error: Optional[ProviderFailure] = None


class ProviderClient(ABC):
    """
    Boundary between this service and the remote video-generation API.

    Implementations raise only ExternalProviderError subclasses.
    """

    @abstractmethod
    async def create_video(self, request: ProviderVideoRequest) -> ProviderHandle:
        """Submit a generation request."""

    @abstractmethod
    async def get_video_status(self, handle: str) -> ProviderStatusResponse:
        """Poll the current state of a provider job."""

    @abstractmethod
    async def cancel_video(self, handle: str) -> None:
        """Request cancellation upstream. Best-effort."""

    async def health_check(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None
