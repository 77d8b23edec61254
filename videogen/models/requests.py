"""Request models accepted by the orchestrators.

Provider-specific limits are not encoded here; the job orchestrator checks
them against the active provider contract.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from videogen.models.job import JobPriority


class CreateVideoRequest(BaseModel):
    """A single video-generation request."""

    prompt: str = ""
    duration: Optional[Union[int, float]] = None
    resolution: Optional[str] = None
    aspect_ratio: Optional[str] = None
    style: Optional[str] = None
    seed: Optional[int] = None
    priority: Optional[JobPriority] = None
    metadata: Optional[dict[str, Any]] = None


class CreateBatchRequest(BaseModel):
    """A group of video requests submitted together."""

    name: Optional[str] = None
    videos: list[CreateVideoRequest] = Field(default_factory=list)
    priority: Optional[JobPriority] = None
