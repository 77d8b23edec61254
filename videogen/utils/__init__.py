"""Utility modules for the video generation service."""

from videogen.utils.errors import (
    BadRequestError,
    ConflictError,
    ExternalProviderError,
    InternalConsistencyError,
    JobNotReadyError,
    NotFoundError,
    RateLimitedError,
    ServiceUnavailableError,
    UnauthorizedError,
    UnknownProviderError,
    ValidationError,
    VideoGenError,
)
from videogen.utils.retry import RetryPolicy, compute_delay, retry_async, with_retry

__all__ = [
    "VideoGenError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "JobNotReadyError",
    "InternalConsistencyError",
    "ExternalProviderError",
    "RateLimitedError",
    "BadRequestError",
    "UnauthorizedError",
    "ServiceUnavailableError",
    "UnknownProviderError",
    "RetryPolicy",
    "compute_delay",
    "retry_async",
    "with_retry",
]
