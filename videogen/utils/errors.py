"""Custom exception classes for the video generation service."""

from typing import Any, Optional


class VideoGenError(Exception):
    """Base exception for all application errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details: dict[str, Any] = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Client-facing representation of the error."""
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(VideoGenError):
    """Caller-supplied request violates a constraint."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, field: str, message: str, value: Any = None) -> None:
        self.field = field
        details: dict[str, Any] = {"field": field}
        if value is not None:
            details["value"] = value
        super().__init__(message, details)


class NotFoundError(VideoGenError):
    """Referenced job or batch does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} with id '{resource_id}' not found",
            {"resource": resource, "id": resource_id},
        )


class ConflictError(VideoGenError):
    """Operation is not legal given the current state."""

    code = "CONFLICT"
    status_code = 409


class JobNotReadyError(VideoGenError):
    """Result requested for a job that has not completed."""

    code = "JOB_NOT_READY"
    status_code = 400

    def __init__(self, job_id: str, status: str) -> None:
        self.status = status
        super().__init__(
            f"Video job is not completed yet. Current status: {status}",
            {"job_id": job_id, "status": status},
        )


class InternalConsistencyError(VideoGenError):
    """An invariant was violated. Indicates a bug."""

    code = "INTERNAL_CONSISTENCY_ERROR"
    status_code = 500


class ExternalProviderError(VideoGenError):
    """The video provider reported a non-retryable or retry-exhausted failure."""

    code = "EXTERNAL_PROVIDER_ERROR"
    status_code = 502
    retryable = False

    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        provider_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.provider_status = provider_status
        self.provider_code = provider_code
        merged = dict(details or {})
        if provider_status is not None:
            merged["provider_status"] = provider_status
        if provider_code:
            merged["provider_code"] = provider_code
        super().__init__(f"Provider error: {message}", merged)


class RateLimitedError(ExternalProviderError):
    """Provider answered 429."""

    code = "PROVIDER_RATE_LIMITED"
    status_code = 429
    retryable = True

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        provider_code: Optional[str] = None,
    ) -> None:
        self.retry_after = retry_after
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, 429, provider_code, details)


class BadRequestError(ExternalProviderError):
    """Provider rejected the parameters (4xx or content policy)."""

    code = "PROVIDER_BAD_REQUEST"
    status_code = 400


class UnauthorizedError(ExternalProviderError):
    """Provider rejected the credentials."""

    code = "PROVIDER_UNAUTHORIZED"
    status_code = 502


class ServiceUnavailableError(ExternalProviderError):
    """Network failure or 5xx from the provider."""

    code = "PROVIDER_UNAVAILABLE"
    status_code = 503
    retryable = True


class UnknownProviderError(ExternalProviderError):
    """Any provider failure that fits no other kind."""

    code = "PROVIDER_UNKNOWN_ERROR"
    status_code = 502
