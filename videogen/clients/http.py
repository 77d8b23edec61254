"""HTTP provider client for the Sora-style video generation REST API."""

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from uuid import uuid4

import httpx
from pydantic import ValidationError as PydanticValidationError

from videogen.clients.base import (
    ProviderClient,
    ProviderFailure,
    ProviderHandle,
    ProviderResult,
    ProviderStatus,
    ProviderStatusResponse,
    ProviderVideoRequest,
    parse_provider_status,
)
from videogen.clients.contracts import ProviderContract
from videogen.utils.errors import (
    BadRequestError,
    ExternalProviderError,
    RateLimitedError,
    ServiceUnavailableError,
    UnauthorizedError,
    UnknownProviderError,
)
from videogen.utils.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
REDACTED = "***"
_SENSITIVE_HEADERS = {"authorization", "x-api-key", "api-key"}
# Payload shapes that break normalisation surface as UnknownProviderError.
_MALFORMED_PAYLOAD = (PydanticValidationError, TypeError, KeyError, IndexError, AttributeError)


def redact_headers(headers: Any) -> dict[str, str]:
    """Copy headers with credential values masked."""
    return {
        key: (REDACTED if key.lower() in _SENSITIVE_HEADERS else value)
        for key, value in dict(headers).items()
    }


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given either as seconds or as an HTTP date."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


def translate_error(response: httpx.Response, operation: str) -> ExternalProviderError:
    """Map a non-2xx provider response onto the internal error taxonomy."""
    status = response.status_code
    code: Optional[str] = None
    message = response.reason_phrase or f"HTTP {status}"

    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        code = body["error"].get("code") or body["error"].get("type")
        message = body["error"].get("message") or message

    details = {"operation": operation}

    if status == 429:
        return RateLimitedError(
            message,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
            provider_code=code,
        )
    if status in (401, 403):
        return UnauthorizedError(message, status, code, details)
    if 400 <= status < 500:
        return BadRequestError(message, status, code, details)
    if status >= 500:
        return ServiceUnavailableError(message, status, code, details)
    return UnknownProviderError(message, status, code, details)


class HttpProviderClient(ProviderClient):
    """Provider client speaking the Sora v1 REST contract over httpx."""

    def __init__(
        self,
        api_key: str,
        contract: ProviderContract,
        base_url: str = DEFAULT_BASE_URL,
        model: Optional[str] = None,
        timeout: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the HttpProviderClient.

        Args:
            api_key: Bearer token for the provider
            contract: Active provider contract (sizes, model name)
            base_url: Provider API base URL
            model: Model override; defaults to the contract's model
            timeout: Per-request timeout in seconds
            retry_policy: Backoff parameters for retryable failures
            transport: Optional httpx transport (used by tests)
        """
        self.contract = contract
        self.model = model or contract.model
        self.retry_policy = retry_policy or RetryPolicy()
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_payload(self, request: ProviderVideoRequest) -> dict[str, Any]:
        """
        Construct the provider request body.

        Args:
            request: Internal generation request

        Returns:
            Wire payload with model, prompt, size and duration fields
        """
        width, height = self.contract.resolve_size(request.resolution, request.aspect_ratio)
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": request.prompt,
            "width": width,
            "height": height,
            "n_variants": 1,
        }
        if request.duration is not None:
            payload["n_seconds"] = request.duration
        if request.seed is not None:
            payload["seed"] = request.seed
        if request.style:
            payload["style"] = request.style
        return payload

    async def _send(
        self, method: str, path: str, operation: str, **kwargs: Any
    ) -> httpx.Response:
        """Issue one request, translating every failure into ExternalProviderError."""
        request = self._client.build_request(method, path, **kwargs)
        logger.debug(
            f"Provider request {operation}: {method} {request.url} "
            f"headers={redact_headers(request.headers)}"
        )

        try:
            response = await self._client.send(request)
        except httpx.TimeoutException as e:
            raise ServiceUnavailableError(
                f"Timeout during {operation}: {e}", details={"operation": operation}
            ) from e
        except httpx.HTTPError as e:
            raise ServiceUnavailableError(
                f"Network error during {operation}: {e}", details={"operation": operation}
            ) from e

        logger.debug(f"Provider response {operation}: HTTP {response.status_code}")

        if response.status_code >= 400:
            error = translate_error(response, operation)
            logger.warning(f"Provider {operation} failed: {error}")
            raise error
        return response

    async def _request(
        self, method: str, path: str, operation: str, **kwargs: Any
    ) -> httpx.Response:
        return await retry_async(
            lambda: self._send(method, path, operation, **kwargs),
            self.retry_policy,
            exceptions=(ExternalProviderError,),
            should_retry=lambda e: getattr(e, "retryable", False),
            operation_name=f"provider.{operation}",
        )

    @staticmethod
    def _json(response: httpx.Response, operation: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise UnknownProviderError(
                f"Invalid JSON in {operation} response", response.status_code
            ) from e
        if not isinstance(data, dict):
            raise UnknownProviderError(
                f"Unexpected response format in {operation}", response.status_code
            )
        return data

    async def create_video(self, request: ProviderVideoRequest) -> ProviderHandle:
        """
        Submit a video generation job.

        POST /videos. The idempotency key is fixed across retries.

        Returns:
            ProviderHandle with the provider job id and initial status

        Raises:
            ExternalProviderError: On any non-retryable or retry-exhausted failure
        """
        payload = self.build_payload(request)
        idempotency_key = request.idempotency_key or uuid4().hex

        response = await self._request(
            "POST",
            "/videos",
            "create_video",
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
        )
        data = self._json(response, "create_video")

        handle = data.get("id")
        if not handle:
            raise UnknownProviderError("Provider response is missing a job id", response.status_code)

        status = parse_provider_status(data.get("status", ProviderStatus.QUEUED.value))
        try:
            accepted = ProviderHandle(id=str(handle), status=status)
        except _MALFORMED_PAYLOAD as e:
            raise UnknownProviderError(
                f"Malformed create_video response: {e}",
                response.status_code,
                details={"operation": "create_video"},
            ) from e
        logger.info(f"Provider accepted video job {accepted.id} ({status.value})")
        return accepted

    async def get_video_status(self, handle: str) -> ProviderStatusResponse:
        """GET /videos/{id} and normalise the payload."""
        response = await self._request("GET", f"/videos/{handle}", "get_video_status")
        data = self._json(response, "get_video_status")
        return self.parse_status_payload(handle, data)

    def parse_status_payload(self, handle: str, data: dict[str, Any]) -> ProviderStatusResponse:
        """
        Normalise a provider job resource.

        Accepts the Sora v1 shape (generations[].video_url, failure_reason,
        n_seconds/width/height) and the generic shape (result.url,
        error.code/message).

        Raises:
            UnknownProviderError: If the status is unrecognised or a field
                has an unusable type
        """
        try:
            return self._normalise_status(handle, data)
        except _MALFORMED_PAYLOAD as e:
            raise UnknownProviderError(
                f"Malformed get_video_status response for {handle}: {e}",
                details={"operation": "get_video_status"},
            ) from e

    def _normalise_status(self, handle: str, data: dict[str, Any]) -> ProviderStatusResponse:
        status = parse_provider_status(data.get("status"))
        result: Optional[ProviderResult] = None
        error: Optional[ProviderFailure] = None

        if status == ProviderStatus.SUCCEEDED:
            url = None
            generic = data.get("result") if isinstance(data.get("result"), dict) else {}
            generations = data.get("generations")
            if isinstance(generations, list) and generations and isinstance(generations[0], dict):
                url = generations[0].get("video_url") or generations[0].get("url")
            url = url or generic.get("url")
            if url:
                result = ProviderResult(
                    url=url,
                    thumbnail_url=generic.get("thumbnail_url") or generic.get("thumbnailUrl"),
                    width=data.get("width") or generic.get("width"),
                    height=data.get("height") or generic.get("height"),
                    duration=data.get("n_seconds") or generic.get("duration"),
                    file_size=generic.get("file_size") or generic.get("fileSize"),
                    format=generic.get("format") or "mp4",
                )

        if status == ProviderStatus.FAILED:
            raw_error = data.get("error") if isinstance(data.get("error"), dict) else {}
            error = ProviderFailure(
                code=raw_error.get("code") or "GENERATION_FAILED",
                message=raw_error.get("message")
                or data.get("failure_reason")
                or "Video generation failed",
            )

        return ProviderStatusResponse(
            id=str(data.get("id") or handle), status=status, result=result, error=error
        )

    async def cancel_video(self, handle: str) -> None:
        """DELETE /videos/{id}."""
        await self._request("DELETE", f"/videos/{handle}", "cancel_video")
        logger.info(f"Provider cancellation requested for {handle}")

    async def health_check(self) -> bool:
        try:
            response = await self._client.get("/models", timeout=5.0)
        except httpx.HTTPError as e:
            logger.warning(f"Provider health check failed: {e}")
            return False
        return response.status_code < 500
