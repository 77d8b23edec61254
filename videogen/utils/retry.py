"""Retry helpers with capped exponential backoff."""

import asyncio
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)
T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for transport-level retries."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0


def compute_delay(policy: RetryPolicy, attempt: int, retry_after: Optional[float] = None) -> float:
    """
    Delay before the retry that follows the given (0-based) failed attempt.

    A provider-supplied retry-after hint replaces the computed backoff but is
    still capped by max_delay.
    """
    if retry_after is not None and retry_after >= 0:
        return min(retry_after, policy.max_delay)
    return min(policy.base_delay * (policy.multiplier**attempt), policy.max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    should_retry: Optional[Callable[[Exception], bool]] = None,
    operation_name: str = "operation",
) -> T:
    """
    Run an async operation, retrying on failure with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory
        policy: Backoff parameters
        exceptions: Exception types eligible for retry
        should_retry: Optional predicate; returning False re-raises immediately
        operation_name: Label used in log messages

    Returns:
        The operation result

    Raises:
        The last exception once attempts are exhausted or the error is not retryable
    """
    attempts = max(policy.max_attempts, 1)

    for attempt in range(attempts):
        try:
            return await operation()
        except exceptions as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt >= attempts - 1:
                logger.error(f"{operation_name}: all {attempts} attempts failed: {e}")
                raise
            delay = compute_delay(policy, attempt, getattr(e, "retry_after", None))
            logger.warning(
                f"{operation_name}: attempt {attempt + 1}/{attempts} failed: {e}. "
                f"Retrying in {delay}s..."
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    multiplier: float = 2.0,
    max_delay: float = 30.0,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator for exponential backoff retry logic.

    Args:
        max_attempts: Maximum number of attempts
        base_delay: Base delay in seconds (multiplied each attempt)
        exceptions: Tuple of exception types to catch
        multiplier: Backoff multiplier
        max_delay: Upper bound for a single delay

    Returns:
        Decorated function with retry logic
    """
    policy = RetryPolicy(
        max_attempts=max_attempts,
        base_delay=base_delay,
        multiplier=multiplier,
        max_delay=max_delay,
    )

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_async(
                lambda: func(*args, **kwargs),
                policy,
                exceptions=exceptions,
                operation_name=func.__name__,
            )

        return wrapper

    return decorator
