"""
Retry utilities with exponential backoff for upstream API calls.

Used by the order connector and the auto-refresh job.
"""
import asyncio
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Type

import httpx

from app.utils.logger import log


@dataclass
class RetryStats:
    """Tracks retry statistics for a single operation."""
    attempts: int = 0
    total_delay_seconds: float = 0.0
    last_error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    success: bool = False

    def record_attempt(self, error: Optional[Exception] = None, delay: float = 0.0):
        """Record a retry attempt."""
        self.attempts += 1
        self.total_delay_seconds += delay
        if error:
            error_str = f"{type(error).__name__}: {str(error)}"
            self.last_error = error_str
            self.errors.append(error_str)

    def mark_success(self):
        self.success = True

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/responses."""
        return {
            "attempts": self.attempts,
            "total_delay_seconds": round(self.total_delay_seconds, 2),
            "success": self.success,
            "last_error": self.last_error,
            "errors": self.errors[:5]  # Cap at 5 errors
        }


# Network/transport failures from httpx plus builtin socket errors
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)

RETRYABLE_STATUS_CODES: Tuple[int, ...] = (408, 429, 500, 502, 503, 504)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Calculate delay for exponential backoff.

    Args:
        attempt: Current attempt number (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Base for exponential calculation
        jitter: Add 0-25% randomness on top of the capped delay

    Returns:
        Delay in seconds
    """
    delay = base_delay * (exponential_base ** (attempt - 1))
    delay = min(delay, max_delay)

    if jitter:
        delay += delay * random.uniform(0, 0.25)

    return delay


def is_retryable_error(
    error: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
    retryable_status_codes: Tuple[int, ...] = RETRYABLE_STATUS_CODES
) -> bool:
    """
    Check if an error is transient.

    Transport errors and timeouts are retried, as are errors carrying a
    retryable HTTP status (``status_code`` attribute or httpx response).
    """
    if isinstance(error, retryable_exceptions):
        return True

    status_code = getattr(error, "status_code", None)
    if status_code is None and isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
    if status_code is not None:
        return status_code in retryable_status_codes

    error_str = str(error).lower()
    if "rate limit" in error_str or "too many requests" in error_str:
        return True
    if "timeout" in error_str or "timed out" in error_str:
        return True

    return False


class RetryContext:
    """
    Context manager for retry operations with stats tracking.

    Usage:
        async with RetryContext(max_attempts=2, base_delay=2.0, jitter=False) as ctx:
            result = await ctx.execute(fetch, start, end)
            log.info(ctx.stats.to_dict())
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
        sleep: Callable = asyncio.sleep
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions
        self.sleep = sleep
        self.stats = RetryStats()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    async def execute(self, func: Callable, *args, **kwargs):
        """Execute a function with retry logic."""
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                if asyncio.iscoroutinefunction(func):
                    result = await func(*args, **kwargs)
                else:
                    result = func(*args, **kwargs)

                self.stats.record_attempt()
                self.stats.mark_success()
                return result

            except Exception as e:
                last_error = e

                if attempt >= self.max_attempts or not is_retryable_error(e, self.retryable_exceptions):
                    self.stats.record_attempt(error=e)
                    raise

                delay = calculate_backoff(
                    attempt,
                    base_delay=self.base_delay,
                    max_delay=self.max_delay,
                    exponential_base=self.exponential_base,
                    jitter=self.jitter
                )

                self.stats.record_attempt(error=e, delay=delay)

                log.warning(
                    f"Attempt {attempt} failed: {e}. Retrying in {delay:.1f}s..."
                )

                await self.sleep(delay)

        raise last_error if last_error else RuntimeError("Retry exhausted")
