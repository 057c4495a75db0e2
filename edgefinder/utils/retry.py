"""Retry utilities with exponential backoff.

This module provides retry logic for venue and embedding-provider calls that
may fail transiently. Only transient failures (timeouts, transport errors,
HTTP 429 and 5xx) are retried; other errors propagate on the first attempt.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from edgefinder.core.errors import UpstreamUnavailable
from edgefinder.utils.logging import get_logger


logger = get_logger("retry")


T = TypeVar('T')


def is_transient(exc: BaseException) -> bool:
    """Whether an error is worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return True
    # openai SDK errors expose the HTTP status the same way
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status == 429 or status >= 500
    return False


def compute_delay(
    attempt: int,
    initial_delay: float,
    backoff_factor: float,
    max_delay: float,
    jitter: bool = True,
) -> float:
    delay = initial_delay * (backoff_factor ** attempt)
    if jitter:
        # Add jitter to prevent thundering herd
        delay = delay * (0.5 + random.random() * 0.5)
    return min(delay, max_delay)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float = 60.0,
    retry_if: Callable[[BaseException], bool] = is_transient,
    jitter: bool = True,
    label: Optional[str] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs
) -> T:
    """Retry an async function with exponential backoff.

    Args:
        func: The async function to retry
        max_retries: Maximum number of attempts (including the first)
        initial_delay: Initial delay in seconds before first retry
        backoff_factor: Multiplier for delay between retries
        max_delay: Maximum delay between retries in seconds
        retry_if: Predicate deciding whether an error is retried
        jitter: Whether to add random jitter to delays
        label: Name used in log lines and in the final error
        sleep: Awaitable sleep, replaceable in tests
        *args: Positional arguments to pass to func
        **kwargs: Keyword arguments to pass to func

    Returns:
        The result of calling func

    Raises:
        UpstreamUnavailable: If every attempt failed with a transient error
        Exception: The original error when it is not transient
    """
    name = label or getattr(func, "__name__", "call")
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not retry_if(e):
                raise
            if attempt >= attempts - 1:
                logger.warning("All %d attempts of %s failed: %s", attempts, name, e)
                raise UpstreamUnavailable(f"{name} failed after {attempts} attempts: {e}") from e
            delay = compute_delay(attempt, initial_delay, backoff_factor, max_delay, jitter)
            logger.debug(
                "Retry attempt %d/%d of %s after %.2fs: %s",
                attempt + 1,
                attempts,
                name,
                delay,
                e,
            )
            await sleep(delay)

    raise RuntimeError("No exception captured but retries exhausted")

