"""
Retry with exponential backoff for calls to betting-house APIs.

Timeouts, network errors and 5xx responses are retried; 4xx responses and
anything else propagate on the first failure.
"""
import asyncio
import random
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar('T')


def should_retry_error(error: Exception) -> bool:
    """
    Determine if an error should be retried.

    Retries on:
    - Timeout errors
    - 5xx server errors
    - Network errors

    Does NOT retry on:
    - 4xx client errors (bad request, unauthorized, etc.)
    - Other application errors
    """
    if isinstance(error, httpx.TimeoutException):
        return True

    if isinstance(error, httpx.HTTPStatusError):
        return 500 <= error.response.status_code < 600

    if isinstance(error, httpx.NetworkError):
        return True

    return False


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> T:
    """
    Await `func()` until it succeeds, a non-retryable error is raised, or
    `max_attempts` is exhausted. The last exception is re-raised.
    """
    last_exception = None

    for attempt in range(1, max(max_attempts, 1) + 1):
        try:
            return await func()
        except Exception as e:
            last_exception = e

            if not should_retry_error(e):
                logger.debug("Error %r is not retryable, stopping", e)
                raise

            if attempt >= max_attempts:
                logger.warning("Max attempts (%s) reached, giving up", max_attempts)
                break

            delay = min(initial_delay * (exponential_base ** (attempt - 1)), max_delay)
            if jitter:
                delay += delay * 0.1 * random.random()

            logger.info(
                "Attempt %s/%s failed: %r. Retrying in %.2fs",
                attempt, max_attempts, e, delay,
            )
            await asyncio.sleep(delay)

    raise last_exception
