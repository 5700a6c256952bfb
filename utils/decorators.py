"""
Reusable decorators for the service.

This module contains the retry decorator shared by every upstream call:
automatic retries with exponential backoff, optional jitter, and
label-tagged logging so a failing resource is identifiable in the logs.
"""

import asyncio
import logging
import random
from functools import wraps
from typing import Callable, Optional, Type, Union

import aiohttp

from config.settings import (
    MAX_RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRY_JITTER,
    RETRY_MAX_DELAY,
)
from utils.errors import FetchError

logger = logging.getLogger("regiondex.decorators")


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float = 0.0,
) -> float:
    """
    Delay to wait before ``attempt`` (0-indexed, so only meaningful for >= 1).

    The formula is: `delay = min(base_delay * (2^attempt), max_delay) + U(0, jitter)`.
    """
    delay = min(base_delay * (2**attempt), max_delay)
    if jitter > 0:
        delay += random.uniform(0, jitter)
    return delay


def retry_on_error(
    max_retries: int = MAX_RETRY_ATTEMPTS,
    exceptions: Union[Type[Exception], tuple] = (
        aiohttp.ClientError,
        asyncio.TimeoutError,
    ),
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
    jitter: float = RETRY_JITTER,
    label: Optional[str] = None,
):
    """
    Decorator to retry async functions on specific exceptions with exponential backoff.

    Exceptions outside ``exceptions`` propagate immediately without retrying.

    Args:
        max_retries: Total number of attempts before giving up.
        exceptions: Exception type or tuple of exceptions to catch and retry.
        base_delay: Base delay in seconds.
        max_delay: Maximum delay in seconds between retries (caps the backoff).
        jitter: Upper bound of a random extra delay added to each wait.
        label: Name used in logs and in the synthetic error; defaults to the
            function name.

    Returns:
        Decorated function wrapper.

    Raises:
        Exception: The last exception encountered if all retries fail, or
            FetchError when no attempt was made at all.
    """

    def decorator(func: Callable):
        name = label or func.__name__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt == max_retries - 1:
                        logger.error(
                            f"[{name}] failed after {max_retries} attempts: {e}"
                        )
                        raise

                    delay = backoff_delay(attempt + 1, base_delay, max_delay, jitter)

                    logger.warning(
                        f"[{name}] attempt {attempt + 1}/{max_retries} failed: {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )

                    await asyncio.sleep(delay)

            if last_exception:
                raise last_exception
            raise FetchError(name, "Unknown error")

        return wrapper

    return decorator
