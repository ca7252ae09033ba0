"""
Retry with exponential backoff for transient failures.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random() * 0.5)
        return delay


async def retry_async(
    func: Callable,
    *args,
    config: RetryConfig,
    retryable_exceptions: tuple = (Exception,),
    **kwargs
) -> Any:
    """
    Retry an async function with exponential backoff.

    Args:
        func: The async function to retry
        config: Retry configuration
        retryable_exceptions: Exceptions that trigger another attempt

    Returns:
        The result of the function call

    Raises:
        The last exception once all attempts are exhausted
    """
    for attempt in range(config.max_attempts):
        try:
            result = await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt == config.max_attempts - 1:
                logger.error(f"All {config.max_attempts} attempts failed for {func.__name__}: {e}")
                raise
            delay = config.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt + 1} failed for {func.__name__}: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)
        else:
            if attempt > 0:
                logger.info(f"Function {func.__name__} succeeded on attempt {attempt + 1}")
            return result


def retry_on_timeout(max_attempts: Optional[int] = None, base_delay: float = 0.5, max_delay: float = 5.0):
    """
    Decorator retrying HTTP calls that time out or cannot connect.

    ``max_attempts`` defaults to the ``max_retry_attempts`` setting.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempts = max_attempts or get_settings().max_retry_attempts
            return await retry_async(
                func,
                *args,
                config=RetryConfig(max_attempts=attempts, base_delay=base_delay, max_delay=max_delay),
                retryable_exceptions=(httpx.TimeoutException, httpx.ConnectError),
                **kwargs
            )
        return wrapper

    return decorator
