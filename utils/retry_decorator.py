"""
Retry decorator with exponential backoff using tenacity
"""
import asyncio
import functools
import logging
from typing import Callable, Any
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from botocore.exceptions import ClientError, EndpointConnectionError

from config import settings


_retry_logger = logging.getLogger("pricelist_extractor.retry")

RETRYABLE_ERRORS = (
    ClientError,
    EndpointConnectionError,
    TimeoutError,
    ConnectionError,
)


def with_retry(
    max_attempts: int = None,
    min_wait: int = None,
    max_wait: int = None,
    multiplier: int = None
) -> Callable:
    """
    Decorator to add retry logic with exponential backoff

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time in seconds
        max_wait: Maximum wait time in seconds
        multiplier: Exponential backoff multiplier

    Returns:
        Decorated function with retry logic
    """
    max_attempts = max_attempts or settings.MAX_RETRIES
    min_wait = min_wait if min_wait is not None else settings.RETRY_MIN_WAIT
    max_wait = max_wait if max_wait is not None else settings.RETRY_MAX_WAIT
    multiplier = multiplier or settings.RETRY_MULTIPLIER

    def decorator(func: Callable) -> Callable:
        retrying = retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(
                multiplier=multiplier,
                min=min_wait,
                max=max_wait
            ),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=before_sleep_log(_retry_logger, logging.WARNING),
            reraise=True
        )

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                return await func(*args, **kwargs)
            return retrying(async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            return func(*args, **kwargs)
        return retrying(sync_wrapper)

    return decorator
