"""Retry helper for remote calls with exponential backoff."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import REMOTE_MAX_ATTEMPTS, REMOTE_MAX_WAIT_SECONDS, REMOTE_MIN_WAIT_SECONDS
from .errors import TransientRemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _validate_retry_params(max_attempts: int, min_wait: float, max_wait: float) -> None:
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
    if min_wait < 0 or max_wait < 0:
        raise ValueError("wait times must be non-negative")
    if min_wait > max_wait:
        raise ValueError(f"min_wait ({min_wait}) cannot exceed max_wait ({max_wait})")


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = REMOTE_MAX_ATTEMPTS,
    min_wait: float = REMOTE_MIN_WAIT_SECONDS,
    max_wait: float = REMOTE_MAX_WAIT_SECONDS,
) -> T:
    """
    Await a remote call, retrying only TransientRemoteError.

    Args:
        func: Async remote method
        *args: Positional arguments for the method
        max_attempts: Total attempts including the first
        min_wait: Minimum wait between attempts, seconds
        max_wait: Maximum wait between attempts, seconds

    Returns:
        Whatever the remote call returns

    Raises:
        TransientRemoteError: If every attempt failed transiently
        PermanentRemoteError: Immediately, without retrying
        ValueError: If the retry parameters are invalid
    """
    _validate_retry_params(max_attempts, min_wait, max_wait)

    retrying = AsyncRetrying(
        retry=retry_if_exception_type(TransientRemoteError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await func(*args)
    raise RuntimeError("Retry loop ended without a result")
