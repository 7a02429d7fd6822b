"""Retry with exponential backoff and jitter for transient upstream failures."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY = 0.1
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_MAX_DELAY = 5.0
DEFAULT_JITTER = 0.2

TRANSIENT_MARKERS = (
    "network",
    "timeout",
    "timed out",
    "unavailable",
    "resource_exhausted",
    "internal",
    "deadline exceeded",
    "connection reset",
    "throttl",
)


def is_transient_error(exc: BaseException) -> bool:
    """Best-effort classification by message for errors without a status code."""
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def compute_delay(
    attempt: int,
    *,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
) -> float:
    """Delay before retry number `attempt` (0-based), capped and jittered."""
    delay = min(initial_delay * (backoff_factor ** attempt), max_delay)
    if jitter:
        delay *= random.uniform(1 - jitter, 1 + jitter)
    return max(0.0, delay)


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
    description: str = "operation",
) -> Any:
    """
    Await `operation()` and retry it on retryable errors.

    The operation runs at most `max_retries + 1` times. Errors that
    `is_retryable` rejects are raised immediately; the last error is raised
    once retries are exhausted.
    """
    should_retry = is_retryable or is_transient_error

    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not should_retry(e):
                raise
            delay = compute_delay(
                attempt,
                initial_delay=initial_delay,
                backoff_factor=backoff_factor,
                max_delay=max_delay,
                jitter=jitter,
            )
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{max_retries + 1}): {e}; "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)


def retry_call(
    operation: Callable[[], Any],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
    description: str = "operation",
) -> Any:
    """Synchronous variant of `with_retry` for blocking SDK calls (boto3)."""
    should_retry = is_retryable or is_transient_error

    for attempt in range(max_retries + 1):
        try:
            return operation()
        except Exception as e:
            if attempt >= max_retries or not should_retry(e):
                raise
            delay = compute_delay(
                attempt,
                initial_delay=initial_delay,
                backoff_factor=backoff_factor,
                max_delay=max_delay,
                jitter=jitter,
            )
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{max_retries + 1}): {e}; "
                f"retrying in {delay:.2f}s"
            )
            time.sleep(delay)
