"""Deadlines, retry with exponential backoff, and size-scaled timeouts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Config
from ..constants import BASE_TIMEOUTS, MIB
from ..enums import TimeoutOperation
from ..exceptions import (
    HardServiceError,
    TransientError,
    ValidationError,
    WorkflowCancelledError,
)

logger = logging.getLogger("studioshot.dispatch.resilience")

R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


def is_transient(exc: BaseException) -> bool:
    """True for timeouts, connection resets and httpx transport errors."""
    return isinstance(
        exc,
        TransientError | TimeoutError | ConnectionError | httpx.TransportError,
    )


def _should_retry(exc: BaseException) -> bool:
    # Task cancellation, interrupts, bad input and explicit rejections are final
    if not isinstance(exc, Exception):
        return False
    return not isinstance(exc, ValidationError | HardServiceError | WorkflowCancelledError)


def calculate_timeout(
    operation: TimeoutOperation | str, size_bytes: int | None = None
) -> float:
    """Deadline in seconds for one external call.

    Images above ``Config.TIMEOUT_LARGE_IMAGE_MB`` get
    ``Config.TIMEOUT_SECONDS_PER_EXTRA_MB`` per extra MiB, capped at
    ``Config.TIMEOUT_MAX_EXTENSION``.

    Args:
        operation: Kind of external call.
        size_bytes: Image size, if known.

    Returns:
        Timeout in seconds.
    """
    timeout = BASE_TIMEOUTS[TimeoutOperation(operation)]

    if size_bytes and size_bytes > Config.TIMEOUT_LARGE_IMAGE_MB * MIB:
        size_mb = size_bytes / MIB
        extra = min(
            Config.TIMEOUT_MAX_EXTENSION,
            (size_mb - Config.TIMEOUT_LARGE_IMAGE_MB) * Config.TIMEOUT_SECONDS_PER_EXTRA_MB,
        )
        timeout += extra
        if size_mb > 50:
            logger.warning(
                "Large image (%.2fMB), using extended %.0fs timeout for %s",
                size_mb,
                timeout,
                TimeoutOperation(operation).value,
            )

    return timeout


async def call_with_deadline(
    operation: Callable[[], Awaitable[R]], timeout: float, label: str = "operation"
) -> R:
    """Await ``operation()`` for at most ``timeout`` seconds.

    Raises:
        TransientError: If the deadline passes first.
    """
    try:
        return await asyncio.wait_for(operation(), timeout)
    except TimeoutError as exc:
        raise TransientError(f"{label} timed out after {timeout:.0f}s") from exc


async def retry_with_backoff(
    operation: Callable[[], Awaitable[R]],
    max_retries: int = Config.MAX_RETRIES,
    base_delay: float = Config.RETRY_BASE_DELAY,
    sleep: Sleep = asyncio.sleep,
) -> R:
    """Call ``operation()`` up to ``max_retries`` times in total.

    The wait after failed attempt ``n`` (1-based) is ``base_delay * 2 ** (n - 1)``.
    Validation errors, explicit service rejections and cancellation are not
    retried. The last error propagates unchanged.

    Args:
        operation: Zero-argument coroutine function; called once per attempt.
        max_retries: Total attempts, including the first one.
        base_delay: Initial delay in seconds.
        sleep: Awaitable sleep, replaceable in tests.
    """
    if max_retries < 1:
        raise ValueError(f"max_retries must be >= 1, got {max_retries}")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=base_delay, exp_base=2),
        retry=retry_if_exception(_should_retry),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )

    async def attempt() -> R:
        return await operation()

    return await retrying(attempt)


async def resilient_call(
    operation: Callable[[], Awaitable[R]],
    *,
    timeout: float,
    label: str = "operation",
    max_retries: int = Config.MAX_RETRIES,
    base_delay: float = Config.RETRY_BASE_DELAY,
    sleep: Sleep = asyncio.sleep,
) -> R:
    """Retry ``operation()`` with backoff, each attempt bounded by ``timeout``."""
    return await retry_with_backoff(
        lambda: call_with_deadline(operation, timeout, label),
        max_retries=max_retries,
        base_delay=base_delay,
        sleep=sleep,
    )
