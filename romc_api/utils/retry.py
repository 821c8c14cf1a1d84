"""Exponential-backoff retry for flaky outbound calls.

Used around collaborators that talk to third parties (enrichment, ingest).
The guards in ``romc_api.core`` deliberately do not retry: a slow store must
not turn one request into several.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
RETRYABLE_MESSAGE_MARKERS = ("timeout", "timed out", "econnreset", "econnrefused", "network", "rate limit")


def is_retryable_error(exc: BaseException) -> bool:
    """Heuristic for transient failures.

    Timeouts and connection errors are retried, as are exceptions carrying a
    retryable HTTP status (``status_code`` or ``status`` attribute) or a
    message that looks like a network problem.
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if isinstance(status, int):
        return status in RETRYABLE_STATUS_CODES

    message = str(exc).lower()
    return any(marker in message for marker in RETRYABLE_MESSAGE_MARKERS)


def backoff_delay(attempt: int, *, initial_delay: float, max_delay: float, backoff_factor: float) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at ``max_delay``."""
    return min(initial_delay * (backoff_factor ** attempt), max_delay)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    retryable: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation: str = "operation",
) -> T:
    """Await ``fn()`` and retry transient failures with exponential backoff.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt.
        max_retries: Retries after the first attempt (0 disables retrying).
        initial_delay: Seconds before the first retry.
        max_delay: Upper bound for any single delay.
        backoff_factor: Multiplier applied per retry.
        retryable: Predicate deciding whether an exception is worth retrying.
        sleep: Awaitable sleep, injectable for tests.
        operation: Name used in log lines.

    Returns:
        Whatever ``fn`` returns on the first successful attempt.

    Raises:
        ValueError: If ``max_retries`` is negative.
        Exception: The last error once retries are exhausted, or the first
            non-retryable error immediately.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    should_retry = retryable or is_retryable_error

    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= max_retries or not should_retry(exc):
                if attempt:
                    logger.error(
                        "retry.exhausted",
                        extra={"operation": operation, "attempts": attempt + 1, "error_type": type(exc).__name__},
                    )
                raise
            delay = backoff_delay(
                attempt,
                initial_delay=initial_delay,
                max_delay=max_delay,
                backoff_factor=backoff_factor,
            )
            logger.warning(
                "retry.scheduled",
                extra={
                    "operation": operation,
                    "attempt": attempt + 1,
                    "delay_s": delay,
                    "error_type": type(exc).__name__,
                },
            )
            await sleep(delay)
            attempt += 1
