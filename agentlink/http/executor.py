"""Timeout and bounded retry around a single logical HTTP call."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agentlink.core.errors import RequestTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 2
DEFAULT_TIMEOUT_MS = 30_000
BACKOFF_BASE_SECONDS = 0.1  # 100ms, 200ms, 400ms ...


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Attempt %d failed (%s), retrying in %.0f ms",
        retry_state.attempt_number,
        outcome.exception() if outcome else "unknown error",
        delay * 1000,
    )


async def _attempt(operation: Callable[[], Awaitable[T]], timeout_ms: Optional[float]) -> T:
    if timeout_ms is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        raise RequestTimeoutError(timeout_ms) from None


async def execute(
    operation: Callable[[], Awaitable[T]],
    *,
    idempotent: bool = False,
    max_retries: int = DEFAULT_RETRIES,
    timeout_ms: Optional[float] = DEFAULT_TIMEOUT_MS,
) -> T:
    """Run ``operation`` with a per-attempt deadline.

    Idempotent operations are retried up to ``max_retries`` times with
    exponential backoff measured from the previous failure. The last error is
    re-raised as-is once attempts are exhausted. Non-idempotent operations get
    exactly one attempt.
    """
    if not idempotent or max_retries <= 0:
        return await _attempt(operation, timeout_ms)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=BACKOFF_BASE_SECONDS),
        retry=retry_if_exception_type(Exception),
        before_sleep=_log_retry,
        reraise=True,
    )
    return await retrying(_attempt, operation, timeout_ms)
