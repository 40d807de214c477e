"""Rate-limit retry for Jira calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import MAX_RETRIES, RETRY_DELAY_SECONDS
from ..errors import JiraAPIError, MaxRetriesExceeded

logger = logging.getLogger("jira.executor")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


def is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, JiraAPIError) and exc.is_rate_limited


def _log_retry(state: RetryCallState) -> None:
    delay = state.next_action.sleep if state.next_action else 0
    logger.warning(f"Rate limited (attempt {state.attempt_number}), retrying in {delay:.1f}s")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = MAX_RETRIES,
    base_delay: float = RETRY_DELAY_SECONDS,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Await fn(), retrying only on HTTP 429 with exponential backoff.

    Delays are base_delay, 2*base_delay, ... between attempts. Any other
    error propagates on the first occurrence.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, min=base_delay),
        retry=retry_if_exception(is_rate_limited),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=False,
    )
    try:
        async for attempt in retrying:
            with attempt:
                return await fn()
    except RetryError as e:
        raise MaxRetriesExceeded() from e.last_attempt.exception()
    raise AssertionError("unreachable")
