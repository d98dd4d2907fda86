"""
Exponential-backoff retry for async operations.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from playwright.async_api import TimeoutError as PlaywrightTimeout
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import RateLimitExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")


def error_status(error: BaseException) -> Optional[int]:
    """HTTP status carried by an exception, if any."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None) or getattr(response, "status", None)
    return status if isinstance(status, int) else None


def is_retryable_error(error: BaseException) -> bool:
    """Retry on 429 (rate limited) and 5xx (server error). A spent daily budget is final."""
    if isinstance(error, RateLimitExceeded):
        return False
    status = error_status(error)
    if status is None:
        return False
    return status == 429 or 500 <= status <= 599


def is_transient_error(error: BaseException) -> bool:
    """Retryable status codes plus network and navigation timeouts."""
    if isinstance(error, (httpx.TimeoutException, PlaywrightTimeout)):
        return True
    return is_retryable_error(error)


@dataclass
class RetryPolicy:
    max_retries: int = 5
    initial_delay: float = 1.0
    max_delay: float = 30.0
    should_retry: Callable[[BaseException], bool] = is_retryable_error


DEFAULT_POLICY = RetryPolicy()


def backoff_delays(policy: RetryPolicy) -> list:
    """Delay sequence the policy produces between attempts."""
    delays, delay = [], policy.initial_delay
    for _ in range(policy.max_retries):
        delays.append(min(delay, policy.max_delay))
        delay *= 2
    return delays


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"[Retry] Attempt {retry_state.attempt_number} failed. "
        f"Retrying in {delay:.1f}s... (Error: {error})"
    )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `operation`, retrying retryable failures with exponential backoff.

    Delays start at `initial_delay`, double on each attempt and are capped at
    `max_delay`. Errors rejected by `should_retry` propagate immediately; after
    `max_retries + 1` attempts the last error propagates unchanged.

    `operation` may be any zero-argument callable returning an awaitable
    (coroutine function, lambda, functools.partial).
    """
    policy = policy or DEFAULT_POLICY

    async def attempt() -> T:
        return await operation()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_exponential(multiplier=policy.initial_delay, max=policy.max_delay),
        retry=retry_if_exception(policy.should_retry),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return await retrying(attempt)
