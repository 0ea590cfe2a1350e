"""Retry policies for triage backends.

Two policies are used: a fixed one for connecting to storage at startup and
a configurable one for webhook alerts and model provider calls.
"""

import logging
from typing import Callable, Optional, TypeVar

import httpx
from tenacity import (
    RetryCallState,
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


def is_transient_http_error(exc: BaseException) -> bool:
    """Transport failures and throttling or gateway statuses; other 4xx are final"""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


def _log_retry(retry_state: RetryCallState) -> None:
    """before_sleep hook: the failed attempt's outcome is set, the next attempt has not started"""
    error = retry_state.outcome.exception() if retry_state.outcome else None
    elapsed = retry_state.seconds_since_start or 0.0
    name = getattr(retry_state.fn, "__name__", "call")
    logger.warning(
        f"Attempt {retry_state.attempt_number} of {name} failed after {elapsed:.1f}s, "
        f"retrying: {error}"
    )


# Startup connections (Redis ping): 5 attempts, 2s..32s exponential backoff
service_startup_retry = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=32),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def create_custom_retry(
    max_attempts: int = 5,
    min_wait: float = 2,
    max_wait: float = 32,
    multiplier: float = 1,
    retry_on: Optional[Callable[[BaseException], bool]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Build a retry decorator with exponential backoff.

    Args:
        max_attempts: Attempts including the first call
        min_wait: Lower bound of the backoff (seconds)
        max_wait: Upper bound of the backoff (seconds)
        multiplier: Exponential backoff multiplier
        retry_on: Predicate selecting retryable exceptions; all exceptions when None

    The last exception is re-raised once attempts run out or retry_on rejects it.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        retry=retry_if_exception(retry_on or (lambda exc: True)),
        before_sleep=_log_retry,
        reraise=True,
    )
