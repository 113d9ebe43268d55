"""
Retry orchestration around provider calls.

Bounded exponential backoff: base × 2^attempt between attempts. Validation
failures and authentication failures are terminal and surface on the first
attempt; everything else is retried until attempts run out, then the last
error propagates unchanged.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from loguru import logger
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from planwright.errors import ProviderError, ResponseValidationError

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ResponseValidationError):
        return False
    if isinstance(exc, ProviderError) and exc.is_auth_error:
        return False
    return isinstance(exc, Exception)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"[RETRY] Attempt {retry_state.attempt_number} failed: {exc} — retrying in {delay:.1f}s"
    )


def with_retries(
    fn: Callable[[], T],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` with up to ``max_attempts`` tries."""
    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, exp_base=2),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    return retrying(fn)
