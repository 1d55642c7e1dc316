# catalog_sync/clients/retry.py
import requests
from tenacity import retry, stop_after_attempt, retry_if_exception_type, wait_exponential, wait_random

from ..errors import TransientPlatformError, TargetPlatformRateLimited
from ..utils.logger import warn

RETRYABLE = (TransientPlatformError, requests.ConnectionError, requests.Timeout)

_backoff = wait_exponential(multiplier=0.5, min=0.5, max=8) + wait_random(0, 1)


def wait_retry_after_or_backoff(retry_state) -> float:
    """Honor the platform's Retry-After hint, else exponential backoff plus jitter."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, TargetPlatformRateLimited) and exc.retry_after is not None:
        return float(exc.retry_after)
    return _backoff(retry_state)


def _log_retry(retry_state):
    exc = retry_state.outcome.exception()
    warn(f"[retry] attempt {retry_state.attempt_number} failed ({exc}), "
         f"retrying in {retry_state.next_action.sleep:.1f}s")


def platform_retry(attempts: int = 3, wait=wait_retry_after_or_backoff):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait,
        retry=retry_if_exception_type(RETRYABLE),
        before_sleep=_log_retry,
    )
