"""Bounded exponential backoff for backend calls.

Provider calls are retried locally (default: 3 attempts, 0.5s then 1s waits)
and never across pipeline stages.
"""

from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import RetryConfig
from src.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    """Log each scheduled retry."""
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.warning(
        "backend_call_retry",
        attempt=retry_state.attempt_number,
        next_wait_s=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(error) if error else None,
    )


def build_retrying(config: Optional[RetryConfig] = None) -> AsyncRetrying:
    """Build a tenacity controller from retry settings.

    The n-th wait is ``base_delay * multiplier ** (n - 1)``.

    Args:
        config: Retry settings (defaults when omitted)

    Returns:
        AsyncRetrying that re-raises the last error once attempts run out
    """
    config = config or RetryConfig()
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.base_delay,
            exp_base=config.multiplier,
            min=0,
        ),
        before_sleep=_log_retry,
        reraise=True,
    )


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args,
    config: Optional[RetryConfig] = None,
    **kwargs,
) -> T:
    """Await ``func(*args, **kwargs)`` under the retry policy.

    Examples:
        >>> text = await call_with_retry(client.generate, prompt, config=settings.retry)
    """
    async for attempt in build_retrying(config):
        with attempt:
            return await func(*args, **kwargs)
    raise AssertionError("unreachable: tenacity re-raises on exhaustion")
