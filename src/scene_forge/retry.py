"""Bounded exponential-backoff retry for remote generation calls.

Only transient failures (rate limits and 5xx) are retried. The delay before
attempt k (k >= 2) is ``base_delay * 2 ** (k - 2)``; with the defaults there
is no cap and no jitter, so ten attempts can wait for over 40 minutes in
total. ``max_delay`` and ``jitter`` bound that when configured.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .config import RetryConfig
from .errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _build_wait(base_delay: float, max_delay: Optional[float], jitter: float):
    wait_kwargs = {"multiplier": base_delay, "exp_base": 2, "min": 0}
    if max_delay is not None:
        wait_kwargs["max"] = max_delay
    wait = wait_exponential(**wait_kwargs)
    if jitter > 0:
        wait = wait + wait_random(0, jitter)
    return wait


def with_retry(
    operation: Callable[[], T],
    max_attempts: int = 10,
    base_delay: float = 5.0,
    max_delay: Optional[float] = None,
    jitter: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
    stats: Optional[dict] = None,
) -> T:
    """Call ``operation`` until it succeeds or a non-transient error occurs.

    Args:
        operation: Zero-argument callable performing one remote call
        max_attempts: Total attempts including the first
        base_delay: Seconds to wait before the second attempt
        max_delay: Optional cap on a single delay
        jitter: Optional random extra delay, in seconds
        sleep: Sleep function (injected in tests)
        stats: Optional dict that receives ``attempts`` and ``delays``

    Returns:
        The operation's return value

    Raises:
        The last attempt's exception, unchanged, when attempts run out, or
        the first non-transient exception immediately.
    """
    delays: list[float] = []

    def _sleep(seconds: float) -> None:
        delays.append(seconds)
        sleep(seconds)

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=_build_wait(base_delay, max_delay, jitter),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=_sleep,
        reraise=True,
    )

    try:
        return retrying(operation)
    finally:
        if stats is not None:
            stats["attempts"] = retrying.statistics.get("attempt_number", 0)
            stats["delays"] = delays


@dataclass
class RetryPolicy:
    """Retry settings bound to a sleep function, reusable across calls."""

    max_attempts: int = 10
    base_delay: float = 5.0
    max_delay: Optional[float] = None
    jitter: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def from_config(
        cls,
        config: RetryConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            jitter=config.jitter,
            sleep=sleep,
        )

    def call(self, operation: Callable[[], T], stats: Optional[dict] = None) -> T:
        return with_retry(
            operation,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
            sleep=self.sleep,
            stats=stats,
        )
