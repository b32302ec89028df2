"""Retry with exponential backoff, shared by upstream callers."""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    max_attempts: int,
    base_delay: float,
    retry_if: Callable[[Exception], bool],
    sleep_fn: Callable[[float], None] | None = None,
    label: str = "call",
) -> T:
    """Call ``fn`` until it succeeds or ``max_attempts`` is reached.

    The delay before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)``
    seconds. Exceptions rejected by ``retry_if`` propagate immediately; the
    last exception propagates once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay < 0:
        raise ValueError("base_delay must be >= 0")

    sleep = sleep_fn or time.sleep
    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except Exception as e:
            if not retry_if(e) or attempt >= max_attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                label, attempt, max_attempts, delay, e,
            )
            sleep(delay)

    raise RuntimeError("retry loop exhausted unexpectedly")
