"""Request deadline shared by every concurrent branch of one pipeline call."""

import logging
import time
from concurrent.futures import Future, wait
from typing import Any, Callable, List, Optional, Sequence

logger = logging.getLogger(__name__)


class DeadlineExceeded(TimeoutError):
    """Raised when a call would start after its request deadline has passed."""


class Deadline:
    """
    Absolute point in time after which a request should stop waiting.

    A deadline of None never expires.
    """

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    @classmethod
    def none(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, clamped at zero, or None for no deadline."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def timeout(self, default: float) -> float:
        """Per-call timeout: the default, capped by the time left."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)

    def __repr__(self):
        return f"<Deadline(seconds={self.seconds}, remaining={self.remaining()})>"


def gather(futures: Sequence[Future], deadline: Deadline, description: str) -> List[Any]:
    """
    Wait for futures until the deadline and collect their results.

    Results come back in submission order. A future that raised, or did not
    finish in time, yields None; its siblings are unaffected.

    Args:
        futures: Futures in submission order
        deadline: Request deadline
        description: What the futures are doing, for log messages

    Returns:
        List of results (or None) aligned with futures
    """
    if not futures:
        return []

    done, not_done = wait(futures, timeout=deadline.remaining())

    if not_done:
        logger.warning(f"Deadline reached: {len(not_done)}/{len(futures)} {description} unfinished")
        for future in not_done:
            future.cancel()

    results: List[Any] = []
    for future in futures:
        if future not in done:
            results.append(None)
            continue
        try:
            results.append(future.result())
        except Exception as e:
            logger.warning(f"Failed {description}: {e}")
            results.append(None)

    return results


def call_before_deadline(deadline: Deadline, default_timeout: float, fn: Callable, *args) -> Any:
    """
    Call fn(*args, timeout=...) with no more time than the deadline has left.

    The timeout is computed when the call starts, so work that sat in an
    executor queue gets the time remaining at that moment, not at submit time.

    Raises:
        DeadlineExceeded: The deadline passed before the call started
    """
    if deadline.expired():
        raise DeadlineExceeded(f"Deadline passed before {getattr(fn, '__name__', 'call')} started")
    return fn(*args, timeout=deadline.timeout(default_timeout))
