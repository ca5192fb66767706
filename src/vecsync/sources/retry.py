"""Bounded retry with a per-connector error classifier."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from vecsync.errors import ConnectorError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# classify(exc, attempt) -> seconds to wait before retrying, or None if fatal.
Classifier = Callable[[Exception, int], "float | None"]


def exponential_backoff(attempt: int, base: float = 5.0, cap: float = 300.0) -> float:
    """Delay before retry number *attempt* (1-based): base, 2*base, 4*base, ... capped."""
    return min(cap, base * 2 ** (attempt - 1))


class RetryPolicy:
    """Run a callable, retrying while the classifier says the error is transient.

    Args:
        classify: Maps (exception, attempt) to a wait in seconds, or None when
            the error must propagate immediately.
        max_attempts: Total attempts including the first one.
        sleep: Injectable sleep function.
    """

    def __init__(
        self,
        classify: Classifier,
        max_attempts: int = 5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.classify = classify
        self.max_attempts = max_attempts
        self.sleep = sleep

    def call(self, fn: Callable[..., T], *args, description: str = "request", **kwargs) -> T:
        """Return ``fn(*args, **kwargs)``, retrying transient failures.

        Raises:
            ConnectorError: The last attempt failed with a transient error.
            Exception: Whatever *fn* raised, when classified as fatal.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                wait = self.classify(exc, attempt)
                if wait is None:
                    raise
                if attempt == self.max_attempts:
                    raise ConnectorError(
                        f"{description} failed after {self.max_attempts} attempts: {exc}"
                    ) from exc
                logger.warning(
                    "%s failed (%s); retrying in %.1fs (attempt %d/%d)",
                    description,
                    exc,
                    wait,
                    attempt,
                    self.max_attempts,
                )
                self.sleep(wait)
