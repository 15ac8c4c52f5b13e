"""Retry decisions for failed pipeline attempts.

Transient failures are retried after a fixed delay until ``max_attempts`` is
reached. Permanent failures are never retried.
"""

import logging
from dataclasses import dataclass
from typing import Union

from webinventory.constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_DELAY_MS
from webinventory.exceptions import CrawlError, ErrorClass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Retry:
    """Run the task again after ``delay`` seconds."""
    delay: float


@dataclass(frozen=True)
class GiveUp:
    """Record the task as terminally failed."""
    reason: str = ""


Decision = Union[Retry, GiveUp]


def classify(error: BaseException) -> ErrorClass:
    """Map an exception onto its retry classification.

    Classified crawl errors carry their own class. Anything else is treated as
    transient (timeouts, connection resets and other flaky loads).
    """
    if isinstance(error, CrawlError):
        return error.error_class
    return ErrorClass.TRANSIENT


class RetryPolicy:
    """Fixed-delay retry policy."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
    ):
        """
        Initialize retry policy.

        Args:
            max_attempts: Total attempts per task, first attempt included
            retry_delay_ms: Fixed delay between attempts in milliseconds
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must not be negative")
        self.max_attempts = max_attempts
        self.retry_delay_ms = retry_delay_ms

    @property
    def delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    def decide(self, attempt: int, error_class: ErrorClass) -> Decision:
        """
        Decide what happens after attempt number ``attempt`` failed.

        Args:
            attempt: 1-based number of the attempt that just failed
            error_class: Classification of the failure

        Returns:
            Retry with the fixed delay, or GiveUp
        """
        if error_class is ErrorClass.PERMANENT:
            return GiveUp("permanent error")
        if attempt >= self.max_attempts:
            return GiveUp(f"exhausted {self.max_attempts} attempts")
        return Retry(self.delay_seconds)
