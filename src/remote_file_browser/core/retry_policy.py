"""
Retry Policy - Exponential backoff for connect and operation retries
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ..constants import MAX_RETRIES, RETRY_BASE_DELAY_S, RETRY_MAX_DELAY_S
from .errors import ConfigurationError, ErrorCategory

logger = logging.getLogger(__name__)

# Retrying these never changes the outcome.
NEVER_RETRY = frozenset({ErrorCategory.AUTH_FAILURE, ErrorCategory.NOT_FOUND})

RETRYABLE = frozenset({
    ErrorCategory.CONNECTION_LOST,
    ErrorCategory.TIMEOUT,
    ErrorCategory.UNREACHABLE,
    ErrorCategory.REFUSED,
})


@dataclass
class RetryPolicy:
    """
    Exponential backoff calculator.

    Attempt ``n`` (1-based) waits ``base_delay * 2 ** (n - 1)`` seconds,
    capped at ``max_delay``. A connect therefore makes at most
    ``1 + max_retries`` attempts.
    """
    max_retries: int = MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY_S
    max_delay: float = RETRY_MAX_DELAY_S
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self):
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("Retry delays must be >= 0")

    def next_delay(self, attempt: int) -> float:
        """
        Delay before retry number ``attempt``.

        Args:
            attempt: 1-based retry number

        Returns:
            Delay in seconds
        """
        if attempt < 1:
            return 0.0
        # Keep the exponent bounded so huge attempt numbers cannot overflow.
        exponent = min(attempt - 1, 62)
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def should_retry(self, category: ErrorCategory, attempt: int) -> bool:
        """
        Decide whether a failure is worth retrying.

        Args:
            category: Classification of the failure
            attempt: 1-based number of the retry that would follow

        Returns:
            True if another attempt may be made
        """
        if attempt > self.max_retries:
            return False
        if category in NEVER_RETRY:
            return False
        return category in RETRYABLE

    def wait(self, attempt: int) -> float:
        """Sleep for the backoff delay of ``attempt`` and return it."""
        delay = self.next_delay(attempt)
        if delay > 0:
            logger.debug(f"Backing off {delay:.2f}s before retry {attempt}/{self.max_retries}")
            self.sleep(delay)
        return delay
