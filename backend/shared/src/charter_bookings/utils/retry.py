"""Bounded retry with exponential backoff.

Usage:
    policy = RetryPolicy(retry_on=lambda e: isinstance(e, BookingNotVisibleError))
    outcome = run_with_retry(lambda: recorder.record(booking_id), policy, "record_payment")
    if not outcome.succeeded:
        logger.error("Gave up after %d attempts: %s", outcome.attempts, outcome.error)
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always(_: Exception) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait before each attempt.

    The wait before attempt ``n`` (1-based) is ``base_delay * multiplier ** (n - 1)``,
    so the defaults wait 0.5s, 1s, 2s, 4s and 8s.
    """

    max_attempts: int = 5
    base_delay: float = 0.5
    multiplier: float = 2.0
    retry_on: Callable[[Exception], bool] = _always

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * self.multiplier ** (attempt - 1)


@dataclass
class RetryOutcome(Generic[T]):
    """Observable result of a retried operation."""

    operation: str
    succeeded: bool
    attempts: int
    value: Optional[T] = None
    error: Optional[Exception] = None
    delays: list[float] = field(default_factory=list)


def run_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    operation_name: str,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome[T]:
    """Run an operation until it succeeds, fails permanently or runs out of attempts.

    Exceptions for which ``policy.retry_on`` returns False end the loop at once.
    Nothing is raised; the outcome carries the last error.

    Args:
        operation: Zero-argument callable to run
        policy: Retry policy
        operation_name: Name used in log lines and the outcome
        sleep: Sleep function, replaced in tests

    Returns:
        RetryOutcome with the value or the last error
    """
    outcome: RetryOutcome[T] = RetryOutcome(
        operation=operation_name, succeeded=False, attempts=0
    )

    for attempt in range(1, policy.max_attempts + 1):
        delay = policy.delay_for(attempt)
        outcome.delays.append(delay)
        sleep(delay)
        outcome.attempts = attempt

        try:
            outcome.value = operation()
        except Exception as e:  # noqa: BLE001 - reported through the outcome
            outcome.error = e
            retryable = policy.retry_on(e)
            logger.warning(
                "%s attempt %d/%d failed (retryable=%s): %s",
                operation_name,
                attempt,
                policy.max_attempts,
                retryable,
                e,
            )
            if not retryable:
                break
            continue

        outcome.succeeded = True
        outcome.error = None
        logger.info("%s succeeded on attempt %d", operation_name, attempt)
        break

    return outcome
