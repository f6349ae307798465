"""
Bounded wait-with-backoff for eventually consistent reads.

Azure Digital Twins can deliver a change event before its query index
reflects the change. Instead of sleeping a fixed amount, callers re-read
until a readiness predicate holds, backing off exponentially, and give up
with ConsistencyTimeoutError once the attempt count or the overall timeout
is exhausted.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .exceptions import ConsistencyTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff parameters for wait_for.

    Attributes:
        max_attempts: Maximum number of reads (>= 1)
        initial_delay: Delay before the second read, in seconds
        backoff_factor: Multiplier applied after each failed read
        max_delay: Cap for a single delay, in seconds
        timeout: Overall wall-clock bound, in seconds
    """

    max_attempts: int = 5
    initial_delay: float = 0.5
    backoff_factor: float = 2.0
    max_delay: float = 4.0
    timeout: float = 15.0

    def delays(self):
        """Yield the delay to sleep after each failed attempt but the last."""
        delay = self.initial_delay
        for _ in range(self.max_attempts - 1):
            yield min(delay, self.max_delay)
            delay *= self.backoff_factor


def wait_for(
    fetch: Callable[[], T],
    is_ready: Callable[[T], bool],
    policy: RetryPolicy,
    description: str = "data"
) -> T:
    """
    Call fetch until is_ready accepts its result.

    Exceptions raised by fetch are not retried; they propagate immediately.

    Args:
        fetch: Zero-argument read against the store
        is_ready: Predicate deciding whether the read is fresh enough
        policy: Backoff and timeout parameters
        description: Used in log and error messages

    Returns:
        The first fetched value accepted by is_ready

    Raises:
        ConsistencyTimeoutError: If no read was accepted in time. The last
            observed value is attached as ``last_value``.
    """
    deadline = time.monotonic() + policy.timeout
    delays = policy.delays()
    attempts = 0

    while True:
        value = fetch()
        attempts += 1
        if is_ready(value):
            if attempts > 1:
                logger.info(f"{description} became visible after {attempts} attempts")
            return value

        delay = next(delays, None)
        remaining = deadline - time.monotonic()
        if delay is None or remaining <= 0:
            break

        delay = min(delay, remaining)
        logger.debug(f"{description} not visible yet (attempt {attempts}), retrying in {delay:.2f}s")
        time.sleep(delay)

    logger.warning(f"Gave up waiting for {description}")
    raise ConsistencyTimeoutError(
        f"Timed out waiting for {description}",
        last_value=value,
        attempts=attempts
    )
