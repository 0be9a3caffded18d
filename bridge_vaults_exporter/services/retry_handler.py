"""Bounded retry with exponential backoff for transient read failures."""

import asyncio
import random
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar


T = TypeVar('T')


def is_transient(error: BaseException) -> bool:
    """Default classification: errors flagged ``transient`` and timeouts are retried."""
    if getattr(error, "transient", False):
        return True
    return isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError))


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried call: a value, or the last error once retries are exhausted."""

    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0
    exhausted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class RetryHandler:
    """
    Runs an async call up to ``max_attempts`` times.

    Only failures classified as transient are retried; a permanent failure
    ends the loop immediately. The loop never raises: the caller inspects the
    returned :class:`RetryOutcome` instead.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 5.0,
        classify: Callable[[BaseException], bool] = is_transient,
        logger: logging.Logger = None
    ):
        """
        Initialize retry handler.

        Args:
            max_attempts: Maximum number of attempts, including the first
            base_delay: Initial backoff delay in seconds
            max_delay: Maximum backoff delay in seconds
            classify: Returns True for errors worth retrying
            logger: Optional logger for retry events
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.classify = classify
        self.logger = logger or logging.getLogger(__name__)

    def backoff(self, attempt: int) -> float:
        """
        Delay before the attempt following ``attempt``.

        Exponential in the attempt number, capped at ``max_delay``, plus 0-10% jitter.
        """
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * 0.1)

    async def run(self, func: Callable[[], Awaitable[T]], label: str = "call") -> RetryOutcome[T]:
        """
        Execute ``func`` with bounded retries.

        Args:
            func: Zero-argument coroutine function performing one attempt
            label: Name used in log messages

        Returns:
            RetryOutcome: Value on success, otherwise the last error
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                value = await func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                retryable = self.classify(e)

                if not retryable:
                    self.logger.warning(f"{label}: permanent failure on attempt {attempt}: {e}")
                    return RetryOutcome(error=e, attempts=attempt)

                if attempt == self.max_attempts:
                    self.logger.warning(f"{label}: all {self.max_attempts} attempts failed: {e}")
                    return RetryOutcome(error=e, attempts=attempt, exhausted=True)

                delay = self.backoff(attempt)
                self.logger.info(
                    f"{label}: attempt {attempt}/{self.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.2f}s..."
                )
                await asyncio.sleep(delay)
                continue

            return RetryOutcome(value=value, attempts=attempt)

        # Unreachable with max_attempts >= 1
        return RetryOutcome(error=RuntimeError(f"{label}: no attempts made"), exhausted=True)
