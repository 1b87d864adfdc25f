"""Retry strategy with bounded exponential backoff for control-plane calls."""

import time
import random
from typing import Callable, TypeVar, Optional

from shipyard.utils.errors import ReconcileError, TransientError
from shipyard.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

RetryPredicate = Callable[[TransientError], bool]


class RetryStrategy:
    """Retries transient control-plane failures with exponential backoff.

    Only ``TransientError`` is ever retried. Every other ``ReconcileError``
    propagates on the first occurrence, since permission or validation
    failures cannot be fixed by trying again.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize retry strategy.

        Args:
            max_attempts: Total number of attempts, including the first one
            base_delay: Delay in seconds before the first retry
            max_delay: Upper bound for any single delay
            exponential_base: Multiplier applied to the delay after each attempt
            jitter: Whether to add up to 10% random jitter to each delay
            sleep: Function used to wait between attempts
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self._sleep = sleep

    def should_retry(
        self,
        error: Exception,
        attempt: int,
        retry_if: Optional[RetryPredicate] = None
    ) -> bool:
        """Determine if an error should trigger another attempt.

        Args:
            error: The exception that occurred
            attempt: Number of attempts made so far (1-indexed)
            retry_if: Optional extra condition a transient error must satisfy

        Returns:
            True if the error is transient and the attempt budget remains
        """
        if attempt >= self.max_attempts:
            return False

        if not isinstance(error, TransientError):
            return False

        if retry_if is not None and not retry_if(error):
            return False

        return True

    def get_delay(self, attempt: int) -> float:
        """Calculate delay before the next attempt.

        Args:
            attempt: Number of attempts made so far (1-indexed)

        Returns:
            Delay in seconds
        """
        delay = min(
            self.base_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay
        )

        if self.jitter:
            delay += random.uniform(0, delay * 0.1)

        return delay

    def execute_with_retry(
        self,
        func: Callable[..., T],
        *args,
        retry_if: Optional[RetryPredicate] = None,
        **kwargs
    ) -> T:
        """Execute a function, retrying transient failures.

        Args:
            func: Function to execute
            *args: Positional arguments for the function
            retry_if: Optional extra condition a transient error must satisfy
            **kwargs: Keyword arguments for the function

        Returns:
            Result of the function call

        Raises:
            ReconcileError: The last error once it is not retryable or the
                attempt budget is exhausted
        """
        attempt = 0

        while True:
            attempt += 1
            try:
                result = func(*args, **kwargs)
            except ReconcileError as e:
                if not self.should_retry(e, attempt, retry_if):
                    if e.is_retryable and attempt >= self.max_attempts:
                        logger.error(f"All {self.max_attempts} attempts exhausted: {e.message}")
                    raise

                delay = self.get_delay(attempt)
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed: {e.message}. "
                    f"Retrying in {delay:.2f}s..."
                )
                self._sleep(delay)
                continue

            if attempt > 1:
                logger.info(f"Operation succeeded after {attempt - 1} retries")

            return result
