"""Bounded retry with increasing backoff for provider calls."""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from app.core.config import settings
from app.core.exceptions import ProviderError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Re-run a side-effect-free async operation on transient provider failures.

    The operation is attempted at most ``max_attempts`` times. Between
    attempts the policy sleeps ``base_delay * backoff ** (attempt - 1)``
    seconds. When every attempt fails, the last exception is re-raised
    unchanged.

    Only ``ProviderError`` instances (network failure, timeout, non-success
    response, malformed output) are retried, and only while their
    ``retryable`` flag is set. Persistence must never be wrapped in a policy.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        backoff: float = 2.0,
        retry_on: Tuple[Type[BaseException], ...] = (ProviderError,),
    ):
        """Initialize the policy.

        Args:
            max_attempts: Total number of attempts, including the first
            base_delay: Delay in seconds before the second attempt
            backoff: Multiplier applied to the delay after each failure
            retry_on: Exception types considered transient
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if backoff < 1:
            raise ValueError("backoff must not shrink the delay")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.backoff = backoff
        self.retry_on = retry_on

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        """Build the policy from the configured retry constants."""
        return cls(
            max_attempts=settings.retry.max_attempts,
            base_delay=settings.retry.base_delay,
            backoff=settings.retry.backoff,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return self.base_delay * (self.backoff ** (attempt - 1))

    def _should_retry(self, error: BaseException) -> bool:
        if not isinstance(error, self.retry_on):
            return False
        return getattr(error, "retryable", True)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: Optional[str] = None,
    ) -> T:
        """Execute ``operation`` under the policy.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            description: Label used in log messages

        Returns:
            The operation's result from the first successful attempt

        Raises:
            Exception: The last failure, unchanged, once attempts are exhausted
                or as soon as a non-retryable error occurs
        """
        label = description or getattr(operation, "__name__", "operation")
        attempt = 1

        while True:
            try:
                return await operation()
            except Exception as e:
                if not self._should_retry(e):
                    raise

                if attempt >= self.max_attempts:
                    LOGGER.error(
                        f"{label} failed after {attempt} attempts: {e}",
                        extra={"attempts": attempt, "error_type": type(e).__name__},
                    )
                    raise

                wait_time = self.delay_for(attempt)
                LOGGER.warning(
                    f"{label} failed (Attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {wait_time:.2f}s: {e}",
                    extra={"attempt": attempt, "error_type": type(e).__name__},
                )
                await asyncio.sleep(wait_time)
                attempt += 1
