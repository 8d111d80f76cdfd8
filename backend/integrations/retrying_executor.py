"""Bounded retry wrapper for outbound Open Finance calls."""

import logging
import time
from typing import Callable, TypeVar

from config import settings
from integrations.exceptions import OpenFinanceAPIError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryingHttpExecutor:
    """Run an HTTP operation, retrying only on 5xx responses.

    The delay before retry ``n`` is ``n * base_delay`` seconds (linear).
    Client errors, auth errors, malformed payloads and network failures
    propagate on the first occurrence.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, sleep: Callable[[float], None] = time.sleep) -> "RetryingHttpExecutor":
        """Build an executor from the configured retry policy."""
        return cls(
            max_attempts=settings.OPEN_FINANCE_RETRY_MAX_ATTEMPTS,
            base_delay=settings.OPEN_FINANCE_RETRY_BASE_DELAY_MS / 1000,
            sleep=sleep,
        )

    def execute(self, operation: Callable[[], T], description: str = "request") -> T:
        """Call ``operation()`` under the retry policy.

        Args:
            operation: Zero-argument callable performing one HTTP exchange.
            description: Human-readable name used in logs and errors.

        Returns:
            Whatever ``operation`` returns on its first successful attempt.

        Raises:
            RetryExhaustedError: Every attempt failed with a 5xx response.
            OpenFinanceError: Any non-retriable failure, unchanged.
        """
        last_error: OpenFinanceAPIError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation()
            except OpenFinanceAPIError as exc:
                if not exc.is_server_error:
                    raise
                last_error = exc
                if attempt == self.max_attempts:
                    break
                delay = attempt * self.base_delay
                logger.warning(
                    "%s: server error (HTTP %s), retrying in %.1fs (attempt %d/%d)",
                    description, exc.status_code, delay, attempt, self.max_attempts,
                )
                self._sleep(delay)

        logger.error(
            "%s: giving up after %d attempts (last HTTP %s)",
            description, self.max_attempts, last_error.status_code,
        )
        raise RetryExhaustedError(
            f"{description} failed after {self.max_attempts} attempts: {last_error}",
            operation=description,
            attempts=self.max_attempts,
            last_error=last_error,
        ) from last_error
