"""Typed exception hierarchy for Open Finance API errors.

Provides structured exceptions for differentiated error handling
(auth errors vs transient server errors vs network errors vs data issues).
"""


class OpenFinanceError(Exception):
    """Base exception for all Open Finance API errors.

    Carries the operation name so callers can tell which call failed.
    """

    def __init__(self, message: str, operation: str = ""):
        self.operation = operation
        super().__init__(message)


class OpenFinanceAuthError(OpenFinanceError):
    """Token missing, expired, revoked or rejected (HTTP 401/403).

    Never retried; the consent has to be refreshed or re-authorized.
    """

    def __init__(self, message: str, operation: str = "", status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, operation)


class OpenFinanceConnectionError(OpenFinanceError):
    """Network failures: timeouts, DNS resolution, connection refused.

    Surfaced immediately; only 5xx responses are retried.
    """

    pass


class OpenFinanceAPIError(OpenFinanceError):
    """HTTP 4xx/5xx responses from the Open Finance API."""

    def __init__(
        self,
        message: str,
        operation: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, operation)

    @property
    def is_server_error(self) -> bool:
        """5xx responses are the only retriable class."""
        if self.status_code is None:
            return False
        return self.status_code >= 500


class OpenFinanceDataError(OpenFinanceError):
    """Malformed or unusable response from the Open Finance API."""

    pass


class RetryExhaustedError(OpenFinanceError):
    """All retry attempts for a server error were used up.

    ``last_error`` holds the final :class:`OpenFinanceAPIError`.
    """

    def __init__(
        self,
        message: str,
        operation: str = "",
        attempts: int = 0,
        last_error: OpenFinanceAPIError | None = None,
    ):
        self.attempts = attempts
        self.last_error = last_error
        self.status_code = last_error.status_code if last_error is not None else None
        super().__init__(message, operation)
