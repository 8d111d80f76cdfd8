"""Shared HTTP plumbing for the Open Finance API clients.

Builds the ``httpx.Client`` (base URL, timeout, optional mutual TLS) and
maps transport failures and HTTP status codes onto the typed exceptions
in :mod:`integrations.exceptions`.
"""

import logging
from typing import Any

import httpx

from config import settings
from integrations.exceptions import (
    OpenFinanceAPIError,
    OpenFinanceAuthError,
    OpenFinanceConnectionError,
)
from integrations.retrying_executor import RetryingHttpExecutor

logger = logging.getLogger(__name__)


def build_http_client(base_url: str | None = None, timeout: float | None = None) -> httpx.Client:
    """Create an ``httpx.Client`` configured for the Open Finance API.

    A client certificate is attached when both cert and key paths are set;
    a custom CA bundle replaces the default trust store when configured.
    """
    kwargs: dict[str, Any] = {
        "base_url": base_url or settings.open_finance_base_url,
        "timeout": timeout or settings.OPEN_FINANCE_HTTP_TIMEOUT_SECONDS,
        "headers": {"Accept": "application/json"},
    }
    if settings.OPEN_FINANCE_CLIENT_CERT_PATH and settings.OPEN_FINANCE_CLIENT_KEY_PATH:
        kwargs["cert"] = (
            settings.OPEN_FINANCE_CLIENT_CERT_PATH,
            settings.OPEN_FINANCE_CLIENT_KEY_PATH,
        )
    if settings.OPEN_FINANCE_CA_CERT_PATH:
        kwargs["verify"] = settings.OPEN_FINANCE_CA_CERT_PATH
    return httpx.Client(**kwargs)


def raise_for_status(response: httpx.Response, operation: str) -> None:
    """Translate a non-2xx response into a typed exception."""
    status = response.status_code
    if status < 400:
        return
    if status in (401, 403):
        raise OpenFinanceAuthError(
            f"{operation}: authorization rejected (HTTP {status})",
            operation=operation,
            status_code=status,
        )
    raise OpenFinanceAPIError(
        f"{operation}: API error (HTTP {status})",
        operation=operation,
        status_code=status,
    )


def decode_json(response: httpx.Response, operation: str) -> Any:
    """Return the decoded JSON body, or ``None`` for empty/undecodable bodies."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        logger.warning("%s: response body is not valid JSON, ignoring", operation)
        return None


class OpenFinanceHttpClient:
    """Base class for clients that call the Open Finance API with a bearer token.

    Holds no token state: every call receives the access token to use.
    """

    def __init__(
        self,
        http_client: httpx.Client | None = None,
        executor: RetryingHttpExecutor | None = None,
    ):
        self._http = http_client
        self._executor = executor or RetryingHttpExecutor.from_settings()

    @property
    def http(self) -> httpx.Client:
        """The underlying ``httpx.Client``, created on first use."""
        if self._http is None:
            self._http = build_http_client()
        return self._http

    def close(self) -> None:
        if self._http is not None:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _send(
        self,
        method: str,
        path: str,
        operation: str,
        access_token: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Perform a single HTTP exchange and map failures."""
        headers = dict(kwargs.pop("headers", None) or {})
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            response = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise OpenFinanceConnectionError(
                f"{operation}: request timed out: {exc}", operation=operation
            ) from exc
        except httpx.TransportError as exc:
            raise OpenFinanceConnectionError(
                f"{operation}: connection failed: {exc}", operation=operation
            ) from exc
        raise_for_status(response, operation)
        return response

    def _request_json(
        self,
        method: str,
        path: str,
        operation: str,
        access_token: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Send a request through the retry executor and decode the JSON body."""
        response = self._executor.execute(
            lambda: self._send(method, path, operation, access_token, **kwargs),
            operation,
        )
        return decode_json(response, operation)
