"""OAuth 2.0 client for Open Finance institution token endpoints.

Builds authorization URLs and talks to an institution's token endpoint
for the ``authorization_code`` and ``refresh_token`` grants, plus token
revocation.  Institution URLs are passed per call because each bank has
its own authorization server.
"""

import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx

from config import settings
from integrations.exceptions import OpenFinanceAPIError, OpenFinanceAuthError, OpenFinanceDataError
from integrations.open_finance_http import OpenFinanceHttpClient
from integrations.open_finance_protocol import TokenResponse
from integrations.retrying_executor import RetryingHttpExecutor

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_SECONDS = 3600


def revocation_url_for(token_url: str) -> str:
    """Derive the revocation endpoint from a token endpoint URL."""
    head, sep, tail = token_url.rpartition("/token")
    if not sep:
        return token_url.rstrip("/") + "/revoke"
    return f"{head}/revoke{tail}"


class OAuthClient(OpenFinanceHttpClient):
    """Token endpoint client using the configured client registration."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        http_client: httpx.Client | None = None,
        executor: RetryingHttpExecutor | None = None,
    ):
        super().__init__(http_client, executor)
        self.client_id = client_id if client_id is not None else settings.OPEN_FINANCE_CLIENT_ID
        self.client_secret = (
            client_secret if client_secret is not None else settings.OPEN_FINANCE_CLIENT_SECRET
        )
        self.redirect_uri = redirect_uri or settings.OPEN_FINANCE_REDIRECT_URI

    def generate_authorization_url(
        self,
        authorization_url: str,
        state: str,
        scopes: list[str] | None = None,
    ) -> str:
        """Build the URL the user is redirected to for bank authorization."""
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "scope": " ".join(scopes or settings.open_finance_default_scopes),
                "state": state,
            }
        )
        separator = "&" if "?" in authorization_url else "?"
        return f"{authorization_url}{separator}{query}"

    def exchange_authorization_code(self, token_url: str, code: str) -> TokenResponse:
        """Exchange an authorization code for an access/refresh token pair."""
        token = self._token_request(
            token_url,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            "exchange_authorization_code",
        )
        logger.info("Authorization code exchanged; token expires at %s", token.expires_at)
        return token

    def refresh_token(self, token_url: str, refresh_token: str) -> TokenResponse:
        """Obtain a new access token using a refresh token.

        Raises:
            OpenFinanceAuthError: The refresh token was rejected (HTTP 400/401/403).
        """
        return self._token_request(
            token_url,
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "refresh_token",
        )

    def revoke_token(self, token_url: str, token: str, token_type_hint: str = "access_token") -> None:
        """Ask the institution to revoke a token."""
        self._request_json(
            "POST",
            revocation_url_for(token_url),
            "revoke_token",
            data={
                "token": token,
                "token_type_hint": token_type_hint,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        logger.info("Token revoked at %s", revocation_url_for(token_url))

    def _token_request(self, token_url: str, form: dict, operation: str) -> TokenResponse:
        form = {**form, "client_id": self.client_id, "client_secret": self.client_secret}
        try:
            payload = self._request_json("POST", token_url, operation, data=form)
        except OpenFinanceAPIError as exc:
            # invalid_grant / invalid_client come back as 400
            if exc.status_code == 400:
                raise OpenFinanceAuthError(
                    f"{operation}: token endpoint rejected the grant (HTTP 400)",
                    operation=operation,
                    status_code=400,
                ) from exc
            raise
        return self._parse_token_response(payload, operation)

    @staticmethod
    def _parse_token_response(payload, operation: str) -> TokenResponse:
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise OpenFinanceDataError(
                f"{operation}: token response has no access_token", operation=operation
            )
        try:
            expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN_SECONDS
        return TokenResponse(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or None,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            token_type=payload.get("token_type") or "Bearer",
            scope=payload.get("scope"),
        )
