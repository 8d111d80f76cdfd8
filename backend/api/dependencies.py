"""FastAPI dependencies that build the Open Finance services.

Every getter answers 503 while ``OPEN_FINANCE_ENABLED`` is off, so the
HTTP clients are never created for a disabled integration.  Tests replace
these getters through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import HTTPException

from config import settings
from integrations.account_information_client import AccountInformationClient
from integrations.oauth_client import OAuthClient
from integrations.payment_initiation_client import PaymentInitiationClient
from services.account_service import AccountService
from services.consent_service import ConsentService
from services.payment_service import PaymentService
from services.sync_service import OpenFinanceSyncService


def require_open_finance_enabled() -> None:
    if not settings.OPEN_FINANCE_ENABLED:
        raise HTTPException(
            status_code=503,
            detail="Open Finance integration is disabled. Set OPEN_FINANCE_ENABLED=true.",
        )


@lru_cache
def _account_client() -> AccountInformationClient:
    return AccountInformationClient(default_page_size=settings.OPEN_FINANCE_PAGE_SIZE)


@lru_cache
def _payment_client() -> PaymentInitiationClient:
    return PaymentInitiationClient()


@lru_cache
def _oauth_client() -> OAuthClient:
    return OAuthClient()


def get_consent_service() -> ConsentService:
    require_open_finance_enabled()
    return ConsentService(oauth_client=_oauth_client())


def get_account_service() -> AccountService:
    require_open_finance_enabled()
    return AccountService(account_client=_account_client(), consent_service=get_consent_service())


def get_sync_service() -> OpenFinanceSyncService:
    require_open_finance_enabled()
    return OpenFinanceSyncService(
        account_client=_account_client(), consent_service=get_consent_service()
    )


def get_payment_service() -> PaymentService:
    require_open_finance_enabled()
    return PaymentService(payment_client=_payment_client(), consent_service=get_consent_service())


def close_clients() -> None:
    """Close any HTTP clients created by the getters above."""
    for factory in (_account_client, _payment_client, _oauth_client):
        if factory.cache_info().currsize:
            factory().close()
        factory.cache_clear()
