"""Connected account API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.dependencies import get_account_service, get_sync_service
from api.helpers import get_or_404, to_http_error
from database import get_db
from models import ConnectedAccount, Consent
from schemas import (
    AccountSyncLogResponse,
    ConnectedAccountResponse,
    SyncStatusView,
    TransactionSyncRequest,
)
from services.account_service import AccountService
from services.sync_log_service import SyncLogService
from services.sync_service import OpenFinanceSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/open-finance/accounts", tags=["open-finance-accounts"])


def _get_enabled_account(db: Session, account_id: str) -> ConnectedAccount:
    account = get_or_404(db, ConnectedAccount, account_id, "Account not found")
    if not account.is_enabled:
        raise HTTPException(status_code=409, detail="Account is disabled")
    return account


@router.get("", response_model=list[ConnectedAccountResponse])
def list_accounts(
    user_id: str = Query(...),
    include_disabled: bool = False,
    db: Session = Depends(get_db),
):
    """List a user's connected accounts."""
    return AccountService.list_user_accounts(db, user_id, include_disabled=include_disabled)


@router.post("/discover/{consent_id}", response_model=list[ConnectedAccountResponse])
def discover_accounts(
    consent_id: str,
    db: Session = Depends(get_db),
    account_service: AccountService = Depends(get_account_service),
):
    """Fetch the consent's accounts from the institution and store them."""
    consent = get_or_404(db, Consent, consent_id, "Consent not found")
    try:
        accounts = account_service.discover_accounts(db, consent)
    except Exception as e:
        db.rollback()
        raise to_http_error(e, "account discovery")
    db.commit()
    for account in accounts:
        db.refresh(account)
    return accounts


@router.get("/{account_id}", response_model=ConnectedAccountResponse)
def get_account(account_id: str, db: Session = Depends(get_db)):
    """Get a single connected account."""
    return get_or_404(db, ConnectedAccount, account_id, "Account not found")


@router.delete("/{account_id}", response_model=ConnectedAccountResponse)
def disconnect_account(account_id: str, db: Session = Depends(get_db)):
    """Soft-disable an account. Its sync history and transactions are kept."""
    account = get_or_404(db, ConnectedAccount, account_id, "Account not found")
    AccountService.disconnect_account(db, account)
    db.commit()
    db.refresh(account)
    return account


@router.post("/{account_id}/sync-balance", response_model=SyncStatusView)
def sync_balance(
    account_id: str,
    db: Session = Depends(get_db),
    sync_service: OpenFinanceSyncService = Depends(get_sync_service),
):
    """Sync one account's balance now. Failures are reported in the body."""
    account = _get_enabled_account(db, account_id)
    return sync_service.sync_account_balance(db, account)


@router.post("/{account_id}/sync-transactions", response_model=SyncStatusView)
def sync_transactions(
    account_id: str,
    window: TransactionSyncRequest | None = None,
    db: Session = Depends(get_db),
    sync_service: OpenFinanceSyncService = Depends(get_sync_service),
):
    """Sync one account's transactions now, optionally for an explicit window."""
    account = _get_enabled_account(db, account_id)
    window = window or TransactionSyncRequest()
    return sync_service.sync_account_transactions(
        db, account, from_date=window.from_date, to_date=window.to_date
    )


@router.get("/{account_id}/sync-status", response_model=SyncStatusView)
def get_sync_status(account_id: str, db: Session = Depends(get_db)):
    """Status of the most recent sync attempt of any type."""
    get_or_404(db, ConnectedAccount, account_id, "Account not found")
    return SyncLogService.to_status_view(account_id, SyncLogService.latest_log(db, account_id))


@router.get("/{account_id}/sync-logs", response_model=list[AccountSyncLogResponse])
def list_sync_logs(
    account_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Sync attempts for an account, newest first."""
    get_or_404(db, ConnectedAccount, account_id, "Account not found")
    return SyncLogService.list_logs(db, account_id, limit=limit)
