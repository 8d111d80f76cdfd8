"""Sync API endpoints - administrative triggers for the sync duties."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.dependencies import get_sync_service
from api.helpers import to_http_error
from config import settings
from database import get_db
from schemas import ConnectedAccountResponse, SyncRunSummary, TokenRefreshSummary
from services.sync_log_service import SyncLogService
from services.sync_service import DUTY_BALANCES, DUTY_TRANSACTIONS, OpenFinanceSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/open-finance/sync", tags=["open-finance-sync"])

_ALREADY_RUNNING = "Sync already in progress. Please wait for the current run to complete."


@router.post("/balances", response_model=SyncRunSummary)
def trigger_balance_sync(
    db: Session = Depends(get_db),
    sync_service: OpenFinanceSyncService = Depends(get_sync_service),
):
    """Run the balance sync for every syncable account now.

    Per-account failures are reported in the summary counts, not as errors.

    Raises:
        HTTPException:
            - 409 Conflict: A balance sync is already running
            - 500 Internal Server Error: Unexpected error
    """
    if sync_service.is_duty_running(DUTY_BALANCES):
        raise HTTPException(status_code=409, detail=_ALREADY_RUNNING)
    try:
        return sync_service.sync_all_balances(db)
    except Exception as e:
        raise to_http_error(e, "balance sync")


@router.post("/transactions", response_model=SyncRunSummary)
def trigger_transaction_sync(
    db: Session = Depends(get_db),
    sync_service: OpenFinanceSyncService = Depends(get_sync_service),
):
    """Run the transaction sync for every syncable account now."""
    if sync_service.is_duty_running(DUTY_TRANSACTIONS):
        raise HTTPException(status_code=409, detail=_ALREADY_RUNNING)
    try:
        return sync_service.sync_all_transactions(db)
    except Exception as e:
        raise to_http_error(e, "transaction sync")


@router.post("/tokens", response_model=TokenRefreshSummary)
def trigger_token_refresh(
    db: Session = Depends(get_db),
    sync_service: OpenFinanceSyncService = Depends(get_sync_service),
):
    """Refresh every consent whose token is close to expiry."""
    try:
        return sync_service.refresh_expiring_tokens(db)
    except Exception as e:
        raise to_http_error(e, "token refresh")


@router.get("/stale", response_model=list[ConnectedAccountResponse])
def list_stale_accounts(
    hours: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
):
    """List enabled accounts with no successful sync in the last ``hours`` hours."""
    return SyncLogService.find_stale_accounts(db, hours or settings.OPEN_FINANCE_STALE_SYNC_HOURS)
