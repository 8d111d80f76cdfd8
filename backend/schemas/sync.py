"""Pydantic schemas for sync status and sync trigger responses."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SyncStatusView(BaseModel):
    """Outcome of the latest (or just-finished) sync attempt for an account."""

    account_id: str
    sync_status: Optional[str] = None  # "SYNCING" | "SUCCESS" | "FAILED"
    sync_type: Optional[str] = None  # "BALANCE" | "TRANSACTIONS"
    records_imported: int = 0
    error_message: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    success: bool = False


class AccountSyncLogResponse(BaseModel):
    """Schema for one AccountSyncLog row."""

    id: str
    account_id: str
    sync_type: str
    status: str
    records_imported: int
    error_message: Optional[str] = None
    synced_at: datetime
    finished_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SyncRunSummary(BaseModel):
    """Counts for one run of a sync duty across all eligible accounts."""

    duty: str
    accounts_total: int = 0
    succeeded: int = 0
    failed: int = 0
    records_imported: int = 0


class TokenRefreshSummary(BaseModel):
    """Counts for one run of the token refresh duty."""

    consents_total: int = 0
    refreshed: int = 0
    failed: int = 0
    expired: int = 0


class TransactionSyncRequest(BaseModel):
    """Optional date window for a manual transaction sync."""

    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
