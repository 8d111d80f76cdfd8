"""Pydantic schemas for API request/response validation."""

from .open_finance import (
    ConnectedAccountResponse,
    ConsentCallback,
    ConsentCreate,
    ConsentInitiationResponse,
    ConsentResponse,
    InstitutionResponse,
    PaymentCreate,
    PaymentInitiationResponse,
    PaymentStatusResponse,
)
from .sync import (
    AccountSyncLogResponse,
    SyncRunSummary,
    SyncStatusView,
    TokenRefreshSummary,
    TransactionSyncRequest,
)

__all__ = [
    "AccountSyncLogResponse",
    "ConnectedAccountResponse",
    "ConsentCallback",
    "ConsentCreate",
    "ConsentInitiationResponse",
    "ConsentResponse",
    "InstitutionResponse",
    "PaymentCreate",
    "PaymentInitiationResponse",
    "PaymentStatusResponse",
    "SyncRunSummary",
    "SyncStatusView",
    "TokenRefreshSummary",
    "TransactionSyncRequest",
]
