"""SQLAlchemy ORM models."""

from .account_sync_log import AccountSyncLog, SyncLogStatus, SyncType
from .bank_transaction import BankTransaction, TransactionSource, TransactionType
from .connected_account import AccountSyncStatus, ConnectedAccount
from .consent import Consent, ConsentStatus
from .institution import Institution
from .utils import generate_uuid

__all__ = [
    "AccountSyncLog",
    "AccountSyncStatus",
    "BankTransaction",
    "ConnectedAccount",
    "Consent",
    "ConsentStatus",
    "Institution",
    "SyncLogStatus",
    "SyncType",
    "TransactionSource",
    "TransactionType",
    "generate_uuid",
]
