"""AccountSyncLog model - audit record of one sync attempt."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class SyncType(str, Enum):
    BALANCE = "BALANCE"
    TRANSACTIONS = "TRANSACTIONS"


class SyncLogStatus(str, Enum):
    SYNCING = "SYNCING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class AccountSyncLog(Base):
    """One sync attempt for one account.

    Written as SYNCING when the attempt starts and finalized exactly once
    as SUCCESS or FAILED.  A row left in SYNCING means the process died
    mid-attempt; the next run simply starts a new attempt.
    """

    __tablename__ = "account_sync_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("connected_accounts.id"), index=True, nullable=False)
    sync_type = Column(String, nullable=False)  # SyncType
    status = Column(String, nullable=False, default=SyncLogStatus.SYNCING.value)
    records_imported = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    synced_at = Column(DateTime, default=utcnow, nullable=False)  # Attempt start
    finished_at = Column(DateTime, nullable=True)

    # Relationships
    account = relationship("ConnectedAccount", back_populates="sync_logs")

    @property
    def is_terminal(self) -> bool:
        return self.status in (SyncLogStatus.SUCCESS.value, SyncLogStatus.FAILED.value)
