"""ConnectedAccount model - a bank account reachable under a consent."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class AccountSyncStatus(str, Enum):
    """Outcome of the most recent sync attempt for an account."""

    NEVER_SYNCED = "NEVER_SYNCED"
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


class ConnectedAccount(Base):
    """A bank account discovered through a consent.

    The combination of institution_id + external_account_id uniquely
    identifies an account.  Accounts are soft-disabled, never deleted,
    so their sync history and imported transactions stay attributable.
    """

    __tablename__ = "connected_accounts"
    __table_args__ = (
        UniqueConstraint(
            "institution_id", "external_account_id", name="uix_institution_external_account"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String, index=True, nullable=False)
    consent_id = Column(String(36), ForeignKey("open_finance_consents.id"), nullable=False)
    institution_id = Column(
        String(36), ForeignKey("open_finance_institutions.id"), nullable=False
    )
    external_account_id = Column(String, nullable=False)  # Institution's accountId
    account_type = Column(String, nullable=True)  # e.g. "CHECKING", "SAVINGS", "CREDIT_CARD"
    account_number = Column(String, nullable=True)  # Masked, last 4 digits only
    branch = Column(String, nullable=True)
    holder_name = Column(String, nullable=True)
    currency = Column(String(3), nullable=False, default="BRL")
    balance = Column(Numeric(18, 2), nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    sync_status = Column(String, nullable=False, default=AccountSyncStatus.NEVER_SYNCED.value)
    last_sync_error = Column(Text, nullable=True)
    is_enabled = Column(Boolean, default=True, nullable=False)
    disabled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    consent = relationship("Consent", back_populates="accounts")
    institution = relationship("Institution", back_populates="accounts")
    sync_logs = relationship(
        "AccountSyncLog", back_populates="account", order_by="AccountSyncLog.synced_at"
    )
    transactions = relationship("BankTransaction", back_populates="account")

    @property
    def is_syncable(self) -> bool:
        """Enabled and backed by a usable consent."""
        return bool(self.is_enabled) and self.consent is not None and self.consent.is_active
