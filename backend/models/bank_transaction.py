"""BankTransaction model - transactions imported from connected accounts."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, JSON, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionSource(str, Enum):
    BANK_TRANSACTION = "BANK_TRANSACTION"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    OTHER = "OTHER"


class BankTransaction(Base):
    """A booked transaction imported from an institution.

    Unique on (account_id, external_id) so re-importing the same
    transaction updates the existing row instead of duplicating it.
    """

    __tablename__ = "bank_transactions"
    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uix_account_external_transaction"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(String(36), ForeignKey("connected_accounts.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    external_id = Column(String, nullable=False)  # Bank transactionId, or a synthetic "_OF:" hash
    amount = Column(Numeric(18, 2), nullable=False)  # Absolute value
    credit_debit_indicator = Column(String, nullable=False)  # "CREDIT" | "DEBIT"
    transaction_type = Column(String, nullable=False)  # TransactionType
    source = Column(String, nullable=False)  # TransactionSource
    description = Column(String, nullable=False)
    currency = Column(String(3), nullable=False, default="BRL")
    booked_at = Column(DateTime, nullable=True)  # None when the bank's date was unparsable
    raw_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    account = relationship("ConnectedAccount", back_populates="transactions")
