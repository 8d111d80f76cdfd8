"""Normalized data types exchanged with the Open Finance API.

The API clients map raw JSON payloads into these dataclasses; services
only ever see these types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum

DEFAULT_CURRENCY = "BRL"


class CreditDebitIndicator(str, Enum):
    """Direction of a bank transaction."""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class PaymentStatus(str, Enum):
    """Payment lifecycle status reported by the institution."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value, default: "PaymentStatus") -> "PaymentStatus":
        """Map a raw status string onto a member, UNKNOWN if unrecognized."""
        if value is None or value == "":
            return default
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass
class BankAccount:
    """An account exposed by the institution under a consent."""

    account_id: str  # Institution's account identifier
    account_type: str | None = None  # e.g. "CHECKING", "SAVINGS", "CREDIT_CARD"
    account_number: str | None = None
    branch: str | None = None
    holder_name: str | None = None
    currency: str = DEFAULT_CURRENCY


@dataclass
class AccountBalance:
    """Current balance of one account."""

    account_id: str
    amount: Decimal
    currency: str = DEFAULT_CURRENCY
    retrieved_at: datetime | None = None


@dataclass
class BankTransactionData:
    """One booked transaction as reported by the institution."""

    transaction_id: str | None  # May be absent in sandbox payloads
    amount: Decimal  # Signed as reported; direction comes from the indicator
    description: str = ""
    booking_date: datetime | None = None  # None when the bank's date is unparsable
    credit_debit_indicator: CreditDebitIndicator = CreditDebitIndicator.DEBIT
    currency: str = DEFAULT_CURRENCY
    raw_data: dict | None = None


@dataclass
class TransactionPage:
    """A single page of transactions plus pagination metadata."""

    transactions: list[BankTransactionData] = field(default_factory=list)
    total_pages: int = 1
    current_page: int = 1

    @property
    def has_more(self) -> bool:
        return self.current_page < self.total_pages


def to_decimal_amount(value) -> Decimal:
    """Convert a payment amount to ``Decimal`` without passing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError("Payment amounts must be Decimal, int or str, not float")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid payment amount: {value!r}") from exc


@dataclass
class PaymentRequest:
    """A payment to initiate on behalf of the consent holder."""

    end_to_end_id: str
    amount: Decimal
    debtor_account: str
    creditor_account: str
    currency: str = DEFAULT_CURRENCY
    payment_type: str | None = None  # e.g. "PIX", "TED", "DOC"

    def __post_init__(self):
        self.amount = to_decimal_amount(self.amount)
        if self.amount <= 0:
            raise ValueError("Payment amount must be positive")

    def to_payload(self) -> dict:
        """Build the request body; the amount keeps its exact decimal text."""
        payment = {
            "endToEndId": self.end_to_end_id,
            "amount": format(self.amount, "f"),
            "currency": self.currency,
            "debtor": {"account": self.debtor_account},
            "creditor": {"account": self.creditor_account},
        }
        if self.payment_type:
            payment["paymentType"] = self.payment_type
        return {"data": {"payment": payment}}


@dataclass
class PaymentResponse:
    """Result of a payment initiation."""

    payment_id: str | None
    status: PaymentStatus
    end_to_end_id: str | None = None
    raw_status: str | None = None
    created_at: datetime | None = None


@dataclass
class PaymentStatusResult:
    """Current status of a previously initiated payment."""

    payment_id: str
    status: PaymentStatus
    raw_status: str | None = None
    updated_at: datetime | None = None


@dataclass
class TokenResponse:
    """Tokens issued by an institution's OAuth token endpoint."""

    access_token: str
    refresh_token: str | None
    expires_at: datetime
    token_type: str = "Bearer"
    scope: str | None = None
