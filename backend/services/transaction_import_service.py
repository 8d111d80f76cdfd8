"""Transaction import service - idempotent upsert of bank transactions."""

import hashlib
import logging
from collections import Counter

from sqlalchemy.orm import Session

from integrations.open_finance_protocol import BankTransactionData, CreditDebitIndicator
from models import BankTransaction, ConnectedAccount, TransactionSource, TransactionType

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Open Finance Transaction"

_SOURCE_BY_ACCOUNT_TYPE = {
    "CHECKING": TransactionSource.BANK_TRANSACTION,
    "SAVINGS": TransactionSource.BANK_TRANSACTION,
    "CONTA_DEPOSITO_A_VISTA": TransactionSource.BANK_TRANSACTION,
    "CONTA_POUPANCA": TransactionSource.BANK_TRANSACTION,
    "CREDIT_CARD": TransactionSource.CREDIT_CARD,
    "DEBIT_CARD": TransactionSource.DEBIT_CARD,
}


def source_for_account_type(account_type: str | None) -> TransactionSource:
    """Map an institution account type to the transaction store's source."""
    return _SOURCE_BY_ACCOUNT_TYPE.get((account_type or "").upper(), TransactionSource.OTHER)


def _content_key(txn: BankTransactionData) -> tuple[str, ...]:
    return (
        txn.booking_date.isoformat() if txn.booking_date else "",
        str(txn.amount),
        txn.credit_debit_indicator.value,
        txn.description or "",
    )


def synthetic_external_id(account_id: str, txn: BankTransactionData, occurrence: int = 0) -> str:
    """Stable identifier for transactions the bank sends without an id.

    Identical id-less transactions in one fetch are real repeats (two equal
    purchases on the same day), so each gets its own ordinal.

    Args:
        account_id: The ConnectedAccount the transaction belongs to.
        txn: The parsed transaction.
        occurrence: Zero-based position of this transaction among the
            identical id-less transactions of the same fetch.

    Returns:
        An id in format _OF:{16-char-hash}
    """
    parts = [account_id, *_content_key(txn), str(occurrence)]
    hash_hex = hashlib.sha256("|".join(parts).encode()).hexdigest()
    return f"_OF:{hash_hex[:16]}"


class TransactionImportService:
    """Writes fetched transactions into the transaction store."""

    @staticmethod
    def upsert_transactions(
        db: Session,
        account: ConnectedAccount,
        transactions: list[BankTransactionData],
        occurrences: Counter | None = None,
    ) -> int:
        """Insert new transactions and refresh existing ones.

        Keyed on (account, external id): running the same import twice
        leaves exactly one row per transaction.

        Args:
            db: Database session.
            account: The account the transactions belong to.
            transactions: Parsed transactions from the institution.
            occurrences: Running count of id-less transactions seen so far in
                this fetch, keyed by content. Pass the same counter for every
                page of one fetch so repeats that straddle pages stay distinct.

        Returns:
            Count of newly inserted transactions.
        """
        if not transactions:
            return 0

        existing = {
            row.external_id: row
            for row in db.query(BankTransaction).filter(BankTransaction.account_id == account.id)
        }
        source = source_for_account_type(account.account_type).value

        if occurrences is None:
            occurrences = Counter()

        new_count = 0
        updated_count = 0
        for txn in transactions:
            external_id = txn.transaction_id
            if not external_id:
                key = _content_key(txn)
                external_id = synthetic_external_id(account.id, txn, occurrences[key])
                occurrences[key] += 1
            is_credit = txn.credit_debit_indicator == CreditDebitIndicator.CREDIT
            values = {
                "amount": abs(txn.amount),
                "credit_debit_indicator": txn.credit_debit_indicator.value,
                "transaction_type": (
                    TransactionType.INCOME.value if is_credit else TransactionType.EXPENSE.value
                ),
                "description": txn.description or DEFAULT_DESCRIPTION,
                "currency": txn.currency,
                "booked_at": txn.booking_date,
                "raw_data": txn.raw_data,
            }

            row = existing.get(external_id)
            if row is not None:
                for key, value in values.items():
                    setattr(row, key, value)
                updated_count += 1
                continue

            row = BankTransaction(
                account_id=account.id,
                user_id=account.user_id,
                external_id=external_id,
                source=source,
                **values,
            )
            db.add(row)
            existing[external_id] = row
            new_count += 1

        db.flush()
        logger.info(
            "Account %s: transactions upserted (%d new, %d existing)",
            account.id, new_count, updated_count,
        )
        return new_count
