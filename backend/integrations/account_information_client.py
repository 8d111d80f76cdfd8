"""Open Finance account information client.

Reads accounts, balances and transactions for a consent holder.  Every
call takes the access token to use; tokens are owned by
:class:`services.consent_service.ConsentService`.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

import httpx

from integrations.open_finance_http import OpenFinanceHttpClient
from integrations.open_finance_protocol import (
    DEFAULT_CURRENCY,
    AccountBalance,
    BankAccount,
    BankTransactionData,
    CreditDebitIndicator,
    TransactionPage,
)
from integrations.parsing_utils import parse_decimal, parse_iso_datetime
from integrations.retrying_executor import RetryingHttpExecutor

logger = logging.getLogger(__name__)

ACCOUNTS_API = "/open-banking/accounts/v1"


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _as_positive_int(value, default: int = 1) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        return default
    return result if result >= 1 else default


def _format_query_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class AccountInformationClient(OpenFinanceHttpClient):
    """Client for the Open Finance accounts API."""

    def __init__(
        self,
        http_client: httpx.Client | None = None,
        executor: RetryingHttpExecutor | None = None,
        default_page_size: int = 100,
    ):
        super().__init__(http_client, executor)
        self.default_page_size = default_page_size

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def list_accounts(self, access_token: str) -> list[BankAccount]:
        """List the accounts covered by the token's consent.

        Empty or malformed payloads yield an empty list.
        """
        payload = self._request_json(
            "GET", f"{ACCOUNTS_API}/accounts", "list_accounts", access_token
        )
        entries = _as_dict(payload).get("data")
        if not isinstance(entries, list):
            if payload is not None:
                logger.warning("list_accounts: payload has no 'data' list, returning no accounts")
            return []

        accounts = []
        for entry in entries:
            account = self._parse_account(entry)
            if account is not None:
                accounts.append(account)
        logger.info("Open Finance: %d accounts listed", len(accounts))
        return accounts

    def get_account_details(self, access_token: str, account_id: str) -> BankAccount:
        """Fetch a single account's details."""
        payload = self._request_json(
            "GET", f"{ACCOUNTS_API}/accounts/{account_id}", "get_account_details", access_token
        )
        account = self._parse_account(_as_dict(payload).get("data"))
        if account is None:
            return BankAccount(account_id=account_id)
        return account

    @staticmethod
    def _parse_account(entry) -> BankAccount | None:
        if not isinstance(entry, dict) or not entry.get("accountId"):
            logger.warning("Skipping malformed account entry: %r", entry)
            return None
        return BankAccount(
            account_id=str(entry["accountId"]),
            account_type=entry.get("accountType") or entry.get("type"),
            account_number=entry.get("number"),
            branch=entry.get("branch") or entry.get("branchCode"),
            holder_name=entry.get("name"),
            currency=entry.get("currency") or DEFAULT_CURRENCY,
        )

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def get_balance(self, access_token: str, account_id: str) -> AccountBalance:
        """Fetch the current balance of an account.

        A missing amount is reported as zero and a missing currency as BRL.
        """
        payload = self._request_json(
            "GET", f"{ACCOUNTS_API}/balances/{account_id}", "get_balance", access_token
        )
        balance = _as_dict(_as_dict(_as_dict(payload).get("data")).get("balance"))

        raw_amount = balance.get("amount")
        amount = parse_decimal(raw_amount)
        if amount is None:
            if raw_amount is not None:
                logger.warning(
                    "Unparsable balance amount %r for account %s, using 0",
                    raw_amount, account_id,
                )
            amount = Decimal("0")

        return AccountBalance(
            account_id=account_id,
            amount=amount,
            currency=balance.get("currency") or DEFAULT_CURRENCY,
            retrieved_at=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def get_transactions(
        self,
        access_token: str,
        account_id: str,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> TransactionPage:
        """Fetch one page of booked transactions for an account.

        Args:
            access_token: Bearer token of the consent covering the account.
            account_id: Institution's account identifier.
            from_date: Lower bound on booking date (inclusive), optional.
            to_date: Upper bound on booking date (inclusive), optional.
            page: 1-based page number.
            page_size: Records per page; defaults to the client's page size.

        Returns:
            The page of transactions and the pagination metadata.
        """
        params: dict[str, str | int] = {
            "page": page,
            "page-size": page_size or self.default_page_size,
        }
        if from_date is not None:
            params["fromBookingDateTime"] = _format_query_datetime(from_date)
        if to_date is not None:
            params["toBookingDateTime"] = _format_query_datetime(to_date)

        payload = _as_dict(
            self._request_json(
                "GET",
                f"{ACCOUNTS_API}/transactions/{account_id}",
                "get_transactions",
                access_token,
                params=params,
            )
        )
        entries = _as_dict(payload.get("data")).get("transaction")
        if not isinstance(entries, list):
            entries = []

        transactions = []
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed transaction entry for account %s", account_id)
                continue
            transactions.append(self._parse_transaction(entry, account_id))

        meta = _as_dict(payload.get("meta"))
        return TransactionPage(
            transactions=transactions,
            total_pages=_as_positive_int(meta.get("totalPages")),
            current_page=_as_positive_int(meta.get("page"), default=page),
        )

    @staticmethod
    def _parse_transaction(entry: dict, account_id: str) -> BankTransactionData:
        transaction_id = entry.get("transactionId")

        amount = parse_decimal(entry.get("amount"))
        if amount is None:
            logger.warning(
                "Missing or unparsable amount on transaction %s (account %s), using 0",
                transaction_id, account_id,
            )
            amount = Decimal("0")

        raw_date = entry.get("bookingDateTime")
        booking_date = parse_iso_datetime(raw_date)
        if booking_date is None and raw_date:
            logger.warning(
                "Unparsable bookingDateTime %r on transaction %s (account %s)",
                raw_date, transaction_id, account_id,
            )

        indicator = str(entry.get("creditDebitIndicator") or "").upper()
        if indicator != CreditDebitIndicator.CREDIT.value:
            indicator = CreditDebitIndicator.DEBIT.value

        currency = entry.get("currency")
        if not currency and isinstance(entry.get("amount"), dict):
            currency = entry["amount"].get("currency")

        return BankTransactionData(
            transaction_id=str(transaction_id) if transaction_id else None,
            amount=amount,
            description=entry.get("transactionInformation") or entry.get("transactionName") or "",
            booking_date=booking_date,
            credit_debit_indicator=CreditDebitIndicator(indicator),
            currency=currency or DEFAULT_CURRENCY,
            raw_data=entry,
        )
