"""Sync service - pulls balances and transactions for connected accounts."""

import logging
import threading
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.account_information_client import AccountInformationClient
from integrations.exceptions import OpenFinanceAuthError, OpenFinanceError
from models import AccountSyncStatus, ConnectedAccount, Consent, ConsentStatus, SyncType
from models.utils import as_utc, utcnow
from schemas.sync import SyncRunSummary, SyncStatusView, TokenRefreshSummary
from services.consent_service import ConsentNotActiveError, ConsentService
from services.sync_log_service import SyncLogService
from services.transaction_import_service import TransactionImportService

logger = logging.getLogger(__name__)

DUTY_BALANCES = "balances"
DUTY_TRANSACTIONS = "transactions"
DUTY_TOKENS = "tokens"


class SyncAlreadyRunningError(ValueError):
    """Another run of the same duty has not finished yet."""


class OpenFinanceSyncService:
    """Runs the three sync duties: balances, transactions and token refresh.

    Each duty walks every eligible account sequentially, records a sync log
    per account and commits per account, so one account's failure never
    undoes or blocks another's result.
    """

    # Class-level locks shared across all instances. One run per duty at a
    # time (scheduler or admin trigger); one writer per account at a time
    # across duties. Single-process only.
    _duty_locks = {
        DUTY_BALANCES: threading.Lock(),
        DUTY_TRANSACTIONS: threading.Lock(),
        DUTY_TOKENS: threading.Lock(),
    }
    _account_locks: dict[str, threading.Lock] = {}
    _account_locks_guard = threading.Lock()

    def __init__(
        self,
        account_client: Optional[AccountInformationClient] = None,
        consent_service: Optional[ConsentService] = None,
    ):
        self._account_client = account_client
        self._owns_account_client = account_client is None
        self._owns_consent_service = consent_service is None
        self.consent_service = consent_service or ConsentService()

    @property
    def account_client(self) -> AccountInformationClient:
        if self._account_client is None:
            self._account_client = AccountInformationClient(
                default_page_size=settings.OPEN_FINANCE_PAGE_SIZE
            )
        return self._account_client

    def close(self) -> None:
        """Close the HTTP clients this service created; injected ones are left open."""
        if self._owns_account_client and self._account_client is not None:
            self._account_client.close()
            self._account_client = None
        if self._owns_consent_service:
            self.consent_service.close()

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    @classmethod
    def is_duty_running(cls, duty: str) -> bool:
        lock = cls._duty_locks[duty]
        acquired = lock.acquire(blocking=False)
        if acquired:
            lock.release()
            return False
        return True

    @classmethod
    @contextmanager
    def _exclusive_duty(cls, duty: str):
        lock = cls._duty_locks[duty]
        if not lock.acquire(blocking=False):
            logger.warning("Sync duty '%s' blocked: a previous run is still in progress", duty)
            raise SyncAlreadyRunningError(f"Sync duty '{duty}' already in progress")
        try:
            yield
        finally:
            lock.release()

    @classmethod
    def _account_lock(cls, account_id: str) -> threading.Lock:
        with cls._account_locks_guard:
            lock = cls._account_locks.get(account_id)
            if lock is None:
                lock = cls._account_locks[account_id] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    # Duties
    # ------------------------------------------------------------------

    @staticmethod
    def syncable_accounts(db: Session) -> list[ConnectedAccount]:
        """Enabled accounts whose consent is authorized and not revoked.

        The account's current sync_status is ignored: an account stuck in
        SYNCING from a crashed run is picked up again.
        """
        return (
            db.query(ConnectedAccount)
            .join(Consent, ConnectedAccount.consent_id == Consent.id)
            .filter(
                ConnectedAccount.is_enabled.is_(True),
                Consent.status.in_(
                    [ConsentStatus.ACTIVE.value, ConsentStatus.REFRESHING.value]
                ),
                Consent.revoked_at.is_(None),
            )
            .order_by(ConnectedAccount.created_at)
            .all()
        )

    def sync_all_balances(self, db: Session) -> SyncRunSummary:
        """Refresh the balance of every syncable account.

        Raises:
            SyncAlreadyRunningError: A balance sync is already running.
        """
        with self._exclusive_duty(DUTY_BALANCES):
            return self._sync_all(db, DUTY_BALANCES, self.sync_account_balance)

    def sync_all_transactions(self, db: Session) -> SyncRunSummary:
        """Import new transactions for every syncable account.

        Raises:
            SyncAlreadyRunningError: A transaction sync is already running.
        """
        with self._exclusive_duty(DUTY_TRANSACTIONS):
            return self._sync_all(db, DUTY_TRANSACTIONS, self.sync_account_transactions)

    def refresh_expiring_tokens(self, db: Session) -> TokenRefreshSummary:
        """Refresh consents close to expiry.

        Raises:
            SyncAlreadyRunningError: A token refresh is already running.
        """
        with self._exclusive_duty(DUTY_TOKENS):
            return self.consent_service.refresh_expiring_tokens(db)

    def _sync_all(
        self,
        db: Session,
        duty: str,
        sync_one: Callable[[Session, ConnectedAccount], SyncStatusView],
    ) -> SyncRunSummary:
        account_ids = [account.id for account in self.syncable_accounts(db)]
        summary = SyncRunSummary(duty=duty, accounts_total=len(account_ids))
        logger.info("Sync duty '%s' started for %d accounts", duty, len(account_ids))

        for account_id in account_ids:
            try:
                account = db.get(ConnectedAccount, account_id)
                view = sync_one(db, account)
            except Exception as e:
                db.rollback()
                logger.error(
                    "Unexpected error in '%s' sync for account %s: %s",
                    duty, account_id, e, exc_info=True,
                )
                summary.failed += 1
                continue

            if view.success:
                summary.succeeded += 1
                summary.records_imported += view.records_imported
            else:
                summary.failed += 1

        logger.info(
            "Sync duty '%s' finished: %d succeeded, %d failed",
            duty, summary.succeeded, summary.failed,
        )
        return summary

    # ------------------------------------------------------------------
    # Per-account sync
    # ------------------------------------------------------------------

    def sync_account_balance(self, db: Session, account: ConnectedAccount) -> SyncStatusView:
        """Fetch and store the current balance of one account."""

        def fetch_balance(token: str) -> tuple[int, str | None]:
            balance = self.account_client.get_balance(token, account.external_account_id)
            account.balance = balance.amount
            account.currency = balance.currency
            return 1, None

        return self._sync_account(db, account, SyncType.BALANCE, fetch_balance)

    def sync_account_transactions(
        self,
        db: Session,
        account: ConnectedAccount,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> SyncStatusView:
        """Fetch every page of transactions in the window and upsert them.

        The window starts at ``from_date``, else at the start of the last
        complete transaction sync, else ``OPEN_FINANCE_TRANSACTION_LOOKBACK_DAYS``
        ago. A run cut short by ``OPEN_FINANCE_MAX_TRANSACTION_PAGES`` keeps
        what it imported but is not complete, so the next run fetches the
        same window again.
        """

        def import_transactions(token: str) -> tuple[int, str | None]:
            start = from_date or self._default_window_start(db, account)
            end = to_date or utcnow()
            occurrences = Counter()
            imported = 0
            page = 1
            while True:
                result = self.account_client.get_transactions(
                    token,
                    account.external_account_id,
                    from_date=start,
                    to_date=end,
                    page=page,
                    page_size=settings.OPEN_FINANCE_PAGE_SIZE,
                )
                imported += TransactionImportService.upsert_transactions(
                    db, account, result.transactions, occurrences
                )
                if page >= result.total_pages:
                    return imported, None
                if page >= settings.OPEN_FINANCE_MAX_TRANSACTION_PAGES:
                    note = f"Stopped at page {page} of {result.total_pages} (page limit reached)"
                    logger.warning("Account %s: %s", account.id, note)
                    return imported, note
                page += 1

        return self._sync_account(db, account, SyncType.TRANSACTIONS, import_transactions)

    @staticmethod
    def _default_window_start(db: Session, account: ConnectedAccount) -> datetime:
        last_success = SyncLogService.last_complete_sync(db, account.id, SyncType.TRANSACTIONS)
        if last_success is not None:
            return as_utc(last_success.synced_at)
        return utcnow() - timedelta(days=settings.OPEN_FINANCE_TRANSACTION_LOOKBACK_DAYS)

    def _sync_account(
        self,
        db: Session,
        account: ConnectedAccount,
        sync_type: SyncType,
        work: Callable[[str], tuple[int, str | None]],
    ) -> SyncStatusView:
        """Run ``work(access_token)`` for one account under a sync log.

        ``work`` returns the record count and an optional note for a run that
        succeeded only partially.

        The SYNCING log and account status are committed before any network
        call. On failure the partial work is rolled back and the failure is
        recorded; nothing is raised.
        """
        with self._account_lock(account.id):
            account_id = account.id
            log = SyncLogService.begin(db, account, sync_type)
            account.sync_status = AccountSyncStatus.SYNCING.value
            db.commit()

            try:
                token = self.consent_service.get_access_token(account.consent)
                records, note = work(token)

                account.sync_status = AccountSyncStatus.SYNCED.value
                account.last_synced_at = utcnow()
                account.last_sync_error = None
                SyncLogService.finish_success(db, log, records, note)
                db.commit()
                logger.info(
                    "%s sync succeeded for account %s (%d records)",
                    sync_type.value, account_id, records,
                )
                return SyncLogService.to_status_view(account_id, log, records)

            except Exception as e:
                db.rollback()
                message = str(e) or e.__class__.__name__
                if isinstance(e, (OpenFinanceError, ConsentNotActiveError)):
                    logger.warning(
                        "%s sync failed for account %s: %s", sync_type.value, account_id, e
                    )
                else:
                    logger.error(
                        "Unexpected error in %s sync for account %s: %s",
                        sync_type.value, account_id, e, exc_info=True,
                    )

                if isinstance(e, (OpenFinanceAuthError, ConsentNotActiveError)):
                    ConsentService.request_refresh(db, account.consent)

                account.sync_status = AccountSyncStatus.FAILED.value
                account.last_sync_error = message
                SyncLogService.finish_failure(db, log, message)
                db.commit()
                return SyncLogService.to_status_view(account_id, log, 0, message)
