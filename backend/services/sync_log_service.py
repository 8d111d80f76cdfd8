"""Sync log service - writes and reads the per-account sync audit trail."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from models import AccountSyncLog, ConnectedAccount, SyncLogStatus, SyncType
from models.utils import utcnow
from schemas.sync import SyncStatusView

logger = logging.getLogger(__name__)


class SyncLogService:
    """Create, finalize and query :class:`AccountSyncLog` rows.

    A log is created in SYNCING and finalized exactly once.  Finalizing a
    log that is already SUCCESS or FAILED is a no-op, so callers can finalize
    from both the happy path and an error handler without double-writing.
    Methods flush but never commit; the caller owns the transaction.
    """

    @staticmethod
    def begin(db: Session, account: ConnectedAccount, sync_type: SyncType) -> AccountSyncLog:
        log = AccountSyncLog(
            account_id=account.id,
            sync_type=sync_type.value,
            status=SyncLogStatus.SYNCING.value,
            records_imported=0,
            synced_at=utcnow(),
        )
        db.add(log)
        db.flush()
        return log

    @staticmethod
    def finish_success(
        db: Session, log: AccountSyncLog, records_imported: int, note: str | None = None
    ) -> AccountSyncLog:
        """Mark ``log`` SUCCESS.

        ``note`` flags a run that succeeded without covering its whole window
        (for example a page limit); it is kept in ``error_message`` and such a
        log is never used as a window start by :meth:`last_complete_sync`.
        """
        if log.is_terminal:
            logger.debug("Sync log %s already %s, ignoring success", log.id, log.status)
            return log
        log.status = SyncLogStatus.SUCCESS.value
        log.records_imported = records_imported
        log.error_message = note
        log.finished_at = utcnow()
        db.flush()
        return log

    @staticmethod
    def finish_failure(db: Session, log: AccountSyncLog, error_message: str) -> AccountSyncLog:
        if log.is_terminal:
            logger.debug("Sync log %s already %s, ignoring failure", log.id, log.status)
            return log
        log.status = SyncLogStatus.FAILED.value
        log.error_message = error_message
        log.finished_at = utcnow()
        db.flush()
        return log

    @staticmethod
    def to_status_view(
        account_id: str,
        log: AccountSyncLog | None,
        records_imported: int | None = None,
        error_message: str | None = None,
    ) -> SyncStatusView:
        """Project a log row into the read model returned to callers.

        ``records_imported`` and ``error_message`` override the log's values
        when given.
        """
        if log is None:
            return SyncStatusView(
                account_id=account_id,
                sync_status=None,
                sync_type=None,
                records_imported=records_imported or 0,
                error_message=error_message,
                last_synced_at=None,
                success=False,
            )
        return SyncStatusView(
            account_id=account_id,
            sync_status=log.status,
            sync_type=log.sync_type,
            records_imported=(
                records_imported if records_imported is not None else log.records_imported
            ),
            error_message=error_message if error_message is not None else log.error_message,
            last_synced_at=log.synced_at,
            success=log.status == SyncLogStatus.SUCCESS.value,
        )

    @staticmethod
    def latest_log(
        db: Session,
        account_id: str,
        sync_type: SyncType | None = None,
        status: SyncLogStatus | None = None,
    ) -> AccountSyncLog | None:
        query = db.query(AccountSyncLog).filter(AccountSyncLog.account_id == account_id)
        if sync_type is not None:
            query = query.filter(AccountSyncLog.sync_type == sync_type.value)
        if status is not None:
            query = query.filter(AccountSyncLog.status == status.value)
        return query.order_by(AccountSyncLog.synced_at.desc()).first()

    @staticmethod
    def last_complete_sync(
        db: Session, account_id: str, sync_type: SyncType
    ) -> AccountSyncLog | None:
        """Latest SUCCESS log of ``sync_type`` that covered its whole window."""
        return (
            db.query(AccountSyncLog)
            .filter(
                AccountSyncLog.account_id == account_id,
                AccountSyncLog.sync_type == sync_type.value,
                AccountSyncLog.status == SyncLogStatus.SUCCESS.value,
                AccountSyncLog.error_message.is_(None),
            )
            .order_by(AccountSyncLog.synced_at.desc())
            .first()
        )

    @staticmethod
    def list_logs(db: Session, account_id: str, limit: int = 50) -> list[AccountSyncLog]:
        return (
            db.query(AccountSyncLog)
            .filter(AccountSyncLog.account_id == account_id)
            .order_by(AccountSyncLog.synced_at.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def find_stale_accounts(
        db: Session, hours: int, now: datetime | None = None
    ) -> list[ConnectedAccount]:
        """Enabled accounts without a successful sync in the last ``hours`` hours."""
        # SQLite stores naive UTC
        cutoff = ((now or utcnow()) - timedelta(hours=hours)).replace(tzinfo=None)
        recent_success = (
            select(AccountSyncLog.account_id)
            .where(
                and_(
                    AccountSyncLog.status == SyncLogStatus.SUCCESS.value,
                    AccountSyncLog.synced_at >= cutoff,
                )
            )
            .distinct()
        )
        return (
            db.query(ConnectedAccount)
            .filter(
                ConnectedAccount.is_enabled.is_(True),
                ConnectedAccount.id.not_in(recent_success),
            )
            .order_by(ConnectedAccount.created_at)
            .all()
        )
