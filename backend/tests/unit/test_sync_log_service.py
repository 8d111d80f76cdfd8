"""Tests for the per-account sync audit trail."""

from datetime import timedelta

from models import AccountSyncLog, SyncLogStatus, SyncType
from models.utils import utcnow
from services.sync_log_service import SyncLogService
from tests.fixtures import create_account


class TestLifecycle:
    def test_begin_creates_syncing_log(self, db, connected_account):
        log = SyncLogService.begin(db, connected_account, SyncType.BALANCE)
        db.commit()

        assert log.status == SyncLogStatus.SYNCING.value
        assert log.sync_type == SyncType.BALANCE.value
        assert log.records_imported == 0
        assert log.finished_at is None
        assert not log.is_terminal

    def test_finish_success(self, db, connected_account):
        log = SyncLogService.begin(db, connected_account, SyncType.TRANSACTIONS)
        SyncLogService.finish_success(db, log, 12)

        assert log.status == SyncLogStatus.SUCCESS.value
        assert log.records_imported == 12
        assert log.finished_at is not None
        assert log.error_message is None

    def test_finish_success_with_note(self, db, connected_account):
        log = SyncLogService.begin(db, connected_account, SyncType.TRANSACTIONS)
        SyncLogService.finish_success(db, log, 4, "Stopped at page 2 of 3 (page limit reached)")

        assert log.status == SyncLogStatus.SUCCESS.value
        assert log.error_message == "Stopped at page 2 of 3 (page limit reached)"
        view = SyncLogService.to_status_view(connected_account.id, log)
        assert view.success is True
        assert view.error_message == log.error_message

    def test_finish_failure(self, db, connected_account):
        log = SyncLogService.begin(db, connected_account, SyncType.BALANCE)
        SyncLogService.finish_failure(db, log, "HTTP 400")

        assert log.status == SyncLogStatus.FAILED.value
        assert log.error_message == "HTTP 400"

    def test_finalized_exactly_once(self, db, connected_account):
        log = SyncLogService.begin(db, connected_account, SyncType.BALANCE)
        SyncLogService.finish_success(db, log, 1)
        SyncLogService.finish_failure(db, log, "late error")

        assert log.status == SyncLogStatus.SUCCESS.value
        assert log.error_message is None

        failed = SyncLogService.begin(db, connected_account, SyncType.BALANCE)
        SyncLogService.finish_failure(db, failed, "boom")
        SyncLogService.finish_success(db, failed, 5)
        assert failed.status == SyncLogStatus.FAILED.value
        assert failed.records_imported == 0


class TestStatusView:
    def test_success_view(self, db, connected_account):
        log = SyncLogService.begin(db, connected_account, SyncType.TRANSACTIONS)
        SyncLogService.finish_success(db, log, 3)

        view = SyncLogService.to_status_view(connected_account.id, log)

        assert view.success is True
        assert view.records_imported == 3
        assert view.sync_type == "TRANSACTIONS"

    def test_no_log(self, connected_account):
        view = SyncLogService.to_status_view(connected_account.id, None)
        assert view.success is False
        assert view.sync_status is None

    def test_overrides(self, db, connected_account):
        log = SyncLogService.begin(db, connected_account, SyncType.BALANCE)
        SyncLogService.finish_failure(db, log, "stored")
        view = SyncLogService.to_status_view(connected_account.id, log, 0, "override")
        assert view.error_message == "override"


class TestQueries:
    def _log(self, db, account, sync_type, status, age: timedelta):
        log = AccountSyncLog(
            account_id=account.id,
            sync_type=sync_type.value,
            status=status.value,
            synced_at=utcnow() - age,
        )
        db.add(log)
        db.commit()
        return log

    def test_latest_log_filters(self, db, connected_account):
        old = self._log(db, connected_account, SyncType.TRANSACTIONS, SyncLogStatus.SUCCESS, timedelta(days=2))
        self._log(db, connected_account, SyncType.TRANSACTIONS, SyncLogStatus.FAILED, timedelta(days=1))
        newest = self._log(db, connected_account, SyncType.BALANCE, SyncLogStatus.SUCCESS, timedelta(hours=1))

        assert SyncLogService.latest_log(db, connected_account.id).id == newest.id
        assert (
            SyncLogService.latest_log(
                db, connected_account.id, SyncType.TRANSACTIONS, SyncLogStatus.SUCCESS
            ).id
            == old.id
        )
        assert SyncLogService.latest_log(db, "other") is None

    def test_last_complete_sync_skips_partial_runs(self, db, connected_account):
        complete = self._log(db, connected_account, SyncType.TRANSACTIONS, SyncLogStatus.SUCCESS, timedelta(days=2))
        partial = self._log(db, connected_account, SyncType.TRANSACTIONS, SyncLogStatus.SUCCESS, timedelta(days=1))
        partial.error_message = "Stopped at page 1 of 2 (page limit reached)"
        self._log(db, connected_account, SyncType.TRANSACTIONS, SyncLogStatus.FAILED, timedelta(hours=2))
        self._log(db, connected_account, SyncType.BALANCE, SyncLogStatus.SUCCESS, timedelta(hours=1))
        db.commit()

        found = SyncLogService.last_complete_sync(db, connected_account.id, SyncType.TRANSACTIONS)

        assert found.id == complete.id
        assert SyncLogService.last_complete_sync(db, "other", SyncType.TRANSACTIONS) is None

    def test_list_logs_newest_first_with_limit(self, db, connected_account):
        for hours in (3, 2, 1):
            self._log(db, connected_account, SyncType.BALANCE, SyncLogStatus.SUCCESS, timedelta(hours=hours))

        logs = SyncLogService.list_logs(db, connected_account.id, limit=2)

        assert len(logs) == 2
        assert logs[0].synced_at > logs[1].synced_at

    def test_find_stale_accounts(self, db, consent, connected_account, second_account):
        third = create_account(db, consent, "acc-003")
        disabled = create_account(db, consent, "acc-004", is_enabled=False)
        self._log(db, connected_account, SyncType.BALANCE, SyncLogStatus.SUCCESS, timedelta(hours=1))
        self._log(db, second_account, SyncType.BALANCE, SyncLogStatus.SUCCESS, timedelta(hours=30))
        self._log(db, third, SyncType.BALANCE, SyncLogStatus.FAILED, timedelta(hours=1))

        stale = {a.id for a in SyncLogService.find_stale_accounts(db, hours=24)}

        assert stale == {second_account.id, third.id}
        assert disabled.id not in stale
