"""Tests for account discovery and soft-disabling."""

import pytest

from integrations.open_finance_protocol import BankAccount
from models import AccountSyncStatus, ConnectedAccount
from services.account_service import AccountService
from services.consent_service import ConsentNotActiveError
from tests.fixtures import TEST_USER_ID, create_account, create_consent


@pytest.fixture
def account_service(mock_account_client, consent_service):
    return AccountService(account_client=mock_account_client, consent_service=consent_service)


class TestDiscoverAccounts:
    def test_creates_accounts(self, db, consent, account_service, mock_account_client):
        mock_account_client.accounts = [
            BankAccount("acc-001", "CHECKING", "12345678", "0001", "Maria"),
            BankAccount("acc-002", "CREDIT_CARD", "5555444433332222"),
        ]

        accounts = account_service.discover_accounts(db, consent)
        db.commit()

        assert len(accounts) == 2
        first = db.query(ConnectedAccount).filter_by(external_account_id="acc-001").one()
        assert first.account_number == "****5678"
        assert first.branch == "0001"
        assert first.user_id == TEST_USER_ID
        assert first.sync_status == AccountSyncStatus.NEVER_SYNCED.value
        assert mock_account_client.calls_for("list_accounts") == [("list_accounts", "access-token")]

    def test_rediscovery_updates_instead_of_duplicating(self, db, consent, connected_account, account_service, mock_account_client):
        mock_account_client.accounts = [BankAccount("acc-001", "SAVINGS", "999988887777")]

        account_service.discover_accounts(db, consent)
        db.commit()

        assert db.query(ConnectedAccount).count() == 1
        db.refresh(connected_account)
        assert connected_account.account_type == "SAVINGS"
        assert connected_account.account_number == "********7777"

    def test_reenables_account_under_new_consent(self, db, institution, token_cipher, account_service, mock_account_client):
        from models import ConsentStatus

        old = create_consent(db, institution, token_cipher, status=ConsentStatus.REVOKED)
        account = create_account(db, old, "acc-001", is_enabled=False)
        new = create_consent(db, institution, token_cipher)
        mock_account_client.accounts = [BankAccount("acc-001", "CHECKING")]

        account_service.discover_accounts(db, new)
        db.commit()

        db.refresh(account)
        assert account.is_enabled is True
        assert account.disabled_at is None
        assert account.consent_id == new.id

    def test_account_of_another_user_is_not_taken(self, db, institution, token_cipher, consent, connected_account, account_service, mock_account_client):
        other = create_consent(db, institution, token_cipher, user_id="user-2")
        mock_account_client.accounts = [
            BankAccount("acc-001", "CHECKING", "12345678"),
            BankAccount("acc-new", "SAVINGS", "87654321"),
        ]

        accounts = account_service.discover_accounts(db, other)
        db.commit()

        assert [a.external_account_id for a in accounts] == ["acc-new"]
        assert accounts[0].user_id == "user-2"
        db.refresh(connected_account)
        assert connected_account.user_id == TEST_USER_ID
        assert connected_account.consent_id == consent.id
        assert connected_account.is_enabled is True

    def test_keeps_account_on_its_still_active_consent(self, db, institution, token_cipher, consent, connected_account, account_service, mock_account_client):
        second = create_consent(db, institution, token_cipher)
        mock_account_client.accounts = [BankAccount("acc-001", "SAVINGS")]

        accounts = account_service.discover_accounts(db, second)
        db.commit()

        assert accounts == [connected_account]
        db.refresh(connected_account)
        assert connected_account.consent_id == consent.id
        assert connected_account.account_type == "SAVINGS"

    def test_requires_active_consent(self, db, institution, token_cipher, account_service):
        from datetime import timedelta

        expired = create_consent(db, institution, token_cipher, expires_in=timedelta(minutes=-1))
        with pytest.raises(ConsentNotActiveError):
            account_service.discover_accounts(db, expired)


class TestListAndDisconnect:
    def test_list_excludes_disabled_by_default(self, db, consent, connected_account):
        disabled = create_account(db, consent, "acc-009", is_enabled=False)

        enabled_ids = [a.id for a in AccountService.list_user_accounts(db, TEST_USER_ID)]
        all_ids = [a.id for a in AccountService.list_user_accounts(db, TEST_USER_ID, include_disabled=True)]

        assert enabled_ids == [connected_account.id]
        assert set(all_ids) == {connected_account.id, disabled.id}

    def test_disconnect_soft_disables(self, db, connected_account):
        AccountService.disconnect_account(db, connected_account)
        db.commit()

        account = AccountService.get_account(db, connected_account.id)
        assert account is not None
        assert account.is_enabled is False
        assert account.disabled_at is not None
        assert account.is_syncable is False
