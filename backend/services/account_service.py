"""Account service - discovers and manages accounts connected through consents."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from integrations.account_information_client import AccountInformationClient
from integrations.open_finance_protocol import BankAccount
from integrations.parsing_utils import mask_account_number
from models import AccountSyncStatus, ConnectedAccount, Consent
from models.utils import utcnow
from services.consent_service import ConsentService

logger = logging.getLogger(__name__)


class AccountService:
    """Service for account discovery and soft-disabling."""

    def __init__(
        self,
        account_client: Optional[AccountInformationClient] = None,
        consent_service: Optional[ConsentService] = None,
    ):
        self._account_client = account_client
        self.consent_service = consent_service or ConsentService()

    @property
    def account_client(self) -> AccountInformationClient:
        if self._account_client is None:
            self._account_client = AccountInformationClient()
        return self._account_client

    @staticmethod
    def get_account(db: Session, account_id: str) -> ConnectedAccount | None:
        return db.query(ConnectedAccount).filter(ConnectedAccount.id == account_id).first()

    @staticmethod
    def list_user_accounts(
        db: Session, user_id: str, include_disabled: bool = False
    ) -> list[ConnectedAccount]:
        query = db.query(ConnectedAccount).filter(ConnectedAccount.user_id == user_id)
        if not include_disabled:
            query = query.filter(ConnectedAccount.is_enabled.is_(True))
        return query.order_by(ConnectedAccount.created_at).all()

    def discover_accounts(self, db: Session, consent: Consent) -> list[ConnectedAccount]:
        """Fetch the consent's accounts from the institution and upsert them.

        Existing accounts (same institution + external id) are updated in
        place. An account is re-attached to this consent, and re-enabled, only
        when it belongs to the same user and its current consent is no longer
        usable or the account was disabled. An account held by another user
        is left untouched and not returned.

        Returns:
            List of upserted accounts (flushed, not committed).
        """
        token = self.consent_service.get_access_token(consent)
        remote_accounts = self.account_client.list_accounts(token)
        return self._upsert_accounts(db, consent, remote_accounts)

    @staticmethod
    def _upsert_accounts(
        db: Session, consent: Consent, remote_accounts: list[BankAccount]
    ) -> list[ConnectedAccount]:
        upserted = []
        new_count = 0
        existing_count = 0
        skipped_count = 0
        for remote in remote_accounts:
            existing = (
                db.query(ConnectedAccount)
                .filter_by(
                    institution_id=consent.institution_id,
                    external_account_id=remote.account_id,
                )
                .first()
            )

            if existing and existing.user_id != consent.user_id:
                logger.warning(
                    "Consent %s: account %s already belongs to another user, skipping",
                    consent.id, existing.id,
                )
                skipped_count += 1
                continue

            if existing:
                if existing.consent_id != consent.id and (
                    not existing.is_enabled
                    or existing.consent is None
                    or not existing.consent.is_active
                ):
                    existing.consent_id = consent.id
                if not existing.is_enabled:
                    existing.is_enabled = True
                    existing.disabled_at = None
                existing.account_type = remote.account_type
                existing.account_number = mask_account_number(remote.account_number)
                existing.branch = remote.branch
                existing.holder_name = remote.holder_name
                existing.currency = remote.currency
                upserted.append(existing)
                existing_count += 1
            else:
                account = ConnectedAccount(
                    user_id=consent.user_id,
                    consent_id=consent.id,
                    institution_id=consent.institution_id,
                    external_account_id=remote.account_id,
                    account_type=remote.account_type,
                    account_number=mask_account_number(remote.account_number),
                    branch=remote.branch,
                    holder_name=remote.holder_name,
                    currency=remote.currency,
                    sync_status=AccountSyncStatus.NEVER_SYNCED.value,
                    is_enabled=True,
                )
                db.add(account)
                upserted.append(account)
                new_count += 1

        db.flush()
        logger.info(
            "Consent %s: accounts upserted (%d new, %d existing, %d skipped)",
            consent.id, new_count, existing_count, skipped_count,
        )
        return upserted

    @staticmethod
    def disconnect_account(db: Session, account: ConnectedAccount) -> ConnectedAccount:
        """Soft-disable an account; history and transactions are kept."""
        if account.is_enabled:
            account.is_enabled = False
            account.disabled_at = utcnow()
            db.flush()
            logger.info("Account %s disabled", account.id)
        return account
