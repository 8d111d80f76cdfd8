"""Test fixtures and sample data."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from cryptography.fernet import Fernet
from sqlalchemy.orm import Session

from models import (
    AccountSyncStatus,
    ConnectedAccount,
    Consent,
    ConsentStatus,
    Institution,
)
from services.token_cipher import TokenCipher

TEST_ENCRYPTION_KEY = Fernet.generate_key().decode()
TEST_USER_ID = "user-1"


def create_consent(
    db: Session,
    institution: Institution,
    cipher: TokenCipher,
    user_id: str = TEST_USER_ID,
    expires_in: timedelta = timedelta(hours=1),
    status: ConsentStatus = ConsentStatus.ACTIVE,
    access_token: str = "access-token",
    refresh_token: str | None = "refresh-token",
    scopes: list[str] | None = None,
) -> Consent:
    """Create a consent with encrypted tokens.

    This is a helper function (not a fixture) for tests that need several
    consents with different expiries.
    """
    consent = Consent(
        user_id=user_id,
        institution_id=institution.id,
        status=status.value,
        scopes=scopes if scopes is not None else ["accounts", "transactions", "payments"],
        access_token=cipher.encrypt(access_token),
        refresh_token=cipher.encrypt(refresh_token),
        expires_at=datetime.now(timezone.utc) + expires_in,
    )
    db.add(consent)
    db.commit()
    db.refresh(consent)
    return consent


def create_account(
    db: Session,
    consent: Consent,
    external_account_id: str,
    account_type: str = "CHECKING",
    is_enabled: bool = True,
) -> ConnectedAccount:
    """Create a connected account under ``consent``."""
    account = ConnectedAccount(
        user_id=consent.user_id,
        consent_id=consent.id,
        institution_id=consent.institution_id,
        external_account_id=external_account_id,
        account_type=account_type,
        account_number="****1234",
        currency="BRL",
        balance=Decimal("0.00"),
        sync_status=AccountSyncStatus.NEVER_SYNCED.value,
        is_enabled=is_enabled,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def token_cipher() -> TokenCipher:
    """Cipher using the same key the services resolve during tests."""
    return TokenCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def institution(db: Session) -> Institution:
    """Create a test institution."""
    inst = Institution(
        code="999",
        name="Banco Teste",
        authorization_url="https://auth.bancoteste.example/authorize",
        token_url="https://auth.bancoteste.example/oauth/token",
        is_active=True,
    )
    db.add(inst)
    db.commit()
    db.refresh(inst)
    return inst


@pytest.fixture
def consent(db: Session, institution: Institution, token_cipher: TokenCipher) -> Consent:
    """Create an ACTIVE consent expiring in one hour."""
    return create_consent(db, institution, token_cipher)


@pytest.fixture
def connected_account(db: Session, consent: Consent) -> ConnectedAccount:
    """Create a checking account under the active consent."""
    return create_account(db, consent, "acc-001")


@pytest.fixture
def second_account(db: Session, consent: Consent) -> ConnectedAccount:
    """Create a credit card account under the active consent."""
    return create_account(db, consent, "acc-002", account_type="CREDIT_CARD")
