"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.dependencies import (
    get_account_service,
    get_consent_service,
    get_payment_service,
    get_sync_service,
)
from config import settings
from database import Base, get_db
from main import app
from services.account_service import AccountService
from services.consent_service import ConsentService
from services.payment_service import PaymentService
from services.sync_service import OpenFinanceSyncService
from services.token_cipher import TokenCipher, get_token_cipher
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    TEST_ENCRYPTION_KEY,
    connected_account,
    consent,
    institution,
    second_account,
    token_cipher,
)
from tests.fixtures.mocks import (
    MockAccountInformationClient,
    MockOAuthClient,
    MockPaymentInitiationClient,
)


@pytest.fixture(autouse=True)
def _test_encryption_key(monkeypatch):
    """Pin the token encryption key so services never touch the keychain."""
    monkeypatch.setattr(settings, "TOKEN_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    get_token_cipher.cache_clear()
    yield
    get_token_cipher.cache_clear()


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="mock_account_client")
def mock_account_client_fixture():
    return MockAccountInformationClient()


@pytest.fixture(name="mock_oauth_client")
def mock_oauth_client_fixture():
    return MockOAuthClient()


@pytest.fixture(name="mock_payment_client")
def mock_payment_client_fixture():
    return MockPaymentInitiationClient()


@pytest.fixture(name="consent_service")
def consent_service_fixture(mock_oauth_client, token_cipher: TokenCipher):
    return ConsentService(oauth_client=mock_oauth_client, cipher=token_cipher)


@pytest.fixture(name="sync_service")
def sync_service_fixture(mock_account_client, consent_service):
    return OpenFinanceSyncService(
        account_client=mock_account_client, consent_service=consent_service
    )


@pytest.fixture(name="client")
def client_fixture(
    db, mock_account_client, mock_payment_client, consent_service, sync_service
):
    """Create a test client with the test database and mock API clients."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_consent_service] = lambda: consent_service
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    app.dependency_overrides[get_account_service] = lambda: AccountService(
        account_client=mock_account_client, consent_service=consent_service
    )
    app.dependency_overrides[get_payment_service] = lambda: PaymentService(
        payment_client=mock_payment_client, consent_service=consent_service
    )
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
