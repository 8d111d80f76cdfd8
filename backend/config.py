"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential

SANDBOX_BASE_URL = "https://api.sandbox.openfinancebrasil.org.br"
PRODUCTION_BASE_URL = "https://api.openfinancebrasil.org.br"


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./open_finance.db"

    # Open Finance API (disabled unless explicitly turned on)
    OPEN_FINANCE_ENABLED: bool = False
    OPEN_FINANCE_USE_PRODUCTION: bool = False
    OPEN_FINANCE_BASE_URL: str = ""  # Overrides the sandbox/production default
    OPEN_FINANCE_HTTP_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)

    # OAuth client registration
    OPEN_FINANCE_CLIENT_ID: str = ""
    OPEN_FINANCE_CLIENT_SECRET: str = ""
    OPEN_FINANCE_REDIRECT_URI: str = "http://localhost:8000/api/open-finance/consents/callback"
    OPEN_FINANCE_DEFAULT_SCOPES: str = "accounts transactions payments"  # Space or comma separated

    # Mutual TLS (optional; required by most production institutions)
    OPEN_FINANCE_CLIENT_CERT_PATH: str = ""
    OPEN_FINANCE_CLIENT_KEY_PATH: str = ""
    OPEN_FINANCE_CA_CERT_PATH: str = ""

    # Scheduled sync
    OPEN_FINANCE_SYNC_ENABLED: bool = True
    OPEN_FINANCE_BALANCE_SYNC_INTERVAL_MS: int = Field(default=900_000, gt=0)
    OPEN_FINANCE_BALANCE_SYNC_INITIAL_DELAY_MS: int = Field(default=60_000, ge=0)
    OPEN_FINANCE_TRANSACTION_SYNC_CRON: str = "0 2 * * *"
    OPEN_FINANCE_TOKEN_REFRESH_INTERVAL_MS: int = Field(default=3_600_000, gt=0)
    OPEN_FINANCE_TOKEN_REFRESH_THRESHOLD_MINUTES: int = Field(default=10, ge=0)
    OPEN_FINANCE_TRANSACTION_LOOKBACK_DAYS: int = Field(default=30, gt=0)
    OPEN_FINANCE_PAGE_SIZE: int = Field(default=100, gt=0)
    OPEN_FINANCE_MAX_TRANSACTION_PAGES: int = Field(default=100, gt=0)
    OPEN_FINANCE_STALE_SYNC_HOURS: int = Field(default=24, gt=0)

    # Outbound retry policy (linear back-off: attempt * base delay)
    OPEN_FINANCE_RETRY_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    OPEN_FINANCE_RETRY_BASE_DELAY_MS: int = Field(default=2_000, ge=0)

    # Fernet key for tokens at rest; generated and stored in the keychain if empty
    TOKEN_ENCRYPTION_KEY: str = ""

    @field_validator("OPEN_FINANCE_TRANSACTION_SYNC_CRON")
    @classmethod
    def validate_cron(cls, v: str) -> str:
        """Require a standard five-field crontab expression."""
        if len(v.split()) != 5:
            raise ValueError(
                f"OPEN_FINANCE_TRANSACTION_SYNC_CRON must have 5 fields, got {v!r}"
            )
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @property
    def open_finance_default_scopes(self) -> list[str]:
        """Default OAuth scopes requested when a consent names none."""
        return [s for s in self.OPEN_FINANCE_DEFAULT_SCOPES.replace(",", " ").split() if s]

    @property
    def open_finance_base_url(self) -> str:
        """Resolve the Open Finance API base URL for the selected environment."""
        if self.OPEN_FINANCE_BASE_URL:
            return self.OPEN_FINANCE_BASE_URL.rstrip("/")
        return PRODUCTION_BASE_URL if self.OPEN_FINANCE_USE_PRODUCTION else SANDBOX_BASE_URL

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
