"""Pydantic schemas for institutions, consents, accounts and payments."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InstitutionResponse(BaseModel):
    """Schema for Institution API response."""

    id: str
    code: str
    name: str
    is_active: bool
    certificate_required: bool

    model_config = ConfigDict(from_attributes=True)


class ConsentCreate(BaseModel):
    """Schema for starting a consent authorization."""

    user_id: str
    institution_id: str
    scopes: Optional[list[str]] = None


class ConsentCallback(BaseModel):
    """Authorization code and state returned by the institution's redirect."""

    code: str
    state: str


class ConsentResponse(BaseModel):
    """Schema for Consent API response. Never includes tokens."""

    id: str
    user_id: str
    institution_id: str
    status: str
    effective_status: str
    scopes: list[str]
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    last_refreshed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("effective_status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)


class ConsentInitiationResponse(BaseModel):
    """A pending consent plus the URL the user must visit to authorize it."""

    consent: ConsentResponse
    authorization_url: str


class ConnectedAccountResponse(BaseModel):
    """Schema for ConnectedAccount API response."""

    id: str
    user_id: str
    consent_id: str
    institution_id: str
    external_account_id: str
    account_type: Optional[str] = None
    account_number: Optional[str] = None
    branch: Optional[str] = None
    holder_name: Optional[str] = None
    currency: str
    balance: Optional[Decimal] = None
    last_synced_at: Optional[datetime] = None
    sync_status: str
    last_sync_error: Optional[str] = None
    is_enabled: bool
    disabled_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentCreate(BaseModel):
    """Schema for initiating a payment under a consent."""

    consent_id: str
    end_to_end_id: str
    amount: Decimal = Field(gt=0)
    debtor_account: str
    creditor_account: str
    currency: str = "BRL"
    payment_type: Optional[str] = None


class PaymentInitiationResponse(BaseModel):
    payment_id: Optional[str] = None
    status: str
    raw_status: Optional[str] = None
    end_to_end_id: Optional[str] = None
    created_at: Optional[datetime] = None


class PaymentStatusResponse(BaseModel):
    payment_id: str
    status: str
    raw_status: Optional[str] = None
    updated_at: Optional[datetime] = None
