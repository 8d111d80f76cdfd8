"""Consent model - a user's OAuth authorization for one institution."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import as_utc, generate_uuid, utcnow


class ConsentStatus(str, Enum):
    """Stored consent status.

    PENDING only exists between authorization URL and callback.
    REFRESHING is held while the token endpoint is being called.
    """

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    REFRESHING = "REFRESHING"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class Consent(Base):
    """An OAuth consent granting access to a user's accounts at one institution.

    Tokens are stored encrypted (see :mod:`services.token_cipher`) and are
    only read or replaced by :class:`services.consent_service.ConsentService`.
    """

    __tablename__ = "open_finance_consents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String, index=True, nullable=False)
    institution_id = Column(
        String(36), ForeignKey("open_finance_institutions.id"), nullable=False
    )
    status = Column(String, nullable=False, default=ConsentStatus.PENDING.value)
    scopes = Column(JSON, nullable=False, default=list)  # list[str] of granted scopes
    access_token = Column(Text, nullable=True)  # Encrypted
    refresh_token = Column(Text, nullable=True)  # Encrypted
    expires_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    oauth_state = Column(String, nullable=True)  # CSRF state awaiting callback
    refresh_requested = Column(Boolean, default=False, nullable=False)
    last_refreshed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    institution = relationship("Institution", back_populates="consents")
    accounts = relationship("ConnectedAccount", back_populates="consent")

    @property
    def scope_set(self) -> frozenset[str]:
        return frozenset(self.scopes or [])

    def is_expired(self, now=None) -> bool:
        """True once the access token's expiry has passed."""
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) <= (now or utcnow())

    @property
    def effective_status(self) -> ConsentStatus:
        """Status as seen by callers: an ACTIVE consent past its expiry reads as EXPIRED."""
        status = ConsentStatus(self.status)
        if status in (ConsentStatus.ACTIVE, ConsentStatus.REFRESHING) and self.is_expired():
            return ConsentStatus.EXPIRED
        return status

    @property
    def is_active(self) -> bool:
        """True when the consent's access token can be used right now."""
        return (
            self.revoked_at is None
            and self.effective_status in (ConsentStatus.ACTIVE, ConsentStatus.REFRESHING)
        )
