"""Institution model - a bank reachable through the Open Finance network."""

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid, utcnow


class Institution(Base):
    """A participating financial institution.

    Reference data: the sync core reads these rows but never edits them.
    Each institution runs its own OAuth authorization server.
    """

    __tablename__ = "open_finance_institutions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String, unique=True, index=True, nullable=False)  # e.g. "001" (Banco do Brasil)
    name = Column(String, nullable=False)
    authorization_url = Column(String, nullable=False)
    token_url = Column(String, nullable=False)
    certificate_required = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    consents = relationship("Consent", back_populates="institution")
    accounts = relationship("ConnectedAccount", back_populates="institution")
