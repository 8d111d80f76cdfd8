"""Payment service - initiates and tracks payments under a consent."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from integrations.open_finance_protocol import PaymentRequest, PaymentResponse, PaymentStatusResult
from integrations.payment_initiation_client import PaymentInitiationClient
from models import Consent
from services.consent_service import ConsentService, ConsentStateError

logger = logging.getLogger(__name__)

PAYMENTS_SCOPE = "payments"


class PaymentService:
    """Looks up the consent's token and delegates to the payments API.

    Payments are not persisted; the institution is the system of record.
    """

    def __init__(
        self,
        payment_client: Optional[PaymentInitiationClient] = None,
        consent_service: Optional[ConsentService] = None,
    ):
        self._payment_client = payment_client
        self.consent_service = consent_service or ConsentService()

    @property
    def payment_client(self) -> PaymentInitiationClient:
        if self._payment_client is None:
            self._payment_client = PaymentInitiationClient()
        return self._payment_client

    def _token_for(self, db: Session, consent_id: str) -> str:
        consent = db.query(Consent).filter(Consent.id == consent_id).first()
        if consent is None:
            raise ValueError(f"Consent {consent_id} not found")
        if PAYMENTS_SCOPE not in consent.scope_set:
            raise ConsentStateError(f"Consent {consent_id} does not grant the payments scope")
        return self.consent_service.get_access_token(consent)

    def initiate_payment(
        self, db: Session, consent_id: str, request: PaymentRequest
    ) -> PaymentResponse:
        token = self._token_for(db, consent_id)
        logger.info(
            "Initiating payment %s under consent %s", request.end_to_end_id, consent_id
        )
        return self.payment_client.initiate_payment(token, request)

    def get_payment_status(
        self, db: Session, consent_id: str, payment_id: str
    ) -> PaymentStatusResult:
        token = self._token_for(db, consent_id)
        return self.payment_client.get_payment_status(token, payment_id)

    def cancel_payment(self, db: Session, consent_id: str, payment_id: str) -> None:
        token = self._token_for(db, consent_id)
        self.payment_client.cancel_payment(token, payment_id)
