"""Payment initiation API endpoints."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.dependencies import get_payment_service
from api.helpers import to_http_error
from database import get_db
from integrations.open_finance_protocol import PaymentRequest
from schemas import PaymentCreate, PaymentInitiationResponse, PaymentStatusResponse
from services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/open-finance/payments", tags=["open-finance-payments"])


@router.post("", response_model=PaymentInitiationResponse, status_code=201)
def initiate_payment(
    body: PaymentCreate,
    db: Session = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
):
    """Initiate a payment. A business rejection comes back as status REJECTED."""
    request = PaymentRequest(
        end_to_end_id=body.end_to_end_id,
        amount=body.amount,
        debtor_account=body.debtor_account,
        creditor_account=body.creditor_account,
        currency=body.currency,
        payment_type=body.payment_type,
    )
    try:
        result = payment_service.initiate_payment(db, body.consent_id, request)
    except Exception as e:
        raise to_http_error(e, "payment initiation")
    return PaymentInitiationResponse(
        payment_id=result.payment_id,
        status=result.status.value,
        raw_status=result.raw_status,
        end_to_end_id=result.end_to_end_id,
        created_at=result.created_at,
    )


@router.get("/{payment_id}", response_model=PaymentStatusResponse)
def get_payment_status(
    payment_id: str,
    consent_id: str = Query(...),
    db: Session = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        result = payment_service.get_payment_status(db, consent_id, payment_id)
    except Exception as e:
        raise to_http_error(e, "payment status lookup")
    return PaymentStatusResponse(
        payment_id=result.payment_id,
        status=result.status.value,
        raw_status=result.raw_status,
        updated_at=result.updated_at,
    )


@router.delete("/{payment_id}", status_code=204)
def cancel_payment(
    payment_id: str,
    consent_id: str = Query(...),
    db: Session = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
):
    try:
        payment_service.cancel_payment(db, consent_id, payment_id)
    except Exception as e:
        raise to_http_error(e, "payment cancellation")
