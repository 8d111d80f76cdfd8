"""Consent and institution API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.dependencies import get_consent_service
from api.helpers import get_or_404, to_http_error
from database import get_db
from models import Consent, Institution
from schemas import (
    ConsentCallback,
    ConsentCreate,
    ConsentInitiationResponse,
    ConsentResponse,
    InstitutionResponse,
)
from services.consent_service import ConsentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/open-finance", tags=["open-finance-consents"])


@router.get("/institutions", response_model=list[InstitutionResponse])
def list_institutions(db: Session = Depends(get_db)):
    """List active institutions a consent can be requested from."""
    return (
        db.query(Institution)
        .filter(Institution.is_active.is_(True))
        .order_by(Institution.name)
        .all()
    )


@router.get("/consents", response_model=list[ConsentResponse])
def list_consents(user_id: str = Query(...), db: Session = Depends(get_db)):
    """List a user's consents, newest first."""
    return ConsentService.list_user_consents(db, user_id)


@router.post("/consents", response_model=ConsentInitiationResponse, status_code=201)
def initiate_consent(
    body: ConsentCreate,
    db: Session = Depends(get_db),
    consent_service: ConsentService = Depends(get_consent_service),
):
    """Create a pending consent and return the bank authorization URL.

    Raises:
        HTTPException:
            - 404 Not Found: Unknown or inactive institution
            - 409 Conflict: The user already has an active consent there
    """
    try:
        initiation = consent_service.initiate_consent(
            db, body.user_id, body.institution_id, body.scopes
        )
    except Exception as e:
        db.rollback()
        raise to_http_error(e, "consent initiation")
    db.commit()
    db.refresh(initiation.consent)
    return ConsentInitiationResponse(
        consent=ConsentResponse.model_validate(initiation.consent),
        authorization_url=initiation.authorization_url,
    )


@router.get("/consents/{consent_id}", response_model=ConsentResponse)
def get_consent(consent_id: str, db: Session = Depends(get_db)):
    return get_or_404(db, Consent, consent_id, "Consent not found")


@router.post("/consents/{consent_id}/callback", response_model=ConsentResponse)
def consent_callback(
    consent_id: str,
    body: ConsentCallback,
    db: Session = Depends(get_db),
    consent_service: ConsentService = Depends(get_consent_service),
):
    """Complete authorization with the code returned by the institution."""
    try:
        consent = consent_service.handle_callback(db, consent_id, body.code, body.state)
    except Exception as e:
        db.rollback()
        raise to_http_error(e, "consent authorization")
    db.commit()
    db.refresh(consent)
    return consent


@router.post("/consents/{consent_id}/refresh", response_model=ConsentResponse)
def refresh_consent(
    consent_id: str,
    db: Session = Depends(get_db),
    consent_service: ConsentService = Depends(get_consent_service),
):
    """Refresh a consent's access token now."""
    consent = get_or_404(db, Consent, consent_id, "Consent not found")
    try:
        consent = consent_service.refresh_consent(db, consent)
    except Exception as e:
        db.rollback()
        raise to_http_error(e, "token refresh")
    db.refresh(consent)
    return consent


@router.delete("/consents/{consent_id}", response_model=ConsentResponse)
def revoke_consent(
    consent_id: str,
    db: Session = Depends(get_db),
    consent_service: ConsentService = Depends(get_consent_service),
):
    """Revoke a consent and disable its accounts."""
    try:
        consent = consent_service.revoke_consent(db, consent_id)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    db.commit()
    db.refresh(consent)
    return consent
