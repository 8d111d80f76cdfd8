"""Consent service - owns the OAuth consent lifecycle and its tokens.

State machine::

    PENDING --callback--> ACTIVE --refresh--> REFRESHING --ok--> ACTIVE
                                                  |
                                                  +--auth error--> EXPIRED
    any non-terminal --user revokes--> REVOKED

This service is the only writer of consent tokens.  Gateways receive the
decrypted access token per call and never cache it.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import OpenFinanceAuthError, OpenFinanceError
from integrations.oauth_client import OAuthClient
from models import ConnectedAccount, Consent, ConsentStatus, Institution
from models.utils import utcnow
from schemas.sync import TokenRefreshSummary
from services.token_cipher import TokenCipher, get_token_cipher

logger = logging.getLogger(__name__)


class ConsentNotActiveError(ValueError):
    """The consent cannot be used to call the bank right now."""


class ConsentStateError(ValueError):
    """The requested transition is not allowed from the consent's current state."""


@dataclass
class ConsentInitiation:
    consent: Consent
    authorization_url: str


class ConsentService:
    """Service for creating, refreshing and revoking consents."""

    def __init__(
        self,
        oauth_client: Optional[OAuthClient] = None,
        cipher: Optional[TokenCipher] = None,
    ):
        self._oauth_client = oauth_client
        self._owns_oauth_client = oauth_client is None
        self._cipher = cipher

    @property
    def oauth_client(self) -> OAuthClient:
        if self._oauth_client is None:
            self._oauth_client = OAuthClient()
        return self._oauth_client

    def close(self) -> None:
        """Close the OAuth client if this service created it."""
        if self._owns_oauth_client and self._oauth_client is not None:
            self._oauth_client.close()
            self._oauth_client = None

    @property
    def cipher(self) -> TokenCipher:
        if self._cipher is None:
            self._cipher = get_token_cipher()
        return self._cipher

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def get_consent(db: Session, consent_id: str) -> Consent | None:
        return db.query(Consent).filter(Consent.id == consent_id).first()

    @staticmethod
    def list_user_consents(db: Session, user_id: str) -> list[Consent]:
        return (
            db.query(Consent)
            .filter(Consent.user_id == user_id)
            .order_by(Consent.created_at.desc())
            .all()
        )

    @staticmethod
    def find_active_consent(db: Session, user_id: str, institution_id: str) -> Consent | None:
        candidates = (
            db.query(Consent)
            .filter(
                Consent.user_id == user_id,
                Consent.institution_id == institution_id,
                Consent.status.in_(
                    [ConsentStatus.ACTIVE.value, ConsentStatus.REFRESHING.value]
                ),
            )
            .all()
        )
        for consent in candidates:
            if consent.is_active:
                return consent
        return None

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def initiate_consent(
        self,
        db: Session,
        user_id: str,
        institution_id: str,
        scopes: list[str] | None = None,
    ) -> ConsentInitiation:
        """Create a PENDING consent and the bank authorization URL for it.

        Raises:
            ValueError: Unknown/inactive institution, or the user already
                holds an active consent for it.
        """
        institution = db.query(Institution).filter(Institution.id == institution_id).first()
        if institution is None or not institution.is_active:
            raise ValueError(f"Institution {institution_id} not found or inactive")

        if self.find_active_consent(db, user_id, institution_id) is not None:
            raise ConsentStateError(
                f"User {user_id} already has an active consent for {institution.name}"
            )

        scopes = list(scopes or settings.open_finance_default_scopes)
        state = secrets.token_urlsafe(32)
        consent = Consent(
            user_id=user_id,
            institution_id=institution.id,
            status=ConsentStatus.PENDING.value,
            scopes=scopes,
            oauth_state=state,
        )
        db.add(consent)
        db.flush()

        url = self.oauth_client.generate_authorization_url(
            institution.authorization_url, state, scopes
        )
        logger.info(
            "Consent %s initiated for user %s at %s (scopes: %s)",
            consent.id, user_id, institution.name, " ".join(scopes),
        )
        return ConsentInitiation(consent=consent, authorization_url=url)

    def handle_callback(self, db: Session, consent_id: str, code: str, state: str) -> Consent:
        """Exchange the authorization code and activate the consent."""
        consent = self.get_consent(db, consent_id)
        if consent is None:
            raise ValueError(f"Consent {consent_id} not found")
        if consent.status != ConsentStatus.PENDING.value:
            raise ConsentStateError(
                f"Consent {consent_id} is {consent.status}, expected PENDING"
            )
        if not consent.oauth_state or not secrets.compare_digest(consent.oauth_state, state):
            raise ConsentStateError("OAuth state does not match the pending consent")

        token = self.oauth_client.exchange_authorization_code(consent.institution.token_url, code)

        consent.access_token = self.cipher.encrypt(token.access_token)
        consent.refresh_token = self.cipher.encrypt(token.refresh_token)
        consent.expires_at = token.expires_at
        if token.scope:
            consent.scopes = token.scope.split()
        consent.status = ConsentStatus.ACTIVE.value
        consent.oauth_state = None
        consent.refresh_requested = False
        db.flush()
        logger.info("Consent %s authorized, token expires at %s", consent.id, token.expires_at)
        return consent

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def get_access_token(self, consent: Consent) -> str:
        """Return the decrypted access token of a usable consent.

        Raises:
            ConsentNotActiveError: The consent is pending, expired or revoked.
        """
        if not consent.is_active or not consent.access_token:
            raise ConsentNotActiveError(
                f"Consent {consent.id} is not active ({consent.effective_status.value})"
            )
        return self.cipher.decrypt(consent.access_token)

    @staticmethod
    def request_refresh(db: Session, consent: Consent) -> None:
        """Flag a consent for refresh on the next token refresh run."""
        if not consent.refresh_requested:
            consent.refresh_requested = True
            db.flush()
            logger.info("Consent %s flagged for token refresh", consent.id)

    def refresh_consent(self, db: Session, consent: Consent) -> Consent:
        """Refresh a consent's tokens, committing each state transition.

        Raises:
            ConsentStateError: The consent is revoked or not yet authorized.
            OpenFinanceAuthError: The refresh token was rejected; the consent
                is now EXPIRED.
            OpenFinanceError: Transient failure; the consent stays ACTIVE.
        """
        if consent.status not in (ConsentStatus.ACTIVE.value, ConsentStatus.REFRESHING.value):
            raise ConsentStateError(f"Consent {consent.id} is {consent.status}, cannot refresh")

        refresh_token = self.cipher.decrypt(consent.refresh_token)
        if not refresh_token:
            consent.status = ConsentStatus.EXPIRED.value
            consent.refresh_requested = False
            db.commit()
            raise OpenFinanceAuthError(
                f"Consent {consent.id} has no refresh token", operation="refresh_token"
            )

        consent.status = ConsentStatus.REFRESHING.value
        db.commit()

        try:
            token = self.oauth_client.refresh_token(consent.institution.token_url, refresh_token)
        except OpenFinanceAuthError:
            consent.status = ConsentStatus.EXPIRED.value
            consent.refresh_requested = False
            db.commit()
            logger.warning("Consent %s refresh rejected by institution, marked EXPIRED", consent.id)
            raise
        except Exception:
            consent.status = ConsentStatus.ACTIVE.value
            db.commit()
            raise

        consent.access_token = self.cipher.encrypt(token.access_token)
        if token.refresh_token:
            consent.refresh_token = self.cipher.encrypt(token.refresh_token)
        consent.expires_at = token.expires_at
        consent.status = ConsentStatus.ACTIVE.value
        consent.refresh_requested = False
        consent.last_refreshed_at = utcnow()
        db.commit()
        logger.info("Consent %s refreshed, token expires at %s", consent.id, token.expires_at)
        return consent

    def find_consents_needing_refresh(
        self, db: Session, threshold_minutes: int, now: datetime | None = None
    ) -> list[Consent]:
        """Consents whose token expires within the threshold or that were flagged.

        Already-expired ACTIVE consents are included: the refresh token
        usually outlives the access token.
        """
        # SQLite stores naive UTC
        cutoff = ((now or utcnow()) + timedelta(minutes=threshold_minutes)).replace(tzinfo=None)
        return (
            db.query(Consent)
            .filter(
                Consent.status.in_(
                    [ConsentStatus.ACTIVE.value, ConsentStatus.REFRESHING.value]
                ),
                Consent.revoked_at.is_(None),
                or_(Consent.expires_at < cutoff, Consent.refresh_requested.is_(True)),
            )
            .order_by(Consent.expires_at)
            .all()
        )

    def refresh_expiring_tokens(
        self, db: Session, threshold_minutes: int | None = None
    ) -> TokenRefreshSummary:
        """Refresh every consent approaching expiry, once each.

        A failure on one consent is logged and does not stop the others.
        """
        if threshold_minutes is None:
            threshold_minutes = settings.OPEN_FINANCE_TOKEN_REFRESH_THRESHOLD_MINUTES

        consents = self.find_consents_needing_refresh(db, threshold_minutes)
        summary = TokenRefreshSummary(consents_total=len(consents))
        if not consents:
            logger.debug("No consents need a token refresh")
            return summary

        logger.info("Refreshing tokens for %d consents", len(consents))
        for consent in consents:
            consent_id = consent.id
            try:
                self.refresh_consent(db, consent)
                summary.refreshed += 1
            except OpenFinanceAuthError as e:
                logger.warning("Token refresh failed for consent %s: %s", consent_id, e)
                summary.expired += 1
            except OpenFinanceError as e:
                logger.warning("Token refresh failed for consent %s: %s", consent_id, e)
                summary.failed += 1
            except Exception as e:
                db.rollback()
                logger.error(
                    "Unexpected error refreshing consent %s: %s", consent_id, e, exc_info=True
                )
                summary.failed += 1

        logger.info(
            "Token refresh complete: %d refreshed, %d failed, %d expired",
            summary.refreshed, summary.failed, summary.expired,
        )
        return summary

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def revoke_consent(self, db: Session, consent_id: str) -> Consent:
        """Revoke a consent at the user's request and disable its accounts.

        Revocation at the institution is best-effort; the local consent is
        revoked even if the bank cannot be reached.
        """
        consent = self.get_consent(db, consent_id)
        if consent is None:
            raise ValueError(f"Consent {consent_id} not found")
        if consent.status == ConsentStatus.REVOKED.value:
            return consent

        if consent.access_token:
            try:
                self.oauth_client.revoke_token(
                    consent.institution.token_url, self.cipher.decrypt(consent.access_token)
                )
            except Exception as e:
                logger.warning(
                    "Could not revoke consent %s at the institution: %s", consent.id, e
                )

        now = utcnow()
        consent.status = ConsentStatus.REVOKED.value
        consent.revoked_at = now
        consent.refresh_requested = False
        consent.access_token = None
        consent.refresh_token = None

        disabled = 0
        for account in db.query(ConnectedAccount).filter(
            ConnectedAccount.consent_id == consent.id,
            ConnectedAccount.is_enabled.is_(True),
        ):
            account.is_enabled = False
            account.disabled_at = now
            disabled += 1

        db.flush()
        logger.info("Consent %s revoked, %d accounts disabled", consent.id, disabled)
        return consent
