"""Shared API helpers for route handlers."""

import logging
from typing import TypeVar

from fastapi import HTTPException
from sqlalchemy.orm import Session

from database import Base
from integrations.exceptions import OpenFinanceAuthError, OpenFinanceError
from services.consent_service import ConsentNotActiveError, ConsentStateError
from services.sync_service import SyncAlreadyRunningError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Base)


def get_or_404(db: Session, model: type[T], entity_id: str, detail: str = "Not found") -> T:
    """Fetch a single entity by primary key or raise 404.

    Args:
        db: Database session.
        model: SQLAlchemy model class.
        entity_id: Primary key value.
        detail: Error message for the 404 response.

    Returns:
        The entity instance.

    Raises:
        HTTPException: 404 if the entity doesn't exist.
    """
    entity = db.query(model).filter(model.id == entity_id).first()
    if not entity:
        raise HTTPException(status_code=404, detail=detail)
    return entity


def to_http_error(exc: Exception, action: str) -> HTTPException:
    """Map a service or Open Finance exception to an HTTP error.

    - 409: state conflicts (inactive consent, duty already running)
    - 404 / 400: other ``ValueError``s
    - 502: the institution rejected or failed the call
    - 500: anything else; the message is not exposed
    """
    if isinstance(exc, (ConsentNotActiveError, ConsentStateError, SyncAlreadyRunningError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ValueError):
        status = 404 if "not found" in str(exc).lower() else 400
        return HTTPException(status_code=status, detail=str(exc))
    if isinstance(exc, OpenFinanceAuthError):
        logger.warning("Institution rejected authorization during %s: %s", action, exc)
        return HTTPException(
            status_code=502,
            detail=f"The institution rejected the authorization during {action}. "
            "The consent may need to be refreshed or re-authorized.",
        )
    if isinstance(exc, OpenFinanceError):
        logger.warning("Open Finance error during %s: %s", action, exc)
        return HTTPException(
            status_code=502,
            detail=f"The institution returned an error during {action}. Check the logs for details.",
        )
    logger.error("Unexpected error during %s", action, exc_info=exc)
    return HTTPException(status_code=500, detail=f"An unexpected error occurred during {action}.")
