"""Open Finance payment initiation client (PIX and other transfer types)."""

import logging
from datetime import datetime, timezone

from integrations.open_finance_http import OpenFinanceHttpClient
from integrations.open_finance_protocol import (
    PaymentRequest,
    PaymentResponse,
    PaymentStatus,
    PaymentStatusResult,
)
from integrations.parsing_utils import parse_iso_datetime

logger = logging.getLogger(__name__)

PAYMENTS_API = "/open-banking/payments/v1/pix/payments"


def _payment_body(payload) -> dict:
    data = payload.get("data") if isinstance(payload, dict) else None
    payment = data.get("payment") if isinstance(data, dict) else None
    return payment if isinstance(payment, dict) else {}


class PaymentInitiationClient(OpenFinanceHttpClient):
    """Client for the Open Finance payments API.

    A 2xx response carrying a business rejection is a normal result with
    ``status == PaymentStatus.REJECTED``; only 5xx responses are retried.
    """

    def initiate_payment(self, access_token: str, request: PaymentRequest) -> PaymentResponse:
        """Submit a payment for the consent holder.

        A response without a status is reported as PENDING.
        """
        payload = self._request_json(
            "POST", PAYMENTS_API, "initiate_payment", access_token, json=request.to_payload()
        )
        payment = _payment_body(payload)
        raw_status = payment.get("status")
        response = PaymentResponse(
            payment_id=payment.get("paymentId"),
            status=PaymentStatus.parse(raw_status, default=PaymentStatus.PENDING),
            end_to_end_id=payment.get("endToEndId") or request.end_to_end_id,
            raw_status=raw_status,
            created_at=parse_iso_datetime(payment.get("creationDateTime"))
            or datetime.now(timezone.utc),
        )
        logger.info(
            "Payment %s initiated (endToEndId=%s): %s",
            response.payment_id, response.end_to_end_id, response.status.value,
        )
        return response

    def get_payment_status(self, access_token: str, payment_id: str) -> PaymentStatusResult:
        """Look up the current status of a payment; missing status is UNKNOWN."""
        payload = self._request_json(
            "GET", f"{PAYMENTS_API}/{payment_id}", "get_payment_status", access_token
        )
        payment = _payment_body(payload)
        raw_status = payment.get("status")
        return PaymentStatusResult(
            payment_id=payment.get("paymentId") or payment_id,
            status=PaymentStatus.parse(raw_status, default=PaymentStatus.UNKNOWN),
            raw_status=raw_status,
            updated_at=parse_iso_datetime(payment.get("statusUpdateDateTime")),
        )

    def cancel_payment(self, access_token: str, payment_id: str) -> None:
        """Cancel a payment that has not been settled yet."""
        self._request_json(
            "DELETE", f"{PAYMENTS_API}/{payment_id}", "cancel_payment", access_token
        )
        logger.info("Payment %s cancelled", payment_id)
