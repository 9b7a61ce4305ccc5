"""MercadoPago PIX adapter over the Payments REST API.

Provides:
- PIX charge creation (``POST /v1/payments``)
- Charge status polling (``GET /v1/payments/{id}``)
- Full or partial refunds (``POST /v1/payments/{id}/refunds``)
- Cancellation of unpaid charges (``PUT /v1/payments/{id}``)

Every gateway answer is normalized into the value objects of
``modules.payments.gateway``; transport problems become
``GatewayUnavailable`` so callers can retry safely.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
import structlog
from django.conf import settings
from django.utils.dateparse import parse_datetime

from modules.payments.exceptions import (
    AlreadyRefunded,
    ChargeNotFound,
    InvalidPayer,
    RefundNotAllowed,
)
from modules.payments.gateway import (
    ChargeHandle,
    ChargeState,
    ChargeStatus,
    IPaymentGateway,
    Payer,
    RefundHandle,
    RefundState,
)
from shared.domain.exceptions import GatewayError, GatewayRejected, GatewayUnavailable

logger = structlog.get_logger(__name__)

# Gateway status -> normalized status.  ``refunded`` and ``charged_back``
# are money that went back to the payer: from the order's point of view
# the charge is cancelled.
STATUS_MAP = {
    "pending": ChargeState.PENDING,
    "in_process": ChargeState.PENDING,
    "authorized": ChargeState.PENDING,
    "in_mediation": ChargeState.PENDING,
    "approved": ChargeState.APPROVED,
    "rejected": ChargeState.REJECTED,
    "cancelled": ChargeState.CANCELLED,
    "refunded": ChargeState.CANCELLED,
    "charged_back": ChargeState.CANCELLED,
}

REFUND_STATUS_MAP = {
    "approved": RefundState.APPROVED,
    "pending": RefundState.PENDING,
    "in_process": RefundState.PENDING,
}


class MercadoPagoGateway(IPaymentGateway):
    """Synchronous MercadoPago client.

    ``client`` can be injected (tests pass an ``httpx.Client`` with a
    ``MockTransport``); otherwise one is built from settings on first use.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        notification_url: Optional[str] = None,
    ) -> None:
        self.access_token = access_token or settings.MERCADOPAGO_ACCESS_TOKEN
        self.base_url = (base_url or settings.MERCADOPAGO_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT
        self.notification_url = notification_url or settings.MERCADOPAGO_NOTIFICATION_URL
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            if not self.access_token:
                raise GatewayUnavailable("MERCADOPAGO_ACCESS_TOKEN is not configured.")
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
        return self._client

    def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body."""
        headers = {"X-Idempotency-Key": idempotency_key} if idempotency_key else None
        log = logger.bind(method=method, path=path)
        try:
            response = self.client.request(method, path, json=json_data, headers=headers)
        except httpx.TimeoutException as exc:
            log.warning("payment.gateway_timeout", error=str(exc))
            raise GatewayUnavailable("Payment gateway timed out.") from exc
        except httpx.TransportError as exc:
            log.warning("payment.gateway_unreachable", error=str(exc))
            raise GatewayUnavailable("Payment gateway is unreachable.") from exc

        try:
            data = response.json() if response.content else {}
        except ValueError as exc:
            log.error("payment.gateway_bad_response", status_code=response.status_code)
            raise GatewayError(
                "Payment gateway returned a non-JSON response.", status_code=response.status_code
            ) from exc

        if response.status_code >= 500:
            log.warning("payment.gateway_error", status_code=response.status_code)
            raise GatewayUnavailable(
                "Payment gateway failed to process the request.", status_code=response.status_code
            )
        if response.status_code == 404:
            raise ChargeNotFound(f"Gateway resource {path} not found.", path=path)
        if response.status_code >= 400:
            message = _error_message(data)
            log.warning("payment.gateway_rejected", status_code=response.status_code, message=message)
            raise GatewayRejected(
                f"Payment gateway rejected the request: {message}",
                status_code=response.status_code,
                gateway_message=message,
            )
        return data

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------

    def create_charge(
        self,
        amount: Decimal,
        description: str,
        payer: Payer,
        idempotency_key: str,
        expires_at: datetime,
    ) -> ChargeHandle:
        payload: Dict[str, Any] = {
            "transaction_amount": float(amount),
            "description": description,
            "payment_method_id": "pix",
            "external_reference": idempotency_key,
            "date_of_expiration": expires_at.isoformat(timespec="milliseconds"),
            "payer": {
                "email": payer.email,
                "first_name": payer.first_name,
                "last_name": payer.last_name,
            },
        }
        if self.notification_url:
            payload["notification_url"] = self.notification_url

        try:
            data = self._request("POST", "/v1/payments", payload, idempotency_key=idempotency_key)
        except GatewayRejected as exc:
            if "payer" in exc.context.get("gateway_message", "").lower():
                raise InvalidPayer(str(exc), **exc.context) from exc
            raise

        transaction_data = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
        if not data.get("id") or not transaction_data.get("qr_code"):
            logger.error("payment.charge_without_pix_code", charge_id=data.get("id"))
            raise GatewayError("Payment gateway did not return a PIX code.")

        charge = ChargeHandle(
            charge_id=str(data["id"]),
            payment_code=transaction_data["qr_code"],
            qr_code_base64=transaction_data.get("qr_code_base64", ""),
            expires_at=parse_datetime(data.get("date_of_expiration") or "") or expires_at,
            status=STATUS_MAP.get(data.get("status", ""), ChargeState.PENDING),
        )
        logger.info(
            "payment.charge_created",
            charge_id=charge.charge_id,
            external_reference=idempotency_key,
            amount=str(amount),
        )
        return charge

    def get_charge_status(self, charge_id: str) -> ChargeStatus:
        data = self._request("GET", f"/v1/payments/{charge_id}")
        raw_status = data.get("status")
        if raw_status not in STATUS_MAP:
            logger.error("payment.unknown_charge_status", charge_id=charge_id, status=raw_status)
            raise GatewayError(f"Unexpected charge status {raw_status!r}.", charge_id=charge_id)

        status = STATUS_MAP[raw_status]
        detail = data.get("status_detail") or ""
        if status == ChargeState.CANCELLED and raw_status != "cancelled":
            detail = raw_status
        amount = data.get("transaction_amount")
        return ChargeStatus(
            charge_id=str(data.get("id", charge_id)),
            status=status,
            detail=detail,
            external_reference=data.get("external_reference") or "",
            amount=Decimal(str(amount)).quantize(Decimal("0.01")) if amount is not None else None,
        )

    def cancel_charge(self, charge_id: str) -> bool:
        current = self.get_charge_status(charge_id)
        if current.status == ChargeState.CANCELLED:
            return True
        if current.status != ChargeState.PENDING:
            logger.info("payment.charge_not_cancellable", charge_id=charge_id, status=current.status)
            return False
        self._request("PUT", f"/v1/payments/{charge_id}", {"status": "cancelled"})
        return True

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def refundable_amount(self, charge_id: str) -> tuple[Decimal, Decimal]:
        """``(charge total, already refunded)`` counting approved refunds only."""
        payment = self._request("GET", f"/v1/payments/{charge_id}")
        total = Decimal(str(payment.get("transaction_amount") or 0))
        refunds = self._request("GET", f"/v1/payments/{charge_id}/refunds")
        if isinstance(refunds, dict):
            refunds = refunds.get("results", [])
        refunded = sum(
            (Decimal(str(refund.get("amount") or 0)) for refund in refunds if refund.get("status") == "approved"),
            Decimal("0"),
        )
        return total, refunded

    def create_refund(
        self, charge_id: str, reason: str = "", amount: Optional[Decimal] = None
    ) -> RefundHandle:
        log = logger.bind(charge_id=charge_id)
        current = self.get_charge_status(charge_id)
        if current.detail in ("refunded", "charged_back"):
            raise AlreadyRefunded(f"Charge {charge_id} was already refunded.", charge_id=charge_id)
        if current.status != ChargeState.APPROVED:
            raise RefundNotAllowed(
                f"Charge {charge_id} is {current.status}; only approved charges can be refunded.",
                charge_id=charge_id,
                charge_status=current.status,
            )

        total, refunded = self.refundable_amount(charge_id)
        available = (total - refunded).quantize(Decimal("0.01"))
        if available <= 0:
            raise AlreadyRefunded(f"Charge {charge_id} has nothing left to refund.", charge_id=charge_id)
        if amount is None:
            amount = available
        elif amount > available:
            raise RefundNotAllowed(
                f"Requested {amount} exceeds the refundable {available}.",
                charge_id=charge_id,
                available=available,
            )

        payload: Dict[str, Any] = {"amount": float(amount)}
        if reason:
            payload["metadata"] = {"reason": reason}
        data = self._request(
            "POST",
            f"/v1/payments/{charge_id}/refunds",
            payload,
            idempotency_key=f"refund-{charge_id}-{amount}",
        )

        status = REFUND_STATUS_MAP.get(data.get("status", ""))
        if status is None:
            log.error("payment.refund_rejected", status=data.get("status"))
            raise GatewayRejected(
                f"Refund for charge {charge_id} was {data.get('status')}.", charge_id=charge_id
            )
        refund = RefundHandle(
            refund_id=str(data.get("id", "")),
            charge_id=charge_id,
            amount=Decimal(str(data.get("amount", amount))).quantize(Decimal("0.01")),
            status=status,
        )
        log.info("payment.refund_created", refund_id=refund.refund_id, amount=str(refund.amount), status=status)
        return refund


def _error_message(data: Any) -> str:
    if not isinstance(data, dict):
        return "unknown error"
    causes = data.get("cause") or []
    descriptions = [cause.get("description", "") for cause in causes if isinstance(cause, dict)]
    return "; ".join(filter(None, [data.get("message", ""), *descriptions])) or "unknown error"
