"""Payment and checkout exceptions.

Gateway failures keep the categories of ``shared.domain.exceptions``:
``GatewayUnavailable`` is retry-safe, ``GatewayRejected`` is terminal for
the attempt.  Refund refusals are conflicts with the charge state, not
gateway outages.
"""

from __future__ import annotations

from shared.domain.exceptions import (
    ConflictError,
    DomainValidationError,
    GatewayRejected,
    NotFoundError,
    PermissionDenied,
)


class InvalidPayer(GatewayRejected):
    """The gateway rejected the payer data."""

    code = "invalid_payer"
    http_status = 400


class ChargeNotFound(NotFoundError):
    """The gateway has no charge with this id."""

    code = "charge_not_found"


class AlreadyRefunded(ConflictError):
    """The charge has already been refunded in full."""

    code = "already_refunded"


class RefundNotAllowed(ConflictError):
    """The charge cannot be refunded (not approved, or nothing left to refund)."""

    code = "refund_not_allowed"


class DraftAlreadyProcessing(ConflictError):
    """Another request is confirming this draft right now."""

    code = "draft_already_processing"


class IncompleteOrderData(DomainValidationError):
    """The draft expired from the cache and no usable fallback cart was sent."""

    code = "incomplete_order_data"


class PaymentNotApproved(ConflictError):
    """The gateway has not approved the charge."""

    code = "payment_not_approved"


class PaymentExpired(ConflictError):
    """The charge was approved after the payment window closed."""

    code = "payment_expired"


class ChargeMismatch(ConflictError):
    """The charge does not belong to this draft or order."""

    code = "charge_mismatch"


class InvalidWebhookSignature(PermissionDenied):
    """The webhook signature is missing or does not match."""

    code = "invalid_webhook_signature"
    http_status = 401


class InvalidWebhookPayload(DomainValidationError):
    """The webhook body does not identify a charge."""

    code = "invalid_webhook_payload"
