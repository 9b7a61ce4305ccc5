"""Order domain exceptions.

Each exception belongs to one category of ``shared.domain.exceptions``;
the API layer maps the category to an HTTP status.
"""

from __future__ import annotations

from shared.domain.exceptions import (
    ConflictError,
    DomainValidationError,
    InternalError,
    NotFoundError,
    PermissionDenied,
)


class OrderNotFound(NotFoundError):
    """The requested order does not exist."""

    code = "order_not_found"


class OrderItemNotFound(NotFoundError):
    """The order has no item with this id."""

    code = "order_item_not_found"


class InvalidStatusTransition(ConflictError):
    """The requested status is not reachable from the current status."""

    code = "invalid_status_transition"


class ConcurrentStatusChange(ConflictError):
    """Another request changed the order status first; re-fetch and retry."""

    code = "concurrent_status_change"


class DuplicateExternalReference(ConflictError):
    """An order already exists for this payment attempt."""

    code = "duplicate_external_reference"


class TransitionNotAllowed(PermissionDenied):
    """The caller may not request this status change."""

    code = "transition_not_allowed"


class PaymentNotVerified(DomainValidationError):
    """The order has no verified payment reference yet."""

    code = "payment_not_verified"


class InvalidOrderData(DomainValidationError):
    """The order request is inconsistent (totals, addresses, items)."""

    code = "invalid_order_data"


class ItemConfirmationNotAllowed(ConflictError):
    """Item lines can only be accepted or removed while the order is confirmed."""

    code = "item_confirmation_not_allowed"


class OrderPersistenceError(InternalError):
    """The database rejected an order write."""

    code = "order_persistence_error"
