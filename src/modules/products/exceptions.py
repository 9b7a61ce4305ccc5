"""Product domain exceptions."""

from __future__ import annotations

from shared.domain.exceptions import ConflictError, DomainValidationError, NotFoundError


class ProductNotFound(NotFoundError):
    """A product referenced by an order item does not exist."""

    code = "product_not_found"


class ProductUnavailable(DomainValidationError):
    """The product is inactive, expired, removed or its supermarket is not approved."""

    code = "product_unavailable"


class InsufficientStock(ConflictError):
    """Not enough quantity on hand to fulfil the requested amount."""

    code = "insufficient_stock"
