"""Customer domain exceptions."""

from __future__ import annotations

from shared.domain.exceptions import NotFoundError


class CustomerNotFound(NotFoundError):
    """No customer is registered with this email."""

    code = "customer_not_found"
