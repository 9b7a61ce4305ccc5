"""Settlement exceptions."""

from __future__ import annotations

from shared.domain.exceptions import ConflictError


class SettlementNotAllowed(ConflictError):
    """Only completed orders are settled with supermarkets."""

    code = "settlement_not_allowed"


class InvalidSupermarketPaymentTransition(ConflictError):
    """The payout status cannot move backwards."""

    code = "invalid_supermarket_payment_transition"
