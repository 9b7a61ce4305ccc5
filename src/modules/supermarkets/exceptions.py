"""Supermarket domain exceptions."""

from __future__ import annotations

from shared.domain.exceptions import DomainValidationError, NotFoundError


class SupermarketNotFound(NotFoundError):
    """The requested supermarket does not exist."""

    code = "supermarket_not_found"


class InvalidCommercialTerms(DomainValidationError):
    """Commission rate or payment terms out of range."""

    code = "invalid_commercial_terms"
