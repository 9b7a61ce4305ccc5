"""Error taxonomy shared by every bounded context.

Each module declares its own exceptions in ``exceptions.py`` by
subclassing one of these categories.  The API layer renders them
through ``modules.core.exceptions.api_exception_handler`` using the
``code`` and ``http_status`` class attributes.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for every expected, typed failure."""

    code = "error"
    http_status = 400

    def __init__(self, message: str = "", **context) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.context = context


class DomainValidationError(DomainError):
    """Malformed request or business rule rejected the input."""

    code = "invalid"
    http_status = 400


class PermissionDenied(DomainError):
    """Caller is not allowed to perform this operation."""

    code = "permission_denied"
    http_status = 403


class NotFoundError(DomainError):
    """Referenced entity does not exist."""

    code = "not_found"
    http_status = 404


class ConflictError(DomainError):
    """Operation conflicts with the current state; re-fetch and retry."""

    code = "conflict"
    http_status = 409


class GatewayError(DomainError):
    """The payment gateway returned an unexpected response."""

    code = "gateway_error"
    http_status = 502


class GatewayUnavailable(GatewayError):
    """The payment gateway is unreachable or timed out (retry-safe)."""

    code = "gateway_unavailable"
    http_status = 503


class GatewayRejected(GatewayError):
    """The payment gateway refused the request (terminal for this attempt)."""

    code = "gateway_rejected"
    http_status = 502


class InternalError(DomainError):
    """Persistence failure or unexpected condition."""

    code = "internal_error"
    http_status = 500
