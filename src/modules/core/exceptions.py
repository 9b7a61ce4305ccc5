"""DRF exception handler producing the standard error envelope.

Every error response has the shape::

    {"type": "client_error", "errors": [{"code": ..., "detail": ..., "attr": ...}]}

Domain errors (``shared.domain.exceptions``) carry their own ``code`` and
``http_status``; DRF and pydantic errors are normalised to the same shape.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from shared.domain.exceptions import DomainError

logger = structlog.get_logger(__name__)


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    view = context.get("view")
    log = logger.bind(view=view.__class__.__name__ if view else None)

    if isinstance(exc, DomainError):
        if exc.http_status >= 500:
            log.error(
                "api.domain_error",
                code=exc.code,
                error=str(exc),
                **{k: str(v) for k, v in exc.context.items()},
            )
        error: Dict[str, Any] = {"code": exc.code, "detail": str(exc), "attr": None}
        if exc.context:
            error["meta"] = {k: _plain(v) for k, v in exc.context.items()}
        return Response(
            {"type": _error_type(exc.http_status), "errors": [error]},
            status=exc.http_status,
        )

    if isinstance(exc, PydanticValidationError):
        errors = [
            {
                "code": item["type"],
                "detail": item["msg"],
                "attr": ".".join(str(part) for part in item["loc"]) or None,
            }
            for item in exc.errors()
        ]
        return Response(
            {"type": "validation_error", "errors": errors},
            status=status.HTTP_400_BAD_REQUEST,
        )

    response = drf_exception_handler(exc, context)
    if response is None:
        log.exception("api.unhandled_exception", error=str(exc))
        return None

    if isinstance(exc, DRFValidationError):
        response.data = {
            "type": "validation_error",
            "errors": _flatten(exc.detail),
        }
        return response

    detail = getattr(exc, "detail", str(exc))
    code = getattr(detail, "code", None) or getattr(exc, "default_code", "error")
    response.data = {
        "type": _error_type(response.status_code),
        "errors": [{"code": code, "detail": str(detail), "attr": None}],
    }
    return response


def _error_type(http_status: int) -> str:
    return "server_error" if http_status >= 500 else "client_error"


def _flatten(detail: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    if isinstance(detail, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in detail.items():
            name = None if key == "non_field_errors" else str(key)
            errors.extend(_flatten(value, f"{attr}.{name}" if attr and name else name or attr))
        return errors
    if isinstance(detail, list):
        errors = []
        for index, value in enumerate(detail):
            if isinstance(value, (dict, list)):
                errors.extend(_flatten(value, f"{attr}.{index}" if attr else str(index)))
            else:
                errors.extend(_flatten(value, attr))
        return errors
    return [
        {
            "code": getattr(detail, "code", "invalid"),
            "detail": str(detail),
            "attr": attr,
        }
    ]


def _plain(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set)):
        return [_plain(item) for item in value]
    return str(value)
