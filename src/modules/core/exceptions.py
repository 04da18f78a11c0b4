"""Domain error base class and the DRF exception handler.

Every domain exception carries its HTTP ``status_code`` and a stable
``code``.  ``exception_handler`` turns domain errors, DRF errors and
unexpected faults into one response envelope::

    {"type": "client_error", "errors": [{"code": ..., "detail": ..., "attr": ...}]}

Domain errors may contribute extra top-level keys via ``extra()`` (e.g. the
insufficient line items of an out-of-stock checkout).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import set_rollback

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    """Base class for business-rule violations raised by the service layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    attr: Optional[str] = None

    def extra(self) -> Dict[str, Any]:
        return {}


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


def _error_type(status_code: int) -> str:
    return "server_error" if status_code >= 500 else "client_error"


def _flatten_validation(detail: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    """Flatten DRF's nested ``ValidationError.detail`` into error entries."""
    if isinstance(detail, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in detail.items():
            name = key if key != "non_field_errors" else None
            path = f"{attr}.{name}" if attr and name else (name or attr)
            errors.extend(_flatten_validation(value, path))
        return errors
    if isinstance(detail, list):
        errors = []
        for index, value in enumerate(detail):
            if isinstance(value, (dict, list)):
                errors.extend(_flatten_validation(value, f"{attr}.{index}" if attr else str(index)))
            else:
                errors.extend(_flatten_validation(value, attr))
        return errors
    return [
        {
            "code": getattr(detail, "code", "invalid"),
            "detail": str(detail),
            "attr": attr,
        }
    ]


def exception_handler(exc: Exception, context: Dict[str, Any]) -> Response:
    view = context.get("view")
    view_name = view.__class__.__name__ if view else None

    if isinstance(exc, Http404):
        exc = exceptions.NotFound()
    elif isinstance(exc, PermissionDenied):
        exc = exceptions.PermissionDenied()

    if isinstance(exc, DomainError):
        set_rollback()
        body: Dict[str, Any] = {
            "type": _error_type(exc.status_code),
            "errors": [{"code": exc.code, "detail": str(exc), "attr": exc.attr}],
        }
        body.update(exc.extra())
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "api.domain_error",
            view=view_name,
            code=exc.code,
            status_code=exc.status_code,
        )
        return Response(body, status=exc.status_code)

    if isinstance(exc, exceptions.ValidationError):
        set_rollback()
        return Response(
            {"type": "validation_error", "errors": _flatten_validation(exc.detail)},
            status=exc.status_code,
        )

    if isinstance(exc, exceptions.APIException):
        set_rollback()
        headers = {}
        if getattr(exc, "auth_header", None):
            headers["WWW-Authenticate"] = exc.auth_header
        if getattr(exc, "wait", None):
            headers["Retry-After"] = "%d" % exc.wait
        codes = exc.get_codes()
        return Response(
            {
                "type": _error_type(exc.status_code),
                "errors": [
                    {
                        "code": codes if isinstance(codes, str) else exc.default_code,
                        "detail": str(exc.detail),
                        "attr": None,
                    }
                ],
            },
            status=exc.status_code,
            headers=headers,
        )

    set_rollback()
    logger.exception("api.unhandled_error", view=view_name)
    return Response(
        {
            "type": "server_error",
            "errors": [
                {"code": "error", "detail": "Internal server error.", "attr": None}
            ],
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
