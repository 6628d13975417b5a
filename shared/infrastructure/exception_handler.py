"""DRF exception handler that keeps the domain error kind visible to clients."""

from __future__ import annotations

import structlog
from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler  # type: ignore

from shared.domain.exceptions import DomainError

logger = structlog.get_logger(__name__)


def domain_exception_handler(exc, context):  # type: ignore
    """Render DomainError as ``{"success": false, "error": {...}}``.

    Everything else falls through to DRF's default handling so that
    serializer validation and authentication errors keep their usual shape.
    """

    if isinstance(exc, DomainError):
        view = context.get("view")
        logger.info(
            "api.domain_error",
            kind=exc.kind,
            code=exc.code,
            view=view.__class__.__name__ if view else None,
        )
        return Response({"success": False, "error": exc.to_dict()}, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None
    if response.status_code == status.HTTP_400_BAD_REQUEST and isinstance(response.data, dict):
        response.data = {
            "success": False,
            "error": {
                "kind": "validation_failed",
                "code": "INVALID_PAYLOAD",
                "message": "Request payload is invalid.",
                "details": response.data,
            },
        }
    return response
