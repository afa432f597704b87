"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent JSON error body: {"error": "<message>", "code": "<CODE>"}
    • Automatic logging of unhandled errors

Upstream provider status codes are never passed through: every failure
that originates at the model provider or a delivery gateway surfaces as
a 500 carrying only the message text.

Usage:
    from backend.app.core.errors import (
        CopilotAPIError,
        RequestValidationError,
        ConfigurationError,
        register_error_handlers,
    )

    raise RequestValidationError("All fields are required: location")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError as FastAPIValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class CopilotAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class RequestValidationError(CopilotAPIError):
    """Client sent an unusable request (400)."""

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class NotFoundError(CopilotAPIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, **identifiers},
        )


class ConflictError(CopilotAPIError):
    """Operation not allowed in the resource's current state (409)."""

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONFLICT",
            details=details,
        )


class ConfigurationError(CopilotAPIError):
    """Deployment is missing required configuration (500)."""

    def __init__(self, message: str = "Server configuration error"):
        super().__init__(
            message=message,
            status_code=500,
            error_code="CONFIGURATION_ERROR",
        )


class UpstreamServiceError(CopilotAPIError):
    """Model provider returned a terminal failure (500, never the upstream status)."""

    def __init__(self, message: str, *, attempts: int = 0):
        super().__init__(
            message=message,
            status_code=500,
            error_code="UPSTREAM_ERROR",
            details={"attempts": attempts} if attempts else None,
        )


class UnexpectedGenerationError(CopilotAPIError):
    """Uncaught failure inside the live generation branch (500)."""

    def __init__(self) -> None:
        super().__init__(
            message="An unexpected error occurred",
            status_code=500,
            error_code="GENERATION_ERROR",
        )


class DeliveryError(CopilotAPIError):
    """A delivery collaborator (SMS, email, social) failed (500)."""

    def __init__(self, channel: str, message: str):
        super().__init__(
            message=message,
            status_code=500,
            error_code="DELIVERY_ERROR",
            details={"channel": channel},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {"error": message, "code": error_code}

    # Details are diagnostic only; keep them out of production responses
    if details and not settings.is_production:
        body["details"] = details

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(CopilotAPIError)
    async def handle_copilot_error(request: Request, exc: CopilotAPIError):
        log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            log_level,
            "API Error [%s] %s %s: %s",
            exc.error_code, request.method, request.url.path, exc.message,
        )
        return build_error_response(
            exc.status_code, exc.error_code, exc.message, exc.details,
        )

    @app.exception_handler(FastAPIValidationError)
    async def handle_request_validation(request: Request, exc: FastAPIValidationError):
        fields = [
            ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            for err in exc.errors()
        ]
        logger.warning("Request validation failed: %s", fields)
        return build_error_response(
            400, "VALIDATION_ERROR", "Invalid request body",
            {"fields": [f for f in fields if f]},
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "An unexpected error occurred"
        return build_error_response(500, "INTERNAL_ERROR", message)
