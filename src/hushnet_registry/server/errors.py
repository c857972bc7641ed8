# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Standardized REST error responses for the registry API.

All endpoints answer failures in one format:
{
    "success": false,
    "error": {
        "code": "ERROR_CODE",
        "message": "Human readable message"
    }
}

Error codes follow the pattern: DOMAIN_SPECIFIC_ERROR
Examples: VALIDATION_MISSING_FIELD, AUTH_SIGNATURE_FAILED, NOT_FOUND_NODE
"""

from __future__ import annotations

import logging
import traceback
import uuid

from aiohttp import web

from ..core.exceptions import (
    AuthenticationError,
    HostConflictError,
    HostResolutionError,
    MissingFieldError,
    NodeNotFoundError,
    RegistryException,
    ValidationException,
)
from ..core.logging import get_correlation_id

logger = logging.getLogger(__name__)

# =============================================================================
# STANDARD ERROR CODES
# =============================================================================

# Validation errors (400)
VALIDATION_MISSING_FIELD = "VALIDATION_MISSING_FIELD"
VALIDATION_INVALID_VALUE = "VALIDATION_INVALID_VALUE"
VALIDATION_INVALID_JSON = "VALIDATION_INVALID_JSON"
VALIDATION_UNRESOLVABLE_HOST = "VALIDATION_UNRESOLVABLE_HOST"

# Authentication errors (401)
AUTH_SIGNATURE_FAILED = "AUTH_SIGNATURE_FAILED"

# Authorization errors (403)
FORBIDDEN_HOST_BOUND = "FORBIDDEN_HOST_BOUND"

# Not found errors (404)
NOT_FOUND_RESOURCE = "NOT_FOUND_RESOURCE"
NOT_FOUND_NODE = "NOT_FOUND_NODE"

# Timeout (408)
REQUEST_TIMEOUT = "REQUEST_TIMEOUT"

# Server errors (500)
INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# ERROR RESPONSE HELPERS
# =============================================================================


def error_response(
    code: str,
    message: str,
    status_code: int = 400,
) -> web.Response:
    """Create a standardized error response.

    Args:
        code: Error code (e.g., VALIDATION_MISSING_FIELD)
        message: Human-readable error message
        status_code: HTTP status code (default 400)

    Returns:
        aiohttp JSON response with standardized error format
    """
    return web.json_response(
        {
            "success": False,
            "error": {
                "code": code,
                "message": message,
            },
        },
        status=status_code,
    )


def validation_error(message: str, code: str = VALIDATION_INVALID_VALUE) -> web.Response:
    """Create a 400 validation error response."""
    return error_response(code, message, status_code=400)


def invalid_json_error() -> web.Response:
    """Create a 400 error for invalid JSON body."""
    return error_response(VALIDATION_INVALID_JSON, "Invalid JSON body", status_code=400)


def not_found_error(resource: str, code: str = NOT_FOUND_RESOURCE) -> web.Response:
    """Create a 404 not found error response."""
    return error_response(code, f"{resource} not found", status_code=404)


def timeout_error(timeout_seconds: float) -> web.Response:
    """Create a 408 response for a request that exceeded its time budget."""
    return error_response(
        REQUEST_TIMEOUT,
        f"request exceeded {timeout_seconds:g}s",
        status_code=408,
    )


def internal_error(
    message: str = "internal",
    exc: BaseException | None = None,
    debug: bool = False,
) -> web.Response:
    """Create a 500 internal error response.

    The full exception is logged with a request_id; the response carries
    only the request_id unless debug is set.

    Args:
        message: Message returned to the caller
        exc: Exception to log and, in debug mode, describe
        debug: Include exception type and detail in the response
    """
    request_id = get_correlation_id() or uuid.uuid4().hex[:12]

    error_body: dict = {
        "code": INTERNAL_ERROR,
        "message": message,
        "request_id": request_id,
    }

    if exc is not None:
        logger.error(
            "request_id=%s %s: %s",
            request_id,
            type(exc).__name__,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        if debug:
            error_body["exception"] = type(exc).__name__
            error_body["detail"] = str(exc)
            error_body["traceback"] = traceback.format_exception_only(type(exc), exc)[0].strip()

    return web.json_response(
        {"success": False, "error": error_body},
        status=500,
    )


def exception_response(exc: RegistryException, debug: bool = False) -> web.Response:
    """Map a registry exception to its HTTP status and error code.

    Order matters: MissingFieldError and HostResolutionError are
    ValidationExceptions.
    """
    if isinstance(exc, MissingFieldError):
        return error_response(VALIDATION_MISSING_FIELD, exc.message, status_code=400)
    if isinstance(exc, HostResolutionError):
        return error_response(VALIDATION_UNRESOLVABLE_HOST, exc.message, status_code=400)
    if isinstance(exc, ValidationException):
        return validation_error(exc.message)
    if isinstance(exc, AuthenticationError):
        return error_response(AUTH_SIGNATURE_FAILED, exc.message, status_code=401)
    if isinstance(exc, HostConflictError):
        return error_response(FORBIDDEN_HOST_BOUND, exc.message, status_code=403)
    if isinstance(exc, NodeNotFoundError):
        return error_response(NOT_FOUND_NODE, exc.message, status_code=404)
    return internal_error(exc=exc, debug=debug)
