# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Exception hierarchy for the registry.

Every protocol failure maps to one of these types; the HTTP layer turns
them into status codes and error bodies (see server/errors.py).

Client errors (fix your request):
    ValidationException, MissingFieldError, HostResolutionError,
    NodeNotFoundError

Authorization errors (you are not who you claim to be):
    AuthenticationError, HostConflictError

Internal errors (opaque to callers):
    DatabaseException
"""

from __future__ import annotations

from typing import Any


class RegistryException(Exception):
    """Base exception for all registry errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(RegistryException):
    """Exception for malformed client input.

    Raised when:
    - A required field is missing or has the wrong type
    - Base64 input cannot be decoded
    - A key or signature has the wrong length
    - A nonce is unknown, expired, or bound to another key
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class MissingFieldError(ValidationException):
    """A required request field is absent."""

    def __init__(self, field: str):
        super().__init__(f"{field} is required", field=field)


class HostResolutionError(ValidationException):
    """The advertised host could not be resolved to an IP address."""

    def __init__(self, host: str, reason: str = ""):
        message = "could not resolve host"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, field="host", value=host)
        self.host = host


class AuthenticationError(RegistryException):
    """A signature failed Ed25519 verification."""

    def __init__(self, message: str = "bad signature"):
        super().__init__(message)


class HostConflictError(RegistryException):
    """The host is already bound to a different public key."""

    def __init__(self, host: str, message: str = "host already registered with another key"):
        super().__init__(message, {"host": host})
        self.host = host


class NodeNotFoundError(RegistryException):
    """No node is registered for the given host."""

    def __init__(self, host: str):
        super().__init__(f"node not registered: {host}", {"host": host})
        self.host = host


class DatabaseException(RegistryException):
    """Exception for store failures.

    Raised when:
    - The database connection fails
    - Query execution fails
    - The pool cannot be created
    """
