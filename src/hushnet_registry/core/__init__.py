"""Core infrastructure: configuration, logging and the exception hierarchy."""

from .config import RegistrySettings, clear_config, get_config
from .exceptions import (
    AuthenticationError,
    DatabaseException,
    HostConflictError,
    HostResolutionError,
    MissingFieldError,
    NodeNotFoundError,
    RegistryException,
    ValidationException,
)

__all__ = [
    "RegistrySettings",
    "get_config",
    "clear_config",
    "RegistryException",
    "ValidationException",
    "HostResolutionError",
    "MissingFieldError",
    "AuthenticationError",
    "HostConflictError",
    "NodeNotFoundError",
    "DatabaseException",
]
