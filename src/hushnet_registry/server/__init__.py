"""HTTP surface of the registry: aiohttp application, error responses and CLI."""

from .app import RegistryServer, create_app

__all__ = [
    "RegistryServer",
    "create_app",
]
