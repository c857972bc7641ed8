# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Registry configuration.

All environment-based configuration flows through this module. Components
never read the environment themselves: the process builds one
RegistrySettings at startup and passes it to the store, the protocol, the
health reconciler and the HTTP server.

Usage:
    from hushnet_registry.core.config import get_config
    settings = get_config()

    # In tests, construct directly by field name
    settings = RegistrySettings(health_interval_seconds=1, geoip_url="http://geo/{ip}")
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GEOIP_URL = "https://ipapi.co/{ip}/json/"

STORE_MEMORY = "memory"
STORE_POSTGRES = "postgres"


class RegistrySettings(BaseSettings):
    """Settings for the registry service.

    Most variables use the HUSHNET_ prefix. DATABASE_URL, HEALTH_TIMEOUT_MS
    and GEOIP_URL keep the names existing deployments already set.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # HTTP SETTINGS
    # ==========================================================================

    listen_host: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP server binds to",
        validation_alias="HUSHNET_LISTEN_HOST",
    )
    listen_port: int = Field(
        default=8080,
        description="Port the HTTP server binds to",
        validation_alias="HUSHNET_LISTEN_PORT",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for handling a single request",
        validation_alias="HUSHNET_REQUEST_TIMEOUT",
    )
    debug: bool = Field(
        default=False,
        description="Include exception details in 500 responses",
        validation_alias="HUSHNET_DEBUG",
    )

    # ==========================================================================
    # STORE SETTINGS
    # ==========================================================================

    store_backend: str | None = Field(
        default=None,
        description="Store backend: 'memory' or 'postgres' (default: postgres if DATABASE_URL is set)",
        validation_alias="HUSHNET_STORE",
    )
    database_url: str | None = Field(
        default=None,
        description="PostgreSQL DSN",
        validation_alias="DATABASE_URL",
    )
    db_pool_min: int = Field(
        default=1,
        ge=0,
        description="Minimum pool connections",
        validation_alias="HUSHNET_DB_POOL_MIN",
    )
    db_pool_max: int = Field(
        default=10,
        ge=1,
        description="Maximum pool connections",
        validation_alias="HUSHNET_DB_POOL_MAX",
    )
    db_command_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for a single store query",
        validation_alias="HUSHNET_DB_COMMAND_TIMEOUT",
    )

    # ==========================================================================
    # PROTOCOL SETTINGS
    # ==========================================================================

    challenge_ttl_seconds: int = Field(
        default=300,
        gt=0,
        description="Lifetime of a registration challenge",
        validation_alias="HUSHNET_CHALLENGE_TTL",
    )
    dns_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for resolving a node host at registration",
        validation_alias="HUSHNET_DNS_TIMEOUT",
    )

    # ==========================================================================
    # HEALTH RECONCILER SETTINGS
    # ==========================================================================

    health_enabled: bool = Field(
        default=True,
        description="Run the background health reconciler",
        validation_alias="HUSHNET_HEALTH_ENABLED",
    )
    health_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between reconciler ticks",
        validation_alias="HUSHNET_HEALTH_INTERVAL",
    )
    health_timeout_ms: int = Field(
        default=3000,
        gt=0,
        description="Timeout for a node health probe in milliseconds",
        validation_alias="HEALTH_TIMEOUT_MS",
    )
    health_concurrency: int = Field(
        default=1,
        ge=1,
        description="Nodes probed in parallel within one tick",
        validation_alias="HUSHNET_HEALTH_CONCURRENCY",
    )
    geoip_url: str = Field(
        default=DEFAULT_GEOIP_URL,
        description="Geolocation endpoint template, {ip} is substituted",
        validation_alias="GEOIP_URL",
    )
    geoip_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Timeout for a geolocation lookup",
        validation_alias="HUSHNET_GEOIP_TIMEOUT",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="HUSHNET_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="HUSHNET_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="HUSHNET_LOG_FILE",
    )

    @model_validator(mode="after")
    def _resolve_store_backend(self) -> RegistrySettings:
        if self.store_backend is None:
            self.store_backend = STORE_POSTGRES if self.database_url else STORE_MEMORY
        self.store_backend = self.store_backend.lower()
        if self.store_backend not in (STORE_MEMORY, STORE_POSTGRES):
            raise ValueError(f"unknown store backend '{self.store_backend}'")
        if self.store_backend == STORE_POSTGRES and not self.database_url:
            raise ValueError("DATABASE_URL is required for the postgres store")
        if "{ip}" not in self.geoip_url:
            raise ValueError("geoip_url must contain an {ip} placeholder")
        if self.db_pool_min > self.db_pool_max:
            raise ValueError("db_pool_min must not exceed db_pool_max")
        return self

    @property
    def health_timeout_seconds(self) -> float:
        """Health probe timeout in seconds."""
        return self.health_timeout_ms / 1000.0


# Process settings, built once at startup
_settings: RegistrySettings | None = None


def get_config() -> RegistrySettings:
    """Get the process settings, loading them from the environment on first use.

    Only bootstrap code (CLI, server factory) should call this; components
    receive their settings explicitly.
    """
    global _settings
    if _settings is None:
        _settings = RegistrySettings()
    return _settings


def clear_config() -> None:
    """Drop the cached settings (for testing)."""
    global _settings
    _settings = None
