"""Runtime settings with typed configuration and fail-fast validation.

:class:`RuntimeSettings` (``pydantic_settings.BaseSettings``) aggregates the
backend, cache and observability sections, each readable from its own
``PULSEBOARD_*`` environment namespace or through the nested
``PULSEBOARD_<SECTION>__<FIELD>`` form.

Examples
--------
>>> from pulseboard_common.settings import load_settings
>>> settings = load_settings()
>>> settings.cache.revalidate
True
"""

from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pulseboard_common.errors import SettingsError
from pulseboard_common.logging import get_logger

__all__ = [
    "BackendConfig",
    "CacheConfig",
    "ObservabilityConfig",
    "RuntimeSettings",
    "load_settings",
]

logger = get_logger(__name__)


class BackendConfig(BaseSettings):
    """Hosted data service connection (``PULSEBOARD_BACKEND_*``)."""

    model_config = SettingsConfigDict(env_prefix="PULSEBOARD_BACKEND_", extra="forbid")

    url: str = Field(
        default="http://localhost:54321",
        description="Base URL of the data service; the REST API lives under /rest/v1",
    )
    api_key: str | None = Field(
        default=None, description="API key sent as the apikey header and bearer token"
    )
    schema_name: str = Field(default="public", description="Database schema to query")
    timeout_s: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    retry_attempts: int = Field(
        default=3, ge=1, le=10, description="Attempts per request on transport errors"
    )
    retry_wait_s: float = Field(
        default=0.2, ge=0, description="Initial exponential backoff between attempts"
    )
    projects_table: str = Field(default="projects", description="Projects table name")
    profiles_table: str = Field(default="profiles", description="Profiles table name")

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class CacheConfig(BaseSettings):
    """Memoization and revalidation toggles (``PULSEBOARD_CACHE_*``)."""

    model_config = SettingsConfigDict(env_prefix="PULSEBOARD_CACHE_", extra="forbid")

    revalidate: bool = Field(
        default=True, description="Refresh loaded data in the background after every load"
    )
    invalidate_on_error: bool = Field(
        default=True, description="Drop the memoized entry of a failed load so it is retried"
    )
    version_field: str | None = Field(
        default=None,
        description="Entity field compared instead of the full payload during revalidation",
    )


class ObservabilityConfig(BaseSettings):
    """Logging and metrics toggles (``PULSEBOARD_*`` namespace)."""

    model_config = SettingsConfigDict(env_prefix="PULSEBOARD_", extra="forbid")

    log_level: str = Field(default="INFO", description="Logging level name")
    log_format: str = Field(default="json", description="Logging format ('json' or 'text')")
    metrics_enabled: bool = Field(default=True, description="Record Prometheus metrics")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            message = f"Unknown log level: {value}"
            raise ValueError(message)
        return level

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in {"json", "text"}:
            message = f"log_format must be 'json' or 'text', got {value!r}"
            raise ValueError(message)
        return value


class RuntimeSettings(BaseSettings):
    """Aggregate runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PULSEBOARD_",
        env_nested_delimiter="__",
        extra="forbid",
        case_sensitive=False,
    )

    backend: BackendConfig = Field(
        default_factory=BackendConfig, description="Data service configuration"
    )
    cache: CacheConfig = Field(default_factory=CacheConfig, description="Cache behaviour")
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig, description="Observability configuration"
    )

    def __init__(self, **overrides: object) -> None:
        """Initialise settings, converting validation failures into :class:`SettingsError`."""
        try:
            super().__init__(**overrides)  # type: ignore[arg-type]
        except ValueError as exc:
            msg = f"Configuration validation failed: {exc}"
            logger.log_failure("Settings validation failed", exception=exc, operation="settings")
            raise SettingsError(
                msg,
                cause=exc,
                context={"validation_error": str(exc)},
            ) from exc


def load_settings(**overrides: object) -> RuntimeSettings:
    """Load :class:`RuntimeSettings` with optional overrides."""
    return RuntimeSettings(**overrides)
