"""
Shared configuration management for the Prometheus Unified Exporter.
"""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PUE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class ExporterSettings(BaseConfig):
    """Exporter process settings read from the environment."""

    # Path of the YAML document describing listen address and targets.
    config_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("PUE_CONFIG", "config_path")
    )

    # Upstream fetching. Zero disables the timeout / the concurrency cap.
    fetch_timeout_seconds: float = Field(default=10.0, ge=0)
    max_concurrency: int = Field(default=0, ge=0)


def get_settings(**overrides) -> ExporterSettings:
    """Get exporter settings, optionally overriding environment values."""
    return ExporterSettings(**overrides)
