"""Settings for harbormaster.

Settings are grouped in sections, each a pydantic-settings model that can be
set from the TOML file or overridden per key from the environment:

    [docker]
    network_name = "harbormaster_default"

    [wait]
    timeout_seconds = 120

    HARBORMASTER_DOCKER__ROOTLESS=true
    HARBORMASTER_WAIT__TIMEOUT_SECONDS=30

Explicit constructor arguments win over the environment, which wins over the
file, which wins over the defaults below. Per-project settings (name, app type,
services) live in the project's own `.harbormaster/config.toml`, see
harbormaster.project.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("console", "json")

CONFIG_FILE_NAME = "harbormaster.toml"
USER_CONFIG_PATH = Path("~/.config/harbormaster/config.toml")


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Minimum level emitted
        format: console for people, json for log shippers
        file: Rotated log file; stderr when None
        rotation_size_mb: Size at which the log file rotates
        retention_count: Rotated files kept
    """

    model_config = SettingsConfigDict(
        env_prefix="HARBORMASTER_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=10, ge=1, le=1000)
    retention_count: int = Field(default=5, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Use one of {', '.join(LOG_LEVELS)}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in LOG_FORMATS:
            raise ValueError(f"Invalid log format: {v}. Use one of {', '.join(LOG_FORMATS)}")
        return v.lower()


class DockerConfig(BaseSettings):
    """Container runtime configuration.

    Attributes:
        rootless: Prefer the rootless Docker daemon socket
        network_name: Shared network joined by every local project
        compose_timeout_seconds: Timeout for a single docker compose command
        web_image: Image used for rendered web services
        db_image: Image used for rendered database services
    """

    model_config = SettingsConfigDict(
        env_prefix="HARBORMASTER_DOCKER__",
        extra="forbid",
    )

    rootless: bool = Field(default=False)
    network_name: str = Field(default="harbormaster_default", min_length=1)
    compose_timeout_seconds: int = Field(default=300, ge=10, le=3600)
    web_image: str = Field(default="php:8.2-apache")
    db_image: str = Field(default="mariadb:10.11")


class WaitConfig(BaseSettings):
    """Readiness polling configuration.

    Attributes:
        timeout_seconds: Default deadline for a wait call
        interval_seconds: Initial delay between polls
        backoff_factor: Multiplier applied to the delay after each poll
        max_interval_seconds: Upper bound on the delay between polls
    """

    model_config = SettingsConfigDict(
        env_prefix="HARBORMASTER_WAIT__",
        extra="forbid",
    )

    timeout_seconds: float = Field(default=60.0, gt=0.0, le=3600.0)
    interval_seconds: float = Field(default=0.5, gt=0.0, le=60.0)
    backoff_factor: float = Field(default=1.5, ge=1.0, le=10.0)
    max_interval_seconds: float = Field(default=5.0, gt=0.0, le=300.0)

    @model_validator(mode="after")
    def validate_intervals(self) -> WaitConfig:
        """Ensure the initial interval does not exceed the cap."""
        if self.interval_seconds > self.max_interval_seconds:
            raise ValueError("interval_seconds must not exceed max_interval_seconds")
        return self


class ImportConfig(BaseSettings):
    """Archive import configuration.

    Attributes:
        db_name: Database that receives imported dumps
        db_user: Database user used by the import client
        db_password: Password for db_user
        db_client: Client binary executed inside the db container
        timeout_seconds: Timeout for a single import command
    """

    model_config = SettingsConfigDict(
        env_prefix="HARBORMASTER_IMPORTS__",
        extra="forbid",
    )

    db_name: str = Field(default="data", pattern=r"^[A-Za-z0-9_]+$")
    db_user: str = Field(default="root")
    db_password: str = Field(default="root")
    db_client: str = Field(default="mysql")
    timeout_seconds: int = Field(default=1800, ge=10, le=86400)


class HarbormasterConfig(BaseSettings):
    """Root configuration for Harbormaster.

    Environment variable format for nested config:
        HARBORMASTER_<SECTION>__<KEY>=value

    Example:
        HARBORMASTER_DOCKER__NETWORK_NAME="shared_dev"
        HARBORMASTER_WAIT__TIMEOUT_SECONDS=90
    """

    model_config = SettingsConfigDict(
        env_prefix="HARBORMASTER_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    wait: WaitConfig = Field(default_factory=WaitConfig)
    imports: ImportConfig = Field(default_factory=ImportConfig)


def _candidate_paths() -> list[Path]:
    return [Path.cwd() / CONFIG_FILE_NAME, USER_CONFIG_PATH.expanduser()]


def _overlay(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Merge overrides into base, section by section."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _overlay(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path | None = None) -> HarbormasterConfig:
    """Load settings from a TOML file, with environment overrides applied.

    Without an explicit path, ./harbormaster.toml is used when present, then
    ~/.config/harbormaster/config.toml; with neither, defaults and the
    environment alone apply. HARBORMASTER_* variables win over the file.

    Args:
        config_path: Explicit TOML file

    Returns:
        Resolved HarbormasterConfig

    Raises:
        FileNotFoundError: If config_path is given but missing
        ValueError: If the file is not valid TOML or holds invalid settings
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    source = config_path or next((p for p in _candidate_paths() if p.exists()), None)
    where = f" in {source}" if source is not None else ""

    data: dict[str, Any] = {}
    if source is not None:
        try:
            with open(source, "rb") as f:
                data = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ValueError(f"Invalid configuration{where}: {e}") from e

    try:
        if not data:
            return HarbormasterConfig()
        # Constructor arguments outrank the environment, so only the keys the
        # environment actually sets are layered over the file
        from_env = HarbormasterConfig().model_dump(exclude_unset=True)
        return HarbormasterConfig(**_overlay(data, from_env))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration{where}: {e}") from e
