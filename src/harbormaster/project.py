"""Project identity, declared services and derived lifecycle phase.

A project is a directory holding a `.harbormaster/` folder with an optional
`config.toml` and the rendered `docker-compose.yaml`. Every declared role maps
to a deterministic container name, `local-<project>-<role>`, which anything
inspecting containers externally can rely on.

The lifecycle phase is never stored. It is derived from the container states
the runtime reports, see derive_phase().
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

import tomli
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from harbormaster.errors import ConfigError

CONFIG_DIR_NAME = ".harbormaster"
CONFIG_FILE_NAME = "config.toml"
COMPOSE_FILE_NAME = "docker-compose.yaml"
CONTAINER_NAME_TEMPLATE = "local-{project}-{role}"

_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")
_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9_.-]+")

REQUIRED_ROLES = ("web", "db")


class AppType(str, Enum):
    """Application flavours with a known file-storage layout."""

    DRUPAL7 = "drupal7"
    DRUPAL8 = "drupal8"
    WORDPRESS = "wordpress"
    PHP = "php"


# Upload directory relative to the docroot, per application type
DEFAULT_FILES_DIRS: dict[AppType, str] = {
    AppType.DRUPAL7: "sites/default/files",
    AppType.DRUPAL8: "sites/default/files",
    AppType.WORDPRESS: "wp-content/uploads",
    AppType.PHP: "files",
}


class ProjectPhase(str, Enum):
    """Lifecycle phase of a project, derived from runtime state.

    Attributes:
        UNINITIALIZED: No project has been loaded
        INITIALIZED: Project loaded, nothing started yet
        STARTING: Containers created but not all running yet
        RUNNING: Every declared container is running
        PARTIALLY_RUNNING: Some containers running, others stopped or absent
        STOPPING: At least one container is being removed
        STOPPED: Containers exist but none is running
        REMOVED: No declared container exists
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    STARTING = "starting"
    RUNNING = "running"
    PARTIALLY_RUNNING = "partially_running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    REMOVED = "removed"


class ProjectConfig(BaseModel):
    """Contents of `.harbormaster/config.toml`.

    Attributes:
        name: Project name; derived from the directory when omitted
        app_type: Application flavour, selects the default files directory
        docroot: Web root relative to the project directory
        services: Ordered roles; web and db are always present
        files_dir: Upload directory relative to the docroot
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None)
    app_type: AppType = Field(default=AppType.PHP)
    docroot: str = Field(default="")
    services: list[str] = Field(default_factory=lambda: list(REQUIRED_ROLES))
    files_dir: str | None = Field(default=None)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str | None) -> str | None:
        """Project names become part of container names."""
        if v is not None and not _NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid project name: {v!r}. Use lowercase letters, digits, '_', '.' or '-'"
            )
        return v

    @field_validator("services")
    @classmethod
    def validate_services(cls, v: list[str]) -> list[str]:
        """Keep declared order, drop duplicates and guarantee web and db."""
        roles: list[str] = []
        for role in [*REQUIRED_ROLES, *v]:
            if not _NAME_PATTERN.match(role):
                raise ValueError(f"Invalid service role: {role!r}")
            if role not in roles:
                roles.append(role)
        return roles

    @field_validator("docroot", "files_dir")
    @classmethod
    def validate_relative(cls, v: str | None) -> str | None:
        if v is not None and (Path(v).is_absolute() or ".." in Path(v).parts):
            raise ValueError(f"Path must be relative to the project: {v}")
        return v


class Service(BaseModel):
    """A declared service role and its container."""

    role: str
    container_name: str

    def expected_state(self, phase: ProjectPhase) -> str | None:
        """Container state expected for a project phase (None = absent)."""
        if phase == ProjectPhase.RUNNING:
            return "running"
        if phase == ProjectPhase.STOPPED:
            return "exited"
        return None


class Project(BaseModel):
    """A resolved local project.

    Attributes:
        name: Unique project name
        directory: Absolute project working directory
        app_type: Application flavour
        docroot: Web root relative to directory
        files_dir: Upload directory relative to the docroot
        services: Declared services in start order
    """

    name: str
    directory: Path
    app_type: AppType
    docroot: str
    files_dir: str
    services: list[Service]

    @property
    def config_dir(self) -> Path:
        return self.directory / CONFIG_DIR_NAME

    @property
    def compose_path(self) -> Path:
        """Location of the rendered compose specification."""
        return self.config_dir / COMPOSE_FILE_NAME

    @property
    def compose_overlays(self) -> list[Path]:
        """Add-on compose files (`docker-compose.<addon>.yaml`), sorted."""
        if not self.config_dir.is_dir():
            return []
        return sorted(self.config_dir.glob("docker-compose.*.yaml"))

    @property
    def compose_project_name(self) -> str:
        return f"local-{self.name}"

    @property
    def files_path(self) -> Path:
        """Host directory backing the web service's file storage."""
        return self.directory / self.docroot / self.files_dir

    @property
    def container_names(self) -> list[str]:
        return [service.container_name for service in self.services]

    def service(self, role: str) -> Service:
        """Look up a declared service by role.

        Raises:
            ConfigError: If the role is not declared
        """
        for service in self.services:
            if service.role == role:
                return service
        raise ConfigError(f"Project {self.name} does not declare a {role} service")


def container_name(project: str, role: str) -> str:
    """Derive the container name for a project role."""
    return CONTAINER_NAME_TEMPLATE.format(project=project, role=role)


def derive_name(directory: Path) -> str:
    """Derive a container-safe project name from a directory basename."""
    name = _INVALID_NAME_CHARS.sub("-", directory.name.lower()).strip("-_.")
    if not name:
        raise ConfigError(f"Cannot derive a project name from {directory}")
    return name


def load_project(directory: Path) -> Project:
    """Load or derive a project from its working directory.

    Args:
        directory: Project directory; `.harbormaster/config.toml` is optional

    Returns:
        Resolved Project with absolute paths and declared services

    Raises:
        ConfigError: If the directory is missing or the config is invalid
    """
    directory = directory.expanduser().resolve()
    if not directory.is_dir():
        raise ConfigError(f"Project directory not found: {directory}")

    config_file = directory / CONFIG_DIR_NAME / CONFIG_FILE_NAME
    data: dict = {}
    if config_file.exists():
        try:
            with open(config_file, "rb") as f:
                data = tomli.load(f)
        except (OSError, tomli.TOMLDecodeError) as e:
            raise ConfigError(f"Unreadable project config {config_file}: {e}") from e

    try:
        config = ProjectConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid project config {config_file}: {e}") from e

    name = config.name or derive_name(directory)
    files_dir = config.files_dir or DEFAULT_FILES_DIRS[config.app_type]

    return Project(
        name=name,
        directory=directory,
        app_type=config.app_type,
        docroot=config.docroot,
        files_dir=files_dir,
        services=[
            Service(role=role, container_name=container_name(name, role))
            for role in config.services
        ],
    )


def derive_phase(states: Mapping[str, str | None]) -> ProjectPhase:
    """Derive the project phase from observed container states.

    Args:
        states: Container name to runtime state, None when absent

    Returns:
        The phase the observed states correspond to
    """
    values = list(states.values())
    if not values or all(state is None for state in values):
        return ProjectPhase.REMOVED
    if all(state == "running" for state in values):
        return ProjectPhase.RUNNING
    if any(state == "removing" for state in values):
        return ProjectPhase.STOPPING
    if any(state == "running" for state in values):
        return ProjectPhase.PARTIALLY_RUNNING
    if any(state in ("created", "restarting") for state in values):
        return ProjectPhase.STARTING
    return ProjectPhase.STOPPED
