"""Project lifecycle orchestration.

ProjectLifecycle composes the runtime controllers into the public operations:
init, start, wait, stop, down, import_db and import_files. It declares the
desired state of a project and drives the runtime toward it; the observed
phase is always recomputed from the containers the runtime reports and never
cached, since containers may be changed out-of-band.

Start only requests the containers. Readiness is established by wait, which
polls the inspector with bounded backoff until every declared service is
running or the deadline passes. Callers that need a usable environment must
call wait and treat its failure as "not usable".

Example usage:
    >>> lifecycle = ProjectLifecycle(load_config())
    >>> project = lifecycle.init(Path("~/sites/site1"))
    >>> await lifecycle.start()
    >>> await lifecycle.wait(timeout_seconds=60)
    >>> await lifecycle.import_db(Path("/tmp/db.tar.gz"))
    >>> await lifecycle.stop()
    >>> await lifecycle.down()
    >>> await lifecycle.close()
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

from pydantic import BaseModel, Field

from harbormaster.config import HarbormasterConfig
from harbormaster.errors import ConfigError, WaitTimeoutError
from harbormaster.logging import bind_project_context, clear_project_context, get_logger
from harbormaster.project import Project, ProjectPhase, derive_phase, load_project
from harbormaster.runtime.client import RuntimeClient
from harbormaster.runtime.compose import ComposeAction, ComposeController
from harbormaster.runtime.imports import ImportPipeline, ImportResult
from harbormaster.runtime.inspector import ContainerInspector
from harbormaster.runtime.network import NetworkManager
from harbormaster.runtime.render import ComposeRenderer, undefined_roles


class ServiceReport(BaseModel):
    """Observed state of one declared service.

    Attributes:
        role: Service role (web, db, ...)
        container: Container name
        state: Runtime state, None when the container is absent
    """

    role: str = Field(description="Service role")
    container: str = Field(description="Container name")
    state: str | None = Field(default=None, description="Runtime state")


class ProjectStatus(BaseModel):
    """Observed status of a project.

    Attributes:
        project: Project name
        directory: Project directory
        phase: Phase derived from the service states
        services: Per-service observations in declared order
    """

    project: str = Field(description="Project name")
    directory: Path = Field(description="Project directory")
    phase: ProjectPhase = Field(description="Derived phase")
    services: list[ServiceReport] = Field(default_factory=list, description="Services")


class ReadinessReport(BaseModel):
    """Result of a successful wait.

    Attributes:
        project: Project name
        phase: Phase at the end of the wait (always RUNNING)
        services: Container name to state
        attempts: Number of polls performed
        elapsed_seconds: Time spent waiting
    """

    project: str = Field(description="Project name")
    phase: ProjectPhase = Field(description="Derived phase")
    services: dict[str, str | None] = Field(default_factory=dict, description="Service states")
    attempts: int = Field(default=0, ge=0, description="Polls performed")
    elapsed_seconds: float = Field(default=0.0, ge=0.0, description="Time spent waiting")


class ProjectLifecycle:
    """Lifecycle orchestrator for one local project.

    Attributes:
        config: Harbormaster configuration
        runtime: Shared runtime client
        network: Shared network manager
        inspector: Read-only container inspector
        renderer: Default compose file renderer
        project: Project loaded by init, None before
    """

    def __init__(
        self, config: HarbormasterConfig, runtime: RuntimeClient | None = None
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Harbormaster configuration
            runtime: Runtime client to share; one is created when omitted
        """
        self.config = config
        self.runtime = runtime or RuntimeClient(config.docker)
        self.network = NetworkManager(self.runtime)
        self.inspector = ContainerInspector(self.runtime)
        self.renderer = ComposeRenderer(config.docker, config.imports)
        self.logger = get_logger(__name__)

        self.project: Project | None = None
        self.compose: ComposeController | None = None
        self.imports: ImportPipeline | None = None

    def init(self, directory: Path, render: bool = True) -> Project:
        """Load or derive the project rooted at a directory.

        Args:
            directory: Project working directory
            render: Render a default compose file when none exists

        Returns:
            The resolved Project

        Raises:
            ConfigError: If the directory is missing or its config is invalid
        """
        project = load_project(directory)
        if render:
            self.renderer.write(project)

        self.project = project
        self.compose = ComposeController(self.config.docker, project)
        self.imports = ImportPipeline(self.config.imports, project, self.inspector, self.compose)

        bind_project_context(project.name, "init")
        self.logger.info(
            "project_initialized",
            directory=str(project.directory),
            services=[s.role for s in project.services],
            compose_file=str(project.compose_path),
            phase=ProjectPhase.INITIALIZED.value,
        )
        missing = undefined_roles(project)
        if missing:
            self.logger.warning(
                "service_definition_missing",
                roles=missing,
                overlay_pattern=str(project.config_dir / "docker-compose.<addon>.yaml"),
            )
        return project

    def _require_project(self) -> Project:
        if self.project is None:
            raise ConfigError("No project initialized; call init() first")
        return self.project

    async def observe(self) -> dict[str, str | None]:
        """Observe the runtime state of every declared container."""
        project = self._require_project()
        return await self.inspector.inspect_many(project.container_names)

    async def phase(self) -> ProjectPhase:
        """Derive the current phase from the runtime."""
        if self.project is None:
            return ProjectPhase.UNINITIALIZED
        return derive_phase(await self.observe())

    async def status(self) -> ProjectStatus:
        """Report the derived phase and per-service states."""
        project = self._require_project()
        states = await self.observe()
        return ProjectStatus(
            project=project.name,
            directory=project.directory,
            phase=derive_phase(states),
            services=[
                ServiceReport(
                    role=service.role,
                    container=service.container_name,
                    state=states[service.container_name],
                )
                for service in project.services
            ],
        )

    async def start(self) -> ComposeAction:
        """Ensure the shared network, then bring every service up.

        Safe on a project that is already running. Does not wait for
        readiness; call wait() afterwards.

        Raises:
            NetworkError: If the shared network cannot be ensured
            RuntimeUnavailable: If the runtime cannot be reached
            ComposeCommandError: If a service fails to start
        """
        project = self._require_project()
        bind_project_context(project.name, "start")

        previous = await self.phase()
        self.logger.info("project_start_requested", phase=previous.value)

        await self.network.ensure_network(self.config.docker.network_name)
        action = await self.compose.up()

        self.logger.info("project_starting", phase=ProjectPhase.STARTING.value)
        return action

    async def wait(self, timeout_seconds: float | None = None) -> ReadinessReport:
        """Poll until every declared service is running or the deadline passes.

        The delay between polls grows by the configured backoff factor up to
        the configured maximum interval.

        Args:
            timeout_seconds: Deadline for the wait (config default when None)

        Returns:
            ReadinessReport once every service is running

        Raises:
            WaitTimeoutError: Listing the services that never reached running
            RuntimeUnavailable: If the runtime cannot be reached
        """
        project = self._require_project()
        bind_project_context(project.name, "wait")

        wait_config = self.config.wait
        timeout = wait_config.timeout_seconds if timeout_seconds is None else timeout_seconds
        start_time = time.monotonic()
        deadline = start_time + timeout
        interval = wait_config.interval_seconds
        attempt = 0

        self.logger.info("wait_started", timeout_seconds=timeout)

        while True:
            attempt += 1
            states = await self.observe()
            unready = {
                service.container_name: states[service.container_name]
                for service in project.services
                if states[service.container_name]
                != service.expected_state(ProjectPhase.RUNNING)
            }
            elapsed = time.monotonic() - start_time

            if not unready:
                self.logger.info(
                    "wait_succeeded",
                    attempts=attempt,
                    elapsed_seconds=round(elapsed, 2),
                )
                return ReadinessReport(
                    project=project.name,
                    phase=ProjectPhase.RUNNING,
                    services=states,
                    attempts=attempt,
                    elapsed_seconds=elapsed,
                )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.logger.error(
                    "wait_timeout",
                    attempts=attempt,
                    phase=derive_phase(states).value,
                    unready=unready,
                )
                raise WaitTimeoutError(project.name, unready, timeout)

            self.logger.debug("wait_poll", attempt=attempt, unready=unready)
            await asyncio.sleep(min(interval, remaining))
            interval = min(interval * wait_config.backoff_factor, wait_config.max_interval_seconds)

    async def stop(self) -> ComposeAction:
        """Stop every service, keeping the containers. Idempotent."""
        project = self._require_project()
        bind_project_context(project.name, "stop")

        action = await self.compose.stop()
        self.logger.info("project_stopped", phase=ProjectPhase.STOPPED.value)
        return action

    async def down(self) -> ComposeAction:
        """Stop and remove every service. Idempotent; keeps the shared network."""
        project = self._require_project()
        bind_project_context(project.name, "down")

        action = await self.compose.down()
        self.logger.info("project_removed", phase=ProjectPhase.REMOVED.value)
        return action

    async def import_db(self, archive: Path) -> ImportResult:
        """Import a database archive into the running db service."""
        project = self._require_project()
        bind_project_context(project.name, "import_db")
        return await self.imports.import_db(archive)

    async def import_files(self, archive: Path) -> ImportResult:
        """Import a files archive into the running web service's storage."""
        project = self._require_project()
        bind_project_context(project.name, "import_files")
        return await self.imports.import_files(archive)

    async def close(self) -> None:
        """Release the runtime client."""
        await self.runtime.close()
        clear_project_context()
