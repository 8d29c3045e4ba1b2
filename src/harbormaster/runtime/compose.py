"""Docker Compose control for a single project.

ComposeController owns the project's compose artifact path and mutates
container existence through the `docker compose` CLI: up creates and starts,
stop stops without removing, down stops and removes. All three converge on the
desired state, so repeating them is safe.

The shared network is declared external in the compose file, so down never
removes it.

Example usage:
    >>> controller = ComposeController(config.docker, project)
    >>> await controller.up()
    >>> await controller.stop()
    >>> await controller.down()
"""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import IO

from pydantic import BaseModel, Field

from harbormaster.config import DockerConfig
from harbormaster.errors import ComposeCommandError, ConfigError, RuntimeUnavailable
from harbormaster.logging import get_logger
from harbormaster.project import Project

# stderr fragments that mean the daemon itself is unreachable
_UNAVAILABLE_MARKERS = (
    "cannot connect to the docker daemon",
    "is the docker daemon running",
    "permission denied while trying to connect",
    "error during connect",
)


class ComposeAction(BaseModel):
    """Result of a Docker Compose project operation.

    Attributes:
        success: Whether the operation completed successfully
        project: Project name
        action: Action performed (up, stop, down)
        services: Container name to state after the action (None = absent)
        duration_seconds: Time taken for the operation
    """

    success: bool = Field(description="Operation success flag")
    project: str = Field(description="Project name")
    action: str = Field(description="Action performed")
    services: dict[str, str | None] = Field(default_factory=dict, description="Service states")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Operation duration")


def parse_ps_output(stdout: str) -> dict[str, str]:
    """Parse `docker compose ps --format json` output.

    Newer Compose releases print one JSON object per line, older ones a single
    JSON array; both are accepted.

    Returns:
        Container name to state
    """
    text = stdout.strip()
    if not text:
        return {}

    if text.startswith("["):
        entries = json.loads(text)
    else:
        entries = [json.loads(line) for line in text.splitlines() if line.strip()]

    return {
        entry["Name"]: str(entry.get("State", "")).lower()
        for entry in entries
        if entry.get("Name")
    }


class ComposeController:
    """Async Docker Compose controller for one project.

    Attributes:
        config: Docker configuration from HarbormasterConfig
        project: Project whose compose file is controlled
        logger: Structured logger instance
    """

    def __init__(self, config: DockerConfig, project: Project) -> None:
        self.config = config
        self.project = project
        self.logger = get_logger(__name__)

    @property
    def compose_file(self) -> Path:
        return self.project.compose_path

    def _base_command(self) -> list[str]:
        cmd = [
            "docker",
            "compose",
            "-p",
            self.project.compose_project_name,
            "-f",
            str(self.compose_file),
        ]
        for overlay in self.project.compose_overlays:
            cmd.extend(["-f", str(overlay)])
        return cmd

    async def _run_compose_command(
        self, *args: str, timeout: int | None = None, stdin: IO[bytes] | None = None
    ) -> tuple[bool, str, str]:
        """Run a docker compose command via subprocess.

        Args:
            *args: Command arguments to pass to docker compose
            timeout: Command timeout in seconds (config default when None)
            stdin: Open binary file streamed to the command's stdin

        Returns:
            Tuple of (success, stdout, stderr)

        Raises:
            RuntimeUnavailable: If the docker CLI is not installed
        """
        timeout = timeout or self.config.compose_timeout_seconds
        cmd = [*self._base_command(), *args]

        self.logger.debug(
            "running_compose_command",
            command=" ".join(cmd),
            timeout=timeout,
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self.project.directory),
                stdin=stdin if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            self.logger.error("compose_command_not_found")
            raise RuntimeUnavailable(
                args[0] if args else "compose",
                "docker compose command not found. Is Docker installed?",
            ) from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            self.logger.error(
                "compose_command_timeout",
                command=" ".join(cmd),
                timeout=timeout,
            )
            return False, "", f"Command timed out after {timeout} seconds"

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        success = proc.returncode == 0

        if not success:
            self.logger.error(
                "compose_command_failed",
                command=" ".join(cmd),
                returncode=proc.returncode,
                stderr=stderr[:500],
            )
        else:
            self.logger.debug("compose_command_succeeded", command=" ".join(cmd))

        return success, stdout, stderr

    def _require_compose_file(self) -> None:
        if not self.compose_file.exists():
            raise ConfigError(f"Compose file not found: {self.compose_file}")

    def _raise_if_unavailable(self, action: str, stderr: str) -> None:
        lowered = stderr.lower()
        if any(marker in lowered for marker in _UNAVAILABLE_MARKERS):
            raise RuntimeUnavailable(action, stderr.strip()[:500])

    async def service_states(self) -> dict[str, str | None]:
        """Report the compose-level state of every declared container.

        Returns:
            Container name to state, None when the container is absent
        """
        success, stdout, stderr = await self._run_compose_command(
            "ps", "--all", "--format", "json"
        )
        if not success:
            self._raise_if_unavailable("ps", stderr)
            raise ComposeCommandError("ps", stderr)

        try:
            observed = parse_ps_output(stdout)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise ComposeCommandError("ps", f"unparseable output: {e}") from e

        return {name: observed.get(name) for name in self.project.container_names}

    async def _apply(self, action: str, *args: str) -> ComposeAction:
        start_time = time.monotonic()
        self._require_compose_file()

        self.logger.info(
            "compose_action_started",
            action=action,
            compose_file=str(self.compose_file),
            overlays=[str(p) for p in self.project.compose_overlays],
        )

        success, _, stderr = await self._run_compose_command(action, *args)
        if not success:
            self._raise_if_unavailable(action, stderr)
            services: dict[str, str | None] = {}
            if action == "up":
                # Name the services that did not come up
                try:
                    services = await self.service_states()
                except ComposeCommandError as e:
                    self.logger.warning("compose_status_unavailable", error=str(e))
            raise ComposeCommandError(action, stderr, services)

        duration = time.monotonic() - start_time
        self.logger.info(
            "compose_action_completed",
            action=action,
            duration_seconds=round(duration, 2),
        )
        return ComposeAction(
            success=True,
            project=self.project.name,
            action=action,
            duration_seconds=duration,
        )

    async def up(self) -> ComposeAction:
        """Create and start every declared service; no-op when already up.

        Raises:
            ConfigError: If the compose file is missing
            RuntimeUnavailable: If the runtime cannot be reached
            ComposeCommandError: If a service fails to start
        """
        return await self._apply("up", "-d", "--remove-orphans")

    async def stop(self) -> ComposeAction:
        """Stop, without removing, every declared service."""
        return await self._apply("stop")

    async def down(self) -> ComposeAction:
        """Stop and remove every declared service and project-scoped resource."""
        return await self._apply("down", "--remove-orphans")

    async def exec(
        self,
        role: str,
        *command: str,
        stdin_path: Path | None = None,
        timeout: int | None = None,
    ) -> str:
        """Run a command inside a running service.

        Args:
            role: Compose service name
            *command: Command and arguments
            stdin_path: File streamed to the command's stdin
            timeout: Command timeout in seconds

        Returns:
            The command's stdout

        Raises:
            ComposeCommandError: If the command exits non-zero
        """
        self._require_compose_file()
        args = ["exec", "-T", role, *command]

        if stdin_path is None:
            success, stdout, stderr = await self._run_compose_command(*args, timeout=timeout)
        else:
            with open(stdin_path, "rb") as handle:
                success, stdout, stderr = await self._run_compose_command(
                    *args, timeout=timeout, stdin=handle
                )

        if not success:
            self._raise_if_unavailable("exec", stderr)
            raise ComposeCommandError(f"exec {role}", stderr)
        return stdout
