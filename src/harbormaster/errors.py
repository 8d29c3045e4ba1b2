"""Exception hierarchy for Harbormaster.

Every error raised by the lifecycle orchestrator and its controllers derives
from HarbormasterError. Errors carry the container, service or operation they
concern so the CLI can report them without further context.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path


class HarbormasterError(Exception):
    """Base exception for Harbormaster errors."""

    pass


class ConfigError(HarbormasterError):
    """Raised when a project cannot be initialized or its config is invalid."""

    pass


class RuntimeUnavailable(HarbormasterError):
    """Raised when the container runtime cannot be reached.

    Attributes:
        operation: Operation that needed the runtime
    """

    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Container runtime unavailable during {operation}: {detail}")


class NetworkRaceBenign(HarbormasterError):
    """Raised internally when another caller created the network first."""

    def __init__(self, network: str) -> None:
        self.network = network
        super().__init__(f"Network {network} already exists")


class NetworkError(HarbormasterError):
    """Raised when the shared network cannot be listed or created."""

    def __init__(self, network: str, detail: str) -> None:
        self.network = network
        self.detail = detail
        super().__init__(f"Unable to ensure network {network}: {detail}")


class ContainerNotFoundError(HarbormasterError):
    """Raised when a named container does not exist."""

    def __init__(self, container: str) -> None:
        self.container = container
        super().__init__(f"Unable to find container {container}")


class StateMismatchError(HarbormasterError):
    """Raised when a container exists but is in an unexpected state.

    Attributes:
        container: Container name
        actual: State reported by the runtime
        expected: State the caller asked for
    """

    def __init__(self, container: str, actual: str, expected: str) -> None:
        self.container = container
        self.actual = actual
        self.expected = expected
        super().__init__(f"Container {container} returned {actual}, expected {expected}")


class ComposeCommandError(HarbormasterError):
    """Raised when a docker compose command fails.

    Attributes:
        action: Compose action that failed (up, stop, down, exec)
        stderr: Trimmed stderr from the compose command
        services: Observed state per service at failure time (None = absent)
    """

    def __init__(
        self,
        action: str,
        stderr: str,
        services: Mapping[str, str | None] | None = None,
    ) -> None:
        self.action = action
        self.stderr = stderr
        self.services = dict(services or {})
        msg = f"docker compose {action} failed: {stderr.strip() or 'no error output'}"
        failed = [name for name, state in self.services.items() if state != "running"]
        if action == "up" and failed:
            msg += f" (services not running: {', '.join(failed)})"
        super().__init__(msg)


class WaitTimeoutError(HarbormasterError):
    """Raised when services do not all reach running before the deadline.

    Attributes:
        project: Project name
        unready: Container name to last observed state (None = absent)
        timeout_seconds: Deadline that was exhausted
    """

    def __init__(
        self, project: str, unready: Mapping[str, str | None], timeout_seconds: float
    ) -> None:
        self.project = project
        self.unready = dict(unready)
        self.timeout_seconds = timeout_seconds
        details = ", ".join(
            f"{name} ({state or 'absent'})" for name, state in self.unready.items()
        )
        super().__init__(
            f"Project {project} not ready after {timeout_seconds}s; "
            f"services never reached running: {details}"
        )


class PreconditionFailedError(HarbormasterError):
    """Raised when an import targets a service that is not running."""

    def __init__(self, operation: str, container: str, detail: str) -> None:
        self.operation = operation
        self.container = container
        super().__init__(f"Cannot {operation}: container {container} is not running ({detail})")


class ImportFailureError(HarbormasterError):
    """Raised when archive extraction or loading fails.

    The target data is left in an undefined state; no rollback is attempted.
    """

    def __init__(self, target: str, archive: Path, detail: str) -> None:
        self.target = target
        self.archive = archive
        self.detail = detail
        super().__init__(
            f"Import of {archive} into {target} failed: {detail}. "
            f"The {target} contents are now in an undefined state."
        )
