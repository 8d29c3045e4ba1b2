"""Read-only container state queries.

ContainerInspector is the single read path for container state, used by the
lifecycle's wait loop and phase derivation as well as by external checks. It
lists every container the runtime knows about, including stopped ones, and
never mutates anything.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from docker.errors import APIError
from pydantic import BaseModel, Field

from harbormaster.errors import (
    ContainerNotFoundError,
    RuntimeUnavailable,
    StateMismatchError,
)
from harbormaster.logging import get_logger
from harbormaster.runtime.client import RuntimeClient


class ContainerStatus(str, Enum):
    """Status of a Docker container as reported by the runtime.

    Attributes:
        RUNNING: Container is running
        PAUSED: Container is paused
        RESTARTING: Container is restarting
        EXITED: Container has exited
        DEAD: Container is dead (non-recoverable error state)
        CREATED: Container has been created but not started
        REMOVING: Container is being removed
    """

    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    EXITED = "exited"
    DEAD = "dead"
    CREATED = "created"
    REMOVING = "removing"


class ContainerState(BaseModel):
    """Observed state of a named container.

    Attributes:
        name: Container name without the runtime's leading separator
        exists: Whether the runtime knows the container
        state: Runtime state (None when absent)
    """

    name: str = Field(description="Container name")
    exists: bool = Field(description="Container exists")
    state: str | None = Field(default=None, description="Runtime state")


def _container_name(entry: dict) -> str | None:
    names = entry.get("Names") or []
    if not names:
        return None
    # The runtime reports names as "/local-site-web"
    return names[0].lstrip("/")


class ContainerInspector:
    """Stateless, read-only inspector for named containers.

    Attributes:
        runtime: Shared runtime client
        logger: Structured logger instance
    """

    def __init__(self, runtime: RuntimeClient) -> None:
        self.runtime = runtime
        self.logger = get_logger(__name__)

    async def list_states(self) -> dict[str, str]:
        """List every container, stopped ones included.

        Returns:
            Mapping of container name to runtime state

        Raises:
            RuntimeUnavailable: If the daemon cannot be reached or errors
        """
        try:
            entries = await self.runtime.call("inspect", "api.containers", all=True)
        except APIError as e:
            raise RuntimeUnavailable("inspect", str(e)) from e

        states: dict[str, str] = {}
        for entry in entries:
            name = _container_name(entry)
            if name is not None:
                states[name] = str(entry.get("State", "")).lower()
        return states

    async def inspect(self, name: str) -> ContainerState:
        """Report a container's state without raising when it is absent."""
        states = await self.list_states()
        if name not in states:
            return ContainerState(name=name, exists=False)
        return ContainerState(name=name, exists=True, state=states[name])

    async def inspect_many(self, names: Iterable[str]) -> dict[str, str | None]:
        """Report the state of several containers from a single listing.

        Returns:
            Container name to state, None for absent containers, in input order
        """
        states = await self.list_states()
        return {name: states.get(name) for name in names}

    async def check_container(
        self, name: str, expected_state: str | ContainerStatus = ContainerStatus.RUNNING
    ) -> ContainerState:
        """Check that a container exists and is in the expected state.

        Args:
            name: Exact container name
            expected_state: State the container must be in

        Returns:
            ContainerState for the matching container

        Raises:
            ContainerNotFoundError: If the container does not exist
            StateMismatchError: If it exists in a different state
        """
        expected = ContainerStatus(expected_state).value
        observed = await self.inspect(name)

        if not observed.exists:
            self.logger.debug("container_not_found", container=name)
            raise ContainerNotFoundError(name)

        if observed.state != expected:
            self.logger.debug(
                "container_state_mismatch",
                container=name,
                actual=observed.state,
                expected=expected,
            )
            raise StateMismatchError(name, observed.state or "unknown", expected)

        return observed
