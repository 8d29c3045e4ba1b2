"""Shared fixtures for integration tests.

The container runtime is replaced by in-memory fakes: FakeDockerClient stands
in for docker-py (networks and the low-level container listing), and
FakeComposeRuntime replaces the `docker compose` subprocess. Both act on the
same FakeRuntimeState, so compose actions are visible to the inspector.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError

from harbormaster.config import (
    DockerConfig,
    HarbormasterConfig,
    ImportConfig,
    LoggingConfig,
    WaitConfig,
)
from harbormaster.lifecycle import ProjectLifecycle
from harbormaster.runtime.client import RuntimeClient
from harbormaster.runtime.compose import ComposeController


class FakeRuntimeState:
    """Container and network state shared by the fakes.

    Attributes:
        containers: Container name to state
        networks: Names of existing networks
        pending: Container name to remaining listings before it is running
        network_creates: Successful network create calls
    """

    def __init__(self) -> None:
        self.containers: dict[str, str] = {}
        self.networks: set[str] = set()
        self.pending: dict[str, int] = {}
        self.network_creates = 0
        self.lock = threading.Lock()

    def listing(self) -> list[dict]:
        with self.lock:
            for name in list(self.pending):
                self.pending[name] -= 1
                if self.pending[name] <= 0:
                    del self.pending[name]
                    if self.containers.get(name) == "created":
                        self.containers[name] = "running"
            return [
                {"Names": [f"/{name}"], "State": state}
                for name, state in self.containers.items()
            ]


class FakeNetwork:
    def __init__(self, name: str) -> None:
        self.name = name


class FakeNetworks:
    """docker-py `client.networks` stand-in with daemon-side conflict detection."""

    def __init__(self, state: FakeRuntimeState) -> None:
        self.state = state
        self.stale_list = False
        self.list_error: APIError | None = None

    def list(self, names=None):
        if self.list_error is not None:
            raise self.list_error
        if self.stale_list:
            return []
        with self.state.lock:
            # The daemon filters by substring
            return [
                FakeNetwork(n)
                for n in sorted(self.state.networks)
                if not names or any(wanted in n for wanted in names)
            ]

    def create(self, name, driver=None):
        with self.state.lock:
            if name in self.state.networks:
                response = MagicMock(status_code=409)
                raise APIError(f"network with name {name} already exists", response=response)
            self.state.networks.add(name)
            self.state.network_creates += 1
        return FakeNetwork(name)


class FakeAPI:
    """Low-level `client.api` stand-in."""

    def __init__(self, state: FakeRuntimeState) -> None:
        self.state = state
        self.error: Exception | None = None

    def containers(self, all=False):
        if self.error is not None:
            raise self.error
        return self.state.listing()


class FakeDockerClient:
    """docker-py DockerClient stand-in backed by FakeRuntimeState."""

    def __init__(self, state: FakeRuntimeState) -> None:
        self.state = state
        self.networks = FakeNetworks(state)
        self.api = FakeAPI(state)
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeComposeRuntime:
    """Replacement for ComposeController._run_compose_command.

    Attributes:
        state: Shared runtime state
        start_delay: Listings a started container stays "created" for
        fail_roles: Roles whose container exits immediately on up
        exec_calls: (role, command, stdin bytes) for every exec
        exec_error: stderr returned by a failing exec, None for success
        commands: Every compose argument list received
    """

    def __init__(self, state: FakeRuntimeState) -> None:
        self.state = state
        self.start_delay = 0
        self.fail_roles: set[str] = set()
        self.exec_calls: list[tuple[str, tuple[str, ...], bytes | None]] = []
        self.exec_error: str | None = None
        self.commands: list[tuple[str, ...]] = []

    def install(self, monkeypatch: pytest.MonkeyPatch) -> None:
        runtime = self

        async def _run(controller, *args, timeout=None, stdin=None):
            return runtime.handle(controller, args, stdin)

        monkeypatch.setattr(ComposeController, "_run_compose_command", _run)

    def handle(self, controller: ComposeController, args: tuple[str, ...], stdin):
        self.commands.append(args)
        project = controller.project
        action = args[0]

        if action == "up":
            failed = False
            with self.state.lock:
                for service in project.services:
                    name = service.container_name
                    if service.role in self.fail_roles:
                        self.state.containers[name] = "exited"
                        failed = True
                    elif self.state.containers.get(name) == "running":
                        continue
                    elif self.start_delay:
                        self.state.containers[name] = "created"
                        self.state.pending[name] = self.start_delay
                    else:
                        self.state.containers[name] = "running"
            if failed:
                return False, "", "container exited with code 1"
            return True, "", ""

        if action == "stop":
            with self.state.lock:
                for name in project.container_names:
                    if name in self.state.containers:
                        self.state.containers[name] = "exited"
            return True, "", ""

        if action == "down":
            with self.state.lock:
                for name in project.container_names:
                    self.state.containers.pop(name, None)
            return True, "", ""

        if action == "ps":
            with self.state.lock:
                lines = [
                    json.dumps({"Name": name, "State": self.state.containers[name]})
                    for name in project.container_names
                    if name in self.state.containers
                ]
            return True, "\n".join(lines), ""

        if action == "exec":
            role = args[2]
            data = stdin.read() if stdin is not None else None
            self.exec_calls.append((role, tuple(args[3:]), data))
            if self.exec_error is not None:
                return False, "", self.exec_error
            return True, "", ""

        return False, "", f"unsupported compose action {action}"


@pytest.fixture
def test_config(tmp_path: Path) -> HarbormasterConfig:
    """Configuration with a short readiness deadline for fast tests."""
    return HarbormasterConfig(
        logging=LoggingConfig(level="DEBUG", format="console"),
        docker=DockerConfig(network_name="harbormaster_test"),
        wait=WaitConfig(
            timeout_seconds=2.0,
            interval_seconds=0.01,
            backoff_factor=1.5,
            max_interval_seconds=0.05,
        ),
        imports=ImportConfig(db_name="data"),
    )


@pytest.fixture
def runtime_state() -> FakeRuntimeState:
    return FakeRuntimeState()


@pytest.fixture
def fake_client(runtime_state: FakeRuntimeState) -> FakeDockerClient:
    return FakeDockerClient(runtime_state)


@pytest.fixture
def fake_compose(
    runtime_state: FakeRuntimeState, monkeypatch: pytest.MonkeyPatch
) -> FakeComposeRuntime:
    compose = FakeComposeRuntime(runtime_state)
    compose.install(monkeypatch)
    return compose


@pytest.fixture
def runtime(test_config: HarbormasterConfig, fake_client: FakeDockerClient) -> RuntimeClient:
    return RuntimeClient(test_config.docker, client=fake_client)


@pytest.fixture
def make_project(tmp_path: Path):
    """Create project directories under tmp_path."""

    def _make(name: str) -> Path:
        directory = tmp_path / "sites" / name
        directory.mkdir(parents=True)
        return directory

    return _make


@pytest.fixture
def make_lifecycle(
    test_config: HarbormasterConfig,
    fake_client: FakeDockerClient,
    fake_compose: FakeComposeRuntime,
):
    """Create lifecycles sharing the fake runtime."""

    def _make() -> ProjectLifecycle:
        return ProjectLifecycle(
            test_config, runtime=RuntimeClient(test_config.docker, client=fake_client)
        )

    return _make


@pytest.fixture
def site1(make_project, make_lifecycle) -> ProjectLifecycle:
    """An initialized lifecycle for project site1."""
    lifecycle = make_lifecycle()
    lifecycle.init(make_project("site1"))
    return lifecycle
