"""Integration tests for shared network provisioning."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, DockerException

from harbormaster.errors import NetworkError, RuntimeUnavailable
from harbormaster.runtime.client import RuntimeClient
from harbormaster.runtime.network import NetworkAction, NetworkManager


class TestEnsureNetwork:
    """Test create-or-get semantics of ensure_network."""

    @pytest.mark.asyncio
    async def test_creates_missing_network(self, runtime, runtime_state) -> None:
        manager = NetworkManager(runtime)

        action = await manager.ensure_network("harbormaster_test")

        assert isinstance(action, NetworkAction)
        assert action.created is True
        assert "harbormaster_test" in runtime_state.networks

    @pytest.mark.asyncio
    async def test_existing_network_is_noop(self, runtime, runtime_state) -> None:
        runtime_state.networks.add("harbormaster_test")
        manager = NetworkManager(runtime)

        action = await manager.ensure_network("harbormaster_test")

        assert action.created is False
        assert runtime_state.network_creates == 0

    @pytest.mark.asyncio
    async def test_substring_match_is_not_existence(self, runtime, runtime_state) -> None:
        """The daemon's name filter matches substrings; only exact names count."""
        runtime_state.networks.add("harbormaster_test_other")
        manager = NetworkManager(runtime)

        assert await manager.network_exists("harbormaster_test") is False
        action = await manager.ensure_network("harbormaster_test")
        assert action.created is True

    @pytest.mark.asyncio
    async def test_conflict_on_create_is_success(
        self, runtime, runtime_state, fake_client
    ) -> None:
        """Losing the creation race to another caller is not an error."""
        runtime_state.networks.add("harbormaster_test")
        fake_client.networks.stale_list = True
        manager = NetworkManager(runtime)

        action = await manager.ensure_network("harbormaster_test")

        assert action.created is False
        assert runtime_state.network_creates == 0

    @pytest.mark.asyncio
    async def test_concurrent_creation_creates_once(
        self, runtime, runtime_state, fake_client
    ) -> None:
        fake_client.networks.stale_list = True
        manager = NetworkManager(runtime)

        results = await asyncio.gather(
            *(manager.ensure_network("harbormaster_test") for _ in range(5))
        )

        assert runtime_state.network_creates == 1
        assert sum(1 for action in results if action.created) == 1

    @pytest.mark.asyncio
    async def test_other_create_errors_propagate(self, runtime, fake_client) -> None:
        fake_client.networks.create = MagicMock(
            side_effect=APIError("invalid driver", response=MagicMock(status_code=500))
        )
        manager = NetworkManager(runtime)

        with pytest.raises(NetworkError, match="harbormaster_test"):
            await manager.ensure_network("harbormaster_test")

    @pytest.mark.asyncio
    async def test_list_error_is_network_error(self, runtime, fake_client) -> None:
        fake_client.networks.list_error = APIError(
            "server error", response=MagicMock(status_code=500)
        )
        manager = NetworkManager(runtime)

        with pytest.raises(NetworkError):
            await manager.ensure_network("harbormaster_test")

    @pytest.mark.asyncio
    async def test_unreachable_daemon(self, test_config, monkeypatch) -> None:
        """Connection failures surface as RuntimeUnavailable."""
        monkeypatch.delenv("DOCKER_HOST", raising=False)
        monkeypatch.setattr(
            "docker.DockerClient.from_env",
            MagicMock(side_effect=DockerException("connection refused")),
        )
        manager = NetworkManager(RuntimeClient(test_config.docker))

        with pytest.raises(RuntimeUnavailable, match="ensure_network"):
            await manager.ensure_network("harbormaster_test")
