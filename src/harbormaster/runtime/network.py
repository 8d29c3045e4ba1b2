"""Shared network provisioning.

All local projects join one external network so their containers can reach
each other. NetworkManager creates it on demand and never removes it: the
network outlives any single project.

Creation is create-or-get. Two projects starting at the same time can both see
the network missing and both try to create it; the loser gets a conflict from
the daemon, which is treated as success.
"""

from __future__ import annotations

import time

from docker.errors import APIError
from pydantic import BaseModel, Field

from harbormaster.errors import NetworkError, NetworkRaceBenign
from harbormaster.logging import get_logger
from harbormaster.runtime.client import RuntimeClient


class NetworkAction(BaseModel):
    """Result of an ensure_network call.

    Attributes:
        network: Network name
        created: Whether this call created the network
        duration_seconds: Time taken for the operation
    """

    network: str = Field(description="Network name")
    created: bool = Field(default=False, description="Created by this call")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Operation duration")


def _is_conflict(error: APIError) -> bool:
    if error.status_code == 409:
        return True
    return "already exists" in str(error).lower()


class NetworkManager:
    """Idempotent manager for the shared project network.

    Attributes:
        runtime: Shared runtime client
        logger: Structured logger instance
    """

    def __init__(self, runtime: RuntimeClient) -> None:
        self.runtime = runtime
        self.logger = get_logger(__name__)

    async def network_exists(self, name: str) -> bool:
        """Check whether a network with exactly this name exists.

        The daemon's name filter matches substrings, so results are compared
        exactly.
        """
        try:
            networks = await self.runtime.call(
                "ensure_network", "networks.list", names=[name]
            )
        except APIError as e:
            raise NetworkError(name, str(e)) from e
        return any(network.name == name for network in networks)

    async def _create(self, name: str) -> None:
        try:
            await self.runtime.call(
                "ensure_network", "networks.create", name, driver="bridge"
            )
        except APIError as e:
            if _is_conflict(e):
                raise NetworkRaceBenign(name) from e
            raise NetworkError(name, str(e)) from e

    async def ensure_network(self, name: str) -> NetworkAction:
        """Ensure the shared network exists, creating it if needed.

        Args:
            name: Network name

        Returns:
            NetworkAction describing whether the network was created

        Raises:
            NetworkError: If the network cannot be listed or created
            RuntimeUnavailable: If the daemon cannot be reached
        """
        start_time = time.monotonic()

        if await self.network_exists(name):
            self.logger.debug("network_present", network=name)
            return NetworkAction(network=name, duration_seconds=time.monotonic() - start_time)

        try:
            await self._create(name)
        except NetworkRaceBenign:
            self.logger.info("network_created_concurrently", network=name)
            return NetworkAction(network=name, duration_seconds=time.monotonic() - start_time)

        duration = time.monotonic() - start_time
        self.logger.info("network_created", network=name, duration_seconds=round(duration, 2))
        return NetworkAction(network=name, created=True, duration_seconds=duration)
