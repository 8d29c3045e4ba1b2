"""Shared Docker client access for the runtime controllers.

RuntimeClient lazily resolves a docker-py client the same way for every
controller: an explicit DOCKER_HOST wins, then the rootless socket when
configured, then the environment defaults. Connection failures surface as
RuntimeUnavailable, which is fatal for the calling operation.
"""

from __future__ import annotations

import asyncio
import os

import requests
from docker.errors import APIError, DockerException

import docker
from harbormaster.config import DockerConfig
from harbormaster.errors import RuntimeUnavailable
from harbormaster.logging import get_logger


class RuntimeClient:
    """Lazily connected docker-py client shared by the controllers.

    Attributes:
        config: Docker configuration from HarbormasterConfig
        logger: Structured logger instance
    """

    def __init__(
        self, config: DockerConfig, client: docker.DockerClient | None = None
    ) -> None:
        """Initialize RuntimeClient.

        Args:
            config: Docker configuration settings
            client: Pre-built client to use instead of connecting on first use
        """
        self.config = config
        self.logger = get_logger(__name__)
        self._client = client

    def _connect(self) -> docker.DockerClient:
        docker_host = os.environ.get("DOCKER_HOST")
        if docker_host:
            return docker.DockerClient(base_url=docker_host)
        if self.config.rootless and hasattr(os, "getuid"):
            xdg_runtime = os.environ.get("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
            try:
                return docker.DockerClient(base_url=f"unix://{xdg_runtime}/docker.sock")
            except DockerException:
                self.logger.debug("rootless_socket_unavailable", runtime_dir=xdg_runtime)
        return docker.DockerClient.from_env()

    def get_client(self, operation: str = "connect") -> docker.DockerClient:
        """Get or create the Docker client connection.

        Args:
            operation: Operation name used to annotate connection failures

        Returns:
            Active Docker client instance

        Raises:
            RuntimeUnavailable: If unable to connect to the Docker daemon
        """
        if self._client is None:
            try:
                self._client = self._connect()
            except DockerException as e:
                self.logger.error(
                    "docker_client_connection_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    rootless=self.config.rootless,
                )
                raise RuntimeUnavailable(operation, str(e)) from e

            self.logger.debug("docker_client_connected", rootless=self.config.rootless)

        return self._client

    async def call(self, operation: str, func_name: str, *args, **kwargs):
        """Run a blocking docker-py call in a worker thread.

        Args:
            operation: Operation name used to annotate failures
            func_name: Dotted attribute path on the client (e.g. "networks.list")
            *args: Positional arguments for the call
            **kwargs: Keyword arguments for the call

        Returns:
            Whatever the docker-py call returns

        Raises:
            RuntimeUnavailable: If the daemon cannot be reached
        """
        client = await asyncio.to_thread(self.get_client, operation)
        target = client
        for attr in func_name.split("."):
            target = getattr(target, attr)

        try:
            return await asyncio.to_thread(target, *args, **kwargs)
        except APIError:
            raise
        except (DockerException, requests.exceptions.ConnectionError) as e:
            # Non-API failures mean the daemon is unreachable
            self.logger.error(
                "docker_call_failed",
                call=func_name,
                operation=operation,
                error=str(e),
            )
            raise RuntimeUnavailable(operation, str(e)) from e

    async def close(self) -> None:
        """Close the Docker client connection.

        Safe to call multiple times or if the client was never connected.
        """
        if self._client is not None:
            try:
                await asyncio.to_thread(self._client.close)
            except Exception as e:
                self.logger.warning("docker_client_close_error", error=str(e))
            finally:
                self._client = None
