"""Container runtime controllers for Harbormaster.

This package wraps docker-py and the docker compose CLI: shared network
provisioning, read-only container inspection, per-project compose control,
default compose rendering and archive imports.
"""

from __future__ import annotations

from harbormaster.runtime.client import RuntimeClient
from harbormaster.runtime.compose import ComposeAction, ComposeController, parse_ps_output
from harbormaster.runtime.imports import (
    ImportPipeline,
    ImportResult,
    ImportTarget,
    extract_archive,
)
from harbormaster.runtime.inspector import ContainerInspector, ContainerState, ContainerStatus
from harbormaster.runtime.network import NetworkAction, NetworkManager
from harbormaster.runtime.render import ComposeRenderer, undefined_roles

__all__ = [
    # Client
    "RuntimeClient",
    # Network
    "NetworkAction",
    "NetworkManager",
    # Inspection
    "ContainerInspector",
    "ContainerState",
    "ContainerStatus",
    # Compose
    "ComposeAction",
    "ComposeController",
    "ComposeRenderer",
    "parse_ps_output",
    "undefined_roles",
    # Imports
    "ImportPipeline",
    "ImportResult",
    "ImportTarget",
    "extract_archive",
]
