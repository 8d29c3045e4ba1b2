"""Helpers shared by the CLI command groups."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console

from harbormaster.errors import HarbormasterError
from harbormaster.lifecycle import ProjectLifecycle

T = TypeVar("T")

console = Console()

STATE_COLORS = {
    "running": "green",
    "exited": "yellow",
    "created": "cyan",
    "restarting": "cyan",
    "dead": "red",
    None: "dim",
}


def run_operation(
    directory: Path,
    operation: Callable[[ProjectLifecycle], Awaitable[T]],
    render: bool = False,
) -> T:
    """Initialize the project in directory and run one lifecycle operation.

    Errors are printed and turned into exit code 1.

    Args:
        directory: Project directory
        operation: Coroutine function receiving the initialized lifecycle
        render: Write the default compose file when the project has none

    Returns:
        Whatever the operation returns
    """
    from harbormaster.main import get_app_context

    ctx = get_app_context()

    async def _run() -> T:
        lifecycle = ctx.create_lifecycle()
        try:
            lifecycle.init(directory, render=render)
            return await operation(lifecycle)
        finally:
            await lifecycle.close()

    try:
        return asyncio.run(_run())
    except (HarbormasterError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
