"""Project lifecycle CLI commands.

This module provides commands to start, stop, remove and inspect a project's
containers.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.panel import Panel
from rich.table import Table

from harbormaster.cli.common import STATE_COLORS, console, run_operation
from harbormaster.lifecycle import ProjectLifecycle

app = typer.Typer(help="Project lifecycle commands")

DirectoryArg = Annotated[
    Path,
    typer.Argument(help="Project directory", file_okay=False),
]


@app.command()
def start(
    directory: DirectoryArg = Path("."),
    wait: Annotated[
        bool,
        typer.Option("--wait/--no-wait", help="Wait until every service is running"),
    ] = True,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", "-t", help="Seconds to wait for readiness"),
    ] = None,
) -> None:
    """Start a project's containers and wait for them to be running.

    Args:
        directory: Project directory
        wait: Wait for readiness after starting
        timeout: Readiness deadline in seconds
    """

    async def _start(lifecycle: ProjectLifecycle):
        await lifecycle.start()
        report = await lifecycle.wait(timeout) if wait else None
        return lifecycle.project, report

    project, report = run_operation(directory, _start, render=True)

    lines = [f"[bold]Project:[/bold] {project.name}"]
    for service in project.services:
        lines.append(f"[bold]{service.role}:[/bold] {service.container_name}")
    if report is not None:
        title, style = "Project Running", "green"
        lines.append(f"[dim]Ready after {report.elapsed_seconds:.1f}s[/dim]")
    else:
        title, style = "Project Starting", "cyan"
    console.print(Panel("\n".join(lines), title=title, border_style=style))


@app.command()
def stop(directory: DirectoryArg = Path(".")) -> None:
    """Stop a project's containers without removing them."""

    async def _stop(lifecycle: ProjectLifecycle):
        await lifecycle.stop()
        return lifecycle.project

    project = run_operation(directory, _stop)
    console.print(f"[green]Stopped[/green] {project.name}")


@app.command()
def rm(directory: DirectoryArg = Path(".")) -> None:
    """Stop and remove a project's containers. The shared network is kept."""

    async def _down(lifecycle: ProjectLifecycle):
        await lifecycle.down()
        return lifecycle.project

    project = run_operation(directory, _down)
    console.print(f"[green]Removed[/green] {project.name}")


@app.command()
def status(directory: DirectoryArg = Path(".")) -> None:
    """Show the derived phase and per-service container states."""

    async def _status(lifecycle: ProjectLifecycle):
        return await lifecycle.status()

    report = run_operation(directory, _status)

    table = Table(title=f"{report.project} ({report.phase.value})")
    table.add_column("Role", style="bold")
    table.add_column("Container", style="cyan", no_wrap=True)
    table.add_column("State")

    for service in report.services:
        color = STATE_COLORS.get(service.state, "white")
        state = service.state or "absent"
        table.add_row(service.role, service.container, f"[{color}]{state}[/{color}]")

    console.print(table)
