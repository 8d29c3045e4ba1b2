"""harbormaster command line.

    harbormaster project start ~/sites/site1
    harbormaster project status
    harbormaster import db /tmp/db.tar.gz
    harbormaster import files /tmp/files.tgz
    harbormaster project rm

Commands take the project directory as their last argument, defaulting to the
current directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from harbormaster import __version__
from harbormaster.cli import imports as imports_cli
from harbormaster.cli import project as project_cli
from harbormaster.config import HarbormasterConfig, load_config
from harbormaster.lifecycle import ProjectLifecycle
from harbormaster.logging import get_logger, new_correlation_id, setup_logging

app = typer.Typer(
    name="harbormaster",
    help="Local multi-container development environments",
    no_args_is_help=True,
)
app.add_typer(project_cli.app, name="project", help="Start, stop, remove and inspect a project")
app.add_typer(imports_cli.app, name="import", help="Import database and file archives")

console = Console()


class AppContext:
    """State shared by the commands of one invocation.

    Attributes:
        config: Resolved harbormaster settings
    """

    def __init__(self, config: HarbormasterConfig):
        self.config = config

    def create_lifecycle(self) -> ProjectLifecycle:
        return ProjectLifecycle(self.config)


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Return the context set up by the root callback.

    Raises:
        RuntimeError: If called before initialize_context
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: HarbormasterConfig) -> AppContext:
    global _app_context
    _app_context = AppContext(config)
    return _app_context


def _print_version(value: bool) -> None:
    if value:
        console.print(f"harbormaster {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Settings file (TOML)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log at DEBUG level"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_print_version,
            is_eager=True,
            help="Show the version and exit",
        ),
    ] = False,
) -> None:
    """Load settings, configure logging and open a correlation scope."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    if verbose:
        config.logging.level = "DEBUG"

    setup_logging(config.logging)
    correlation_id = new_correlation_id()
    get_logger(__name__).debug("cli_invoked", correlation_id=correlation_id)
    initialize_context(config)


if __name__ == "__main__":
    app()
