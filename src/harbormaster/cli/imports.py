"""Archive import CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from harbormaster.cli.common import console, run_operation
from harbormaster.lifecycle import ProjectLifecycle

app = typer.Typer(help="Import archives into running projects")

ArchiveArg = Annotated[
    Path,
    typer.Argument(help="Local archive path", exists=True, dir_okay=False, readable=True),
]
DirectoryArg = Annotated[
    Path,
    typer.Argument(help="Project directory", file_okay=False),
]


@app.command()
def db(archive: ArchiveArg, directory: DirectoryArg = Path(".")) -> None:
    """Replace the project database with the dumps in ARCHIVE."""

    async def _import(lifecycle: ProjectLifecycle):
        return await lifecycle.import_db(archive)

    result = run_operation(directory, _import)
    console.print(
        f"[green]Imported[/green] {result.items_imported} dump(s) into "
        f"database {result.destination}"
    )


@app.command()
def files(archive: ArchiveArg, directory: DirectoryArg = Path(".")) -> None:
    """Replace the project's file storage with the contents of ARCHIVE."""

    async def _import(lifecycle: ProjectLifecycle):
        return await lifecycle.import_files(archive)

    result = run_operation(directory, _import)
    console.print(
        f"[green]Imported[/green] {result.items_imported} file(s) into {result.destination}"
    )
