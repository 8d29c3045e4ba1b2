"""Archive imports into running services.

ImportPipeline loads an already-downloaded archive into a project:

- import_db extracts the archive, recreates the database and streams every
  `.sql` file it contains into the db service's client.
- import_files extracts the archive and replaces the web service's file
  storage directory with its contents.

Both require the target container to be running and refuse to touch anything
otherwise. Neither rolls back: a failure part-way leaves the target in an
undefined state, and the raised ImportFailureError says so.
"""

from __future__ import annotations

import asyncio
import gzip
import shutil
import tarfile
import tempfile
import time
import zipfile
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from harbormaster.config import ImportConfig
from harbormaster.errors import (
    ComposeCommandError,
    ContainerNotFoundError,
    ImportFailureError,
    PreconditionFailedError,
    StateMismatchError,
)
from harbormaster.logging import get_logger
from harbormaster.project import Project
from harbormaster.runtime.compose import ComposeController
from harbormaster.runtime.inspector import ContainerInspector, ContainerStatus

_EXTRACTION_ERRORS = (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError, ValueError)


class ImportTarget(str, Enum):
    """What an import replaces."""

    DB = "db"
    FILES = "files"


class ImportResult(BaseModel):
    """Result of an archive import.

    Attributes:
        target: Import target (db or files)
        archive: Archive that was imported
        container: Container that had to be running
        items_imported: SQL files loaded, or files placed
        destination: Database name or directory that was replaced
        duration_seconds: Time taken for the import
    """

    target: ImportTarget = Field(description="Import target")
    archive: Path = Field(description="Archive path")
    container: str = Field(description="Target container")
    items_imported: int = Field(default=0, ge=0, description="Items imported")
    destination: str = Field(description="Replaced database or directory")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Import duration")


def extract_archive(archive: Path, destination: Path) -> None:
    """Extract a supported archive into destination.

    Supports tar (optionally gzip/bzip2/xz compressed), zip, gzipped SQL dumps
    and plain SQL dumps, which are copied as-is.

    Raises:
        ValueError: If the archive format is not recognised
        tarfile.TarError, zipfile.BadZipFile, OSError: On corrupt archives
    """
    name = archive.name.lower()
    destination.mkdir(parents=True, exist_ok=True)

    if name.endswith(".sql"):
        shutil.copy2(archive, destination / archive.name)
    elif name.endswith(".sql.gz"):
        with gzip.open(archive, "rb") as src, open(destination / archive.name[:-3], "wb") as dst:
            shutil.copyfileobj(src, dst)
    elif tarfile.is_tarfile(archive):
        with tarfile.open(archive, "r:*") as tar:
            tar.extractall(destination, filter="data")
    elif zipfile.is_zipfile(archive):
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(destination)
    else:
        raise ValueError(f"Unsupported archive format: {archive.name}")


def _content_root(directory: Path, wrapper_names: set[str]) -> Path:
    """Unwrap a single top-level wrapper directory, as produced by `tar czf files.tgz files/`.

    Only directories named like the storage directory count as wrappers; any
    other single directory is content and stays in place.
    """
    entries = [entry for entry in directory.iterdir() if entry.name != "__MACOSX"]
    if len(entries) == 1 and entries[0].is_dir() and entries[0].name in wrapper_names:
        return entries[0]
    return directory


def _replace_tree(archive: Path, staging: Path, destination: Path) -> int:
    extract_archive(archive, staging)
    root = _content_root(staging, {destination.name, "files"})
    count = sum(1 for path in root.rglob("*") if path.is_file())

    if destination.exists():
        shutil.rmtree(destination)
    shutil.move(str(root), str(destination))
    return count


class ImportPipeline:
    """Loads archives into a project's running services.

    Attributes:
        config: Import configuration (database name, credentials, timeouts)
        project: Project being imported into
        inspector: Container inspector used for preconditions
        compose: Compose controller used to exec into services
    """

    def __init__(
        self,
        config: ImportConfig,
        project: Project,
        inspector: ContainerInspector,
        compose: ComposeController,
    ) -> None:
        self.config = config
        self.project = project
        self.inspector = inspector
        self.compose = compose
        self.logger = get_logger(__name__)

    async def _require_running(self, container: str, operation: str) -> None:
        try:
            await self.inspector.check_container(container, ContainerStatus.RUNNING)
        except (ContainerNotFoundError, StateMismatchError) as e:
            self.logger.warning(
                "import_precondition_failed",
                container=container,
                operation=operation,
                error=str(e),
            )
            raise PreconditionFailedError(operation, container, str(e)) from e

    def _db_client(self, *args: str) -> list[str]:
        return [
            self.config.db_client,
            f"--user={self.config.db_user}",
            f"--password={self.config.db_password}",
            *args,
        ]

    async def import_db(self, archive: Path) -> ImportResult:
        """Replace the project database with the dumps in an archive.

        Args:
            archive: Local path to a database archive

        Returns:
            ImportResult with the number of SQL files loaded

        Raises:
            FileNotFoundError: If the archive does not exist
            PreconditionFailedError: If the db container is not running
            ImportFailureError: If extraction or loading fails
        """
        start_time = time.monotonic()
        archive = archive.expanduser().resolve()
        db = self.project.service("db")

        await self._require_running(db.container_name, "import database")
        if not archive.is_file():
            raise FileNotFoundError(f"Archive not found: {archive}")

        self.logger.info("db_import_started", archive=str(archive), container=db.container_name)

        with tempfile.TemporaryDirectory(prefix="harbormaster-db-") as tmp:
            workdir = Path(tmp)
            try:
                await asyncio.to_thread(extract_archive, archive, workdir)
            except _EXTRACTION_ERRORS as e:
                raise ImportFailureError("database", archive, f"extraction failed: {e}") from e

            dumps = sorted(workdir.rglob("*.sql"))
            if not dumps:
                raise ImportFailureError("database", archive, "archive contains no .sql files")

            name = self.config.db_name
            try:
                await self.compose.exec(
                    db.role,
                    *self._db_client(
                        "-e", f"DROP DATABASE IF EXISTS `{name}`; CREATE DATABASE `{name}`;"
                    ),
                    timeout=self.config.timeout_seconds,
                )
                for dump in dumps:
                    self.logger.debug("db_import_loading", dump=dump.name)
                    await self.compose.exec(
                        db.role,
                        *self._db_client(name),
                        stdin_path=dump,
                        timeout=self.config.timeout_seconds,
                    )
            except ComposeCommandError as e:
                self.logger.error("db_import_failed", archive=str(archive), error=str(e))
                raise ImportFailureError("database", archive, str(e)) from e

        duration = time.monotonic() - start_time
        self.logger.info(
            "db_import_completed",
            archive=str(archive),
            dumps=len(dumps),
            duration_seconds=round(duration, 2),
        )
        return ImportResult(
            target=ImportTarget.DB,
            archive=archive,
            container=db.container_name,
            items_imported=len(dumps),
            destination=name,
            duration_seconds=duration,
        )

    async def import_files(self, archive: Path) -> ImportResult:
        """Replace the project's file storage with the contents of an archive.

        Args:
            archive: Local path to a files archive

        Returns:
            ImportResult with the number of files placed

        Raises:
            FileNotFoundError: If the archive does not exist
            PreconditionFailedError: If the web container is not running
            ImportFailureError: If extraction or replacement fails
        """
        start_time = time.monotonic()
        archive = archive.expanduser().resolve()
        web = self.project.service("web")
        destination = self.project.files_path

        await self._require_running(web.container_name, "import files")
        if not archive.is_file():
            raise FileNotFoundError(f"Archive not found: {archive}")

        self.logger.info(
            "files_import_started", archive=str(archive), destination=str(destination)
        )

        destination.parent.mkdir(parents=True, exist_ok=True)
        # Staging on the same filesystem makes the final move a rename
        staging = Path(tempfile.mkdtemp(prefix=".harbormaster-files-", dir=destination.parent))
        try:
            count = await asyncio.to_thread(_replace_tree, archive, staging, destination)
        except _EXTRACTION_ERRORS as e:
            self.logger.error("files_import_failed", archive=str(archive), error=str(e))
            raise ImportFailureError("file storage", archive, str(e)) from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        duration = time.monotonic() - start_time
        self.logger.info(
            "files_import_completed",
            archive=str(archive),
            files=count,
            duration_seconds=round(duration, 2),
        )
        return ImportResult(
            target=ImportTarget.FILES,
            archive=archive,
            container=web.container_name,
            items_imported=count,
            destination=str(destination),
            duration_seconds=duration,
        )
