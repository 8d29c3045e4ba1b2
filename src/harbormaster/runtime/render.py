"""Default compose specification rendering.

Projects without a compose file get one rendered from a template on init: a
web service serving the project directory and a database service persisting
into `.harbormaster/db`, both with deterministic container names and attached
to the shared external network. Add-on services are declared in overlay files
next to it and are not rendered here.
"""

from __future__ import annotations

import re
from pathlib import Path

from jinja2 import Environment, StrictUndefined

from harbormaster.config import DockerConfig, ImportConfig
from harbormaster.logging import get_logger
from harbormaster.project import Project

# Values go through tojson: a JSON string is a valid YAML scalar
COMPOSE_TEMPLATE = """\
# Rendered by harbormaster for project {{ project.name }}.
name: {{ project.compose_project_name | tojson }}
services:
  web:
    container_name: {{ web.container_name | tojson }}
    image: {{ docker.web_image | tojson }}
    restart: "no"
    depends_on:
      - db
    volumes:
      - {{ (project.directory ~ ":/var/www/html") | tojson }}
    working_dir: /var/www/html
    environment:
      DOCROOT: {{ project.docroot | tojson }}
      DB_HOST: db
      DB_NAME: {{ imports.db_name | tojson }}
      DB_USER: {{ imports.db_user | tojson }}
      DB_PASSWORD: {{ imports.db_password | tojson }}
    labels:
      com.harbormaster.project: {{ project.name | tojson }}
      com.harbormaster.role: web
  db:
    container_name: {{ db.container_name | tojson }}
    image: {{ docker.db_image | tojson }}
    restart: "no"
    volumes:
      - {{ (db_data_dir ~ ":/var/lib/mysql") | tojson }}
    environment:
      MYSQL_ROOT_PASSWORD: {{ imports.db_password | tojson }}
      MYSQL_DATABASE: {{ imports.db_name | tojson }}
    labels:
      com.harbormaster.project: {{ project.name | tojson }}
      com.harbormaster.role: db
networks:
  default:
    name: {{ docker.network_name | tojson }}
    external: true
"""


class ComposeRenderer:
    """Renders the default compose file for a project.

    Attributes:
        docker: Docker configuration (images, network name)
        imports: Import configuration (database credentials)
    """

    def __init__(self, docker: DockerConfig, imports: ImportConfig) -> None:
        self.docker = docker
        self.imports = imports
        self.logger = get_logger(__name__)
        self._env = Environment(undefined=StrictUndefined, keep_trailing_newline=True)

    def render(self, project: Project) -> str:
        """Render the compose specification text for a project."""
        template = self._env.from_string(COMPOSE_TEMPLATE)
        return template.render(
            project=project,
            web=project.service("web"),
            db=project.service("db"),
            db_data_dir=str(project.config_dir / "db"),
            docker=self.docker,
            imports=self.imports,
        )

    def write(self, project: Project, force: bool = False) -> Path | None:
        """Write the compose file unless one already exists.

        Args:
            project: Project to render for
            force: Overwrite an existing compose file

        Returns:
            Path written, or None when an existing file was kept
        """
        path = project.compose_path
        if path.exists() and not force:
            self.logger.debug("compose_file_kept", compose_file=str(path))
            return None

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(project), encoding="utf-8")
        self.logger.info("compose_file_rendered", compose_file=str(path))
        return path


def undefined_roles(project: Project) -> list[str]:
    """Declared roles that neither the compose file nor an overlay defines.

    A role counts as defined when some file declares a service key named after
    it or names its container. Only the text is inspected.

    Returns:
        Roles in declared order; empty when no compose file exists yet
    """
    files = [path for path in [project.compose_path, *project.compose_overlays] if path.exists()]
    if not files:
        return []

    text = "\n".join(path.read_text(encoding="utf-8") for path in files)
    missing = []
    for service in project.services:
        key = re.compile(rf"^[ \t]+{re.escape(service.role)}:[ \t]*$", re.MULTILINE)
        if not key.search(text) and service.container_name not in text:
            missing.append(service.role)
    return missing
