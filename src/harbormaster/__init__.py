"""Harbormaster - Local multi-container development environments.

This package provides the project lifecycle orchestrator that provisions a
shared Docker network, brings a project's web and database containers up and
down through Docker Compose, waits for readiness, and imports database and
file archives into running services.
"""

__version__ = "0.1.0"
