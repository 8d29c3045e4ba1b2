"""Typer command groups for the harbormaster CLI."""
