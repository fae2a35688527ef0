"""Helpers shared by CLI commands."""

from pathlib import Path

import click

from cmstools.config import Settings
from cmstools.errors import ConfigurationError


def load_settings() -> Settings:
    """Settings from the environment, exiting with status 1 if incomplete."""
    try:
        return Settings.from_env()
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


def resolve_migrations_dir(explicit: str | None = None) -> Path:
    """Migrations directory: explicit path, else <project root>/migrations."""
    if explicit:
        return Path(explicit)
    cwd = Path.cwd()
    base_path = cwd.parent if cwd.name == "backend" else cwd
    return base_path / "migrations"
