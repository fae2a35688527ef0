"""Upgrade and inspect the metadata database schema with Alembic.

Revisions live in ``<migrations_dir>/versions``. The Alembic environment
script ships with this package and is placed next to them on first use,
so a project only has to carry its revision files.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine

ENV_SCRIPT = Path(__file__).parent / "env.py"


@dataclass
class MigrationInfo:
    revision: str
    description: str
    is_applied: bool


def _config(database_url: str, migrations_dir: Path) -> Config:
    (migrations_dir / "versions").mkdir(parents=True, exist_ok=True)
    env_script = migrations_dir / "env.py"
    if not env_script.exists():
        env_script.write_text(ENV_SCRIPT.read_text())

    cfg = Config()
    cfg.set_main_option("script_location", str(migrations_dir))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def _current_heads(database_url: str) -> tuple[str, ...]:
    engine = create_engine(database_url)
    try:
        with engine.connect() as conn:
            return MigrationContext.configure(conn).get_current_heads()
    finally:
        engine.dispose()


def apply_migrations(database_url: str, migrations_dir: Path, target: str | None = None) -> None:
    """Upgrade the metadata database to ``target``, or to the latest revision."""
    command.upgrade(_config(database_url, migrations_dir), target or "head")


def get_migration_status(database_url: str, migrations_dir: Path) -> list[MigrationInfo]:
    """List every known revision, oldest first, marked applied or pending."""
    script = ScriptDirectory.from_config(_config(database_url, migrations_dir))
    heads = _current_heads(database_url)

    applied: set[str] = set()
    if heads:
        applied = {rev.revision for rev in script.iterate_revisions(heads, "base")}

    return [
        MigrationInfo(rev.revision, rev.doc or "", rev.revision in applied)
        for rev in reversed(list(script.walk_revisions()))
    ]
