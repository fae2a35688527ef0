"""Metadata database commands: upgrade, status."""

import click

from cmstools.cli.common import load_settings, resolve_migrations_dir
from cmstools.migrations.runner import apply_migrations, get_migration_status


@click.group()
def db():
    """Metadata database schema commands."""
    pass


@db.command()
@click.option("--to", "target", default=None, help="Upgrade to a specific revision.")
@click.option("--migrations-dir", default=None, help="Directory holding versions/.")
def upgrade(target: str | None, migrations_dir: str | None):
    """Apply pending metadata schema migrations."""
    settings = load_settings()
    path = resolve_migrations_dir(migrations_dir)

    versions_dir = path / "versions"
    if not versions_dir.exists() or not any(versions_dir.glob("*.py")):
        click.echo(f"Error: No migrations found in {versions_dir}", err=True)
        raise SystemExit(1)

    click.echo("Upgrading metadata database...")
    try:
        apply_migrations(settings.sync_url, path, target)
    except Exception as e:
        click.echo(f"Error applying migrations: {e}", err=True)
        raise SystemExit(1)
    click.echo("Metadata database is up to date.")


@db.command()
@click.option("--migrations-dir", default=None, help="Directory holding versions/.")
def status(migrations_dir: str | None):
    """Show applied and pending metadata schema migrations."""
    settings = load_settings()
    path = resolve_migrations_dir(migrations_dir)

    try:
        migrations = get_migration_status(settings.sync_url, path)
    except Exception as e:
        click.echo(f"Could not read migration status: {e}", err=True)
        raise SystemExit(1)

    if not migrations:
        click.echo("No migrations found.")
        return

    applied_count = sum(1 for m in migrations if m.is_applied)
    pending_count = len(migrations) - applied_count
    click.echo(f"Migration status ({applied_count} applied, {pending_count} pending):")
    for m in migrations:
        marker = "[x]" if m.is_applied else "[ ]"
        click.echo(f"  {marker} {m.revision}  {m.description}")
