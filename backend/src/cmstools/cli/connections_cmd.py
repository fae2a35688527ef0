"""Target connection commands: list, check."""

import asyncio

import click

from cmstools.cli.common import load_settings
from cmstools.metadata.store import MetadataStore
from cmstools.persistence.engines import EngineRegistry, create_async_engine_pooled


@click.group()
def connections():
    """Target database connections."""
    pass


@connections.command("list")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive connections.")
def list_connections(include_inactive: bool):
    """List configured connections and their tables."""
    settings = load_settings()

    async def run():
        engine = create_async_engine_pooled(settings.database_url)
        try:
            store = MetadataStore(engine)
            found = await store.get_all_connections(include_inactive=include_inactive)
            result = []
            for connection in found:
                tables = await store.get_tables_for_connection(connection.id)
                result.append((connection, tables))
            return result
        finally:
            await engine.dispose()

    result = asyncio.run(run())
    if not result:
        click.echo("No connections configured.")
        return

    for connection, tables in result:
        state = "" if connection.is_active else " (inactive)"
        click.echo(f"{connection.id}  {connection.name}  [{connection.provider}]{state}")
        for table in tables:
            click.echo(f"    {table.id}  {table.qualified_name}  {table.label}")


@connections.command()
def check():
    """Run SELECT 1 against every active connection."""
    settings = load_settings()

    async def run():
        engine = create_async_engine_pooled(settings.database_url)
        registry = EngineRegistry()
        try:
            store = MetadataStore(engine)
            return [await registry.check_health(c) for c in await store.get_all_connections()]
        finally:
            await registry.dispose()
            await engine.dispose()

    results = asyncio.run(run())
    if not results:
        click.echo("No active connections.")
        return

    for health in results:
        if health.ok:
            click.echo(f"OK    {health.name} [{health.provider}]")
        else:
            click.echo(f"FAIL  {health.name} [{health.provider}]: {health.error}")

    if any(not h.ok for h in results):
        raise SystemExit(1)
