"""Audit trail commands."""

import asyncio
from datetime import datetime

import click

from cmstools.audit.reader import AuditLogReader
from cmstools.cli.common import load_settings
from cmstools.persistence.engines import create_async_engine_pooled


@click.group()
def audit():
    """Audit trail commands."""
    pass


@audit.command("list")
@click.option("--op", "operation", default=None, help="Operation, e.g. UPDATE.")
@click.option("--table", default=None, help="Substring of table or schema.table.")
@click.option("--from", "date_from", type=click.DateTime(["%Y-%m-%d"]), default=None)
@click.option("--to", "date_to", type=click.DateTime(["%Y-%m-%d"]), default=None)
@click.option("--page", default=1, show_default=True)
@click.option("--page-size", default=100, show_default=True)
def list_entries(
    operation: str | None,
    table: str | None,
    date_from: datetime | None,
    date_to: datetime | None,
    page: int,
    page_size: int,
):
    """List audit entries, newest first."""
    settings = load_settings()

    async def run():
        engine = create_async_engine_pooled(settings.database_url)
        try:
            reader = AuditLogReader(engine)
            return await reader.list_entries(
                operation,
                table,
                date_from.date() if date_from else None,
                date_to.date() if date_to else None,
                page,
                page_size,
            )
        finally:
            await engine.dispose()

    result = asyncio.run(run())
    click.echo(f"{result.total} entries (page {result.page}, {result.page_size} per page)")
    for entry in result.entries:
        who = entry.username or (str(entry.user_id) if entry.user_id is not None else "-")
        target = f"{entry.schema_name}.{entry.table_name}" if entry.schema_name else entry.table_name
        click.echo(
            f"{entry.id}  {entry.created_at_utc:%Y-%m-%d %H:%M:%S}  {who}  "
            f"{entry.operation}  {entry.connection_name}/{target}  "
            f"{entry.primary_key_column}={entry.primary_key_value}"
        )
