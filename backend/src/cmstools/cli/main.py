"""CMS Tools CLI entry point."""

import logging
import os

import click


@click.group()
@click.option("--log-level", default=None, help="Override CMSTOOLS_LOG_LEVEL.")
def cli(log_level: str | None):
    """CMS Tools: metadata-driven table administration."""
    level = (log_level or os.environ.get("CMSTOOLS_LOG_LEVEL", "WARNING")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommand groups
from cmstools.cli.audit_cmd import audit  # noqa: E402
from cmstools.cli.connections_cmd import connections  # noqa: E402
from cmstools.cli.db_cmd import db  # noqa: E402

cli.add_command(db)
cli.add_command(connections)
cli.add_command(audit)
