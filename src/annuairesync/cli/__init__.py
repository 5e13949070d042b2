"""Command-line interface for annuaire-sync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- run: Start all periodic jobs
- retry-now: Run the registry retry once
- export-now: Run the batch export once
- ingest-now: Run the report ingestion once
- release-stale: Release abandoned claims
- status: Show publication counts
- requeue: Put an error publication back in the pending queue
- serve: Start the admin HTTP API
"""

from __future__ import annotations

import dataclasses
import logging

import click

from annuairesync.cli.jobs import export_now, ingest_now, release_stale, retry_now, run
from annuairesync.cli.publications import requeue, status
from annuairesync.cli.server import serve
from annuairesync.core.config import SyncConfig
from annuairesync.core.log import setup_logging


@click.group()
@click.version_option(package_name="annuaire-sync")
@click.option(
    "--db-path",
    type=click.Path(),
    default=None,
    help="Path to database file (default: ANNUAIRE_DB_PATH or ./annuaire.db).",
)
@click.option(
    "--operator-id",
    default=None,
    help="Operator identifier (default: ANNUAIRE_OPERATOR_ID).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, db_path: str | None, operator_id: str | None, verbose: bool) -> None:
    """annuaire-sync - Directory synchronization engine."""
    try:
        config = SyncConfig.from_env()
        overrides: dict[str, object] = {}
        if db_path:
            overrides["db_path"] = db_path
        if operator_id:
            overrides["operator_id"] = operator_id
        if overrides:
            config = dataclasses.replace(config, **overrides)
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e

    setup_logging(config.log_path, logging.DEBUG if verbose else logging.INFO)
    ctx.obj = config


# Job commands
cli.add_command(run)
cli.add_command(retry_now)
cli.add_command(export_now)
cli.add_command(ingest_now)
cli.add_command(release_stale)

# Publication commands
cli.add_command(status)
cli.add_command(requeue)

# Admin API command
cli.add_command(serve)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
