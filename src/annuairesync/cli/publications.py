"""Publication commands for the annuaire-sync CLI.

Commands:
- status: Show publication counts and the latest batch and report
- requeue: Put an error publication back in the pending queue
"""

from __future__ import annotations

import sys

import click

from annuairesync.core.config import SyncConfig
from annuairesync.engine.database import (
    Database,
    PublicationNotFoundError,
    PublicationStateError,
)


@click.command()
@click.pass_obj
def status(config: SyncConfig) -> None:
    """Show publication counts and the latest batch and report."""
    db = Database(config.db_path)
    try:
        counts = db.count_by_status()
        last_batch = db.last_batch_file()
        reports = db.list_reports(limit=1)
    finally:
        db.close()

    click.echo(f"Operator: {config.operator_id}")
    click.echo(f"Database: {config.db_path}")
    click.echo("")
    for name, count in counts.items():
        click.echo(f"  {name:<10} {count}")
    click.echo("")
    if last_batch:
        click.echo(f"Last batch:  {last_batch[0]} ({last_batch[1].isoformat()})")
    else:
        click.echo("Last batch:  none")
    if reports:
        report = reports[0]
        click.echo(f"Last report: {report.filename} ({report.status})")
    else:
        click.echo("Last report: none")


@click.command()
@click.argument("publication_id", type=int)
@click.pass_obj
def requeue(config: SyncConfig, publication_id: int) -> None:
    """Put an error publication back in the pending queue."""
    db = Database(config.db_path)
    try:
        publication = db.requeue_publication(publication_id)
    except (PublicationNotFoundError, PublicationStateError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()
    click.echo(f"Publication {publication.id} ({publication.address}) is pending again.")
