"""Job commands for the annuaire-sync CLI.

Commands:
- run: Start all periodic jobs
- retry-now: Run the registry retry once
- export-now: Run the batch export once
- ingest-now: Run the report ingestion once
- release-stale: Release abandoned claims
"""

from __future__ import annotations

import sys
import time

import click

from annuairesync.cli.runtime import build_runtime
from annuairesync.core.config import SyncConfig


@click.command()
@click.pass_obj
def run(config: SyncConfig) -> None:
    """Start the retry, export and report jobs until interrupted."""
    runtime = build_runtime(config)
    jobs = runtime.job_scheduler()
    click.echo(f"Operator: {config.operator_id}")
    click.echo(f"Database: {config.db_path}")
    click.echo(f"Transfer: {runtime.transfer.location}")
    click.echo(f"Registry: {config.registry_url or 'batch only (retry job disabled)'}")
    jobs.start()
    click.echo("\nJobs running... (Ctrl+C to stop)\n")
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        jobs.stop()
        runtime.close()


@click.command("retry-now")
@click.pass_obj
def retry_now(config: SyncConfig) -> None:
    """Send due publications to the registry once."""
    runtime = build_runtime(config)
    try:
        if runtime.retry is None:
            click.echo("Error: no registry URL configured (ANNUAIRE_REGISTRY_URL).", err=True)
            sys.exit(1)
        result = runtime.retry.run()
    finally:
        runtime.close()

    click.echo(
        f"Claimed {result.claimed}: {result.succeeded} succeeded, "
        f"{result.rescheduled} rescheduled, {result.exhausted} failed."
    )
    if result.timed_out:
        click.echo(f"Run timed out, {result.released} publication(s) released.")


@click.command("export-now")
@click.pass_obj
def export_now(config: SyncConfig) -> None:
    """Export pending publications to a batch file once."""
    runtime = build_runtime(config)
    try:
        result = runtime.exporter.run()
    finally:
        runtime.close()

    if result.batch_file is None:
        click.echo("No pending publication.")
    elif result.uploaded:
        click.echo(f"Uploaded {result.batch_file} ({result.records} records).")
    else:
        click.echo(f"Error: export of {result.batch_file} failed: {result.error}", err=True)
        sys.exit(1)


@click.command("ingest-now")
@click.pass_obj
def ingest_now(config: SyncConfig) -> None:
    """Download and reconcile new confirmation reports once."""
    runtime = build_runtime(config)
    try:
        result = runtime.ingester.run()
    finally:
        runtime.close()

    if result.error:
        click.echo(f"Error: cannot list reports: {result.error}", err=True)
        sys.exit(1)
    if not result.reports and not result.failed_downloads and not result.failed_reports:
        click.echo("No new report.")
    for summary in result.reports:
        click.echo(
            f"{summary.filename}: {summary.status} "
            f"({summary.success_count} ok, {summary.error_count} error, "
            f"{summary.unmatched_count} unmatched, {summary.skipped_count} skipped, "
            f"{summary.invalid_count} invalid)"
        )
    for name in result.failed_downloads:
        click.echo(click.style(f"{name}: download failed", fg="red"))
    for name in result.failed_reports:
        click.echo(click.style(f"{name}: processing failed, retried next run", fg="red"))


@click.command("release-stale")
@click.pass_obj
def release_stale(config: SyncConfig) -> None:
    """Release claims left behind by interrupted runs."""
    runtime = build_runtime(config)
    try:
        released = runtime.db.release_stale_claims(config.claim_lease)
    finally:
        runtime.close()
    click.echo(f"Released {released} abandoned claim(s).")
