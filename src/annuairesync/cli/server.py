"""Admin API command for the annuaire-sync CLI."""

from __future__ import annotations

import click
import uvicorn

from annuairesync.core.config import SyncConfig
from annuairesync.engine.database import Database
from annuairesync.server.app import create_app


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port.")
@click.pass_obj
def serve(config: SyncConfig, host: str, port: int) -> None:
    """Start the admin HTTP API."""
    db = Database(config.db_path)
    click.echo(f"Admin API on http://{host}:{port} (database: {config.db_path})")
    try:
        uvicorn.run(create_app(db, config), host=host, port=port)
    finally:
        db.close()
