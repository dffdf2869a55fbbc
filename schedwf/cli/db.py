"""schedwf db: schema migrations."""

from __future__ import annotations

import os

import typer
from alembic import command
from alembic.config import Config

from schedwf.db import DATABASE_URL_ENV, ConfigurationError, resolve_database_url

db_app = typer.Typer(name="db", help="Database operations.")


@db_app.command("migrate")
def migrate_command(
    target: str = typer.Option("head", "--target", "-t", help="Revision to upgrade to (default: head)."),
    database_url: str = typer.Option("", "--database-url", help=f"Database URL (default: {DATABASE_URL_ENV})."),
    alembic_ini: str = typer.Option("alembic.ini", "--alembic-ini", help="Path to alembic.ini."),
) -> None:
    """Run schema migrations (Alembic upgrade)."""
    normalized_target = target.strip()
    if not normalized_target:
        typer.echo("Error: --target must be a non-empty revision string.", err=True)
        raise typer.Exit(2)
    try:
        url = resolve_database_url(database_url)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc} (or pass --database-url)", err=True)
        raise typer.Exit(2) from exc
    # migrations/env.py reads the URL from the environment.
    os.environ[DATABASE_URL_ENV] = url
    command.upgrade(Config(alembic_ini), normalized_target)
    typer.echo(f"Migrations applied up to {normalized_target}.")
