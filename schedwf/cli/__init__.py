"""CLI tools: schedwf run, schedule, history, cron, db, reload."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from datetime import datetime, timezone
from importlib import metadata
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from schedwf.app import SchedulerRuntime
from schedwf.cli import _runtime
from schedwf.cli.db import db_app
from schedwf.cli.schedule import schedule_app
from schedwf.config import (
    ConfigManager,
    register_logging_reload_listener,
    register_poller_reload_listener,
)
from schedwf.cron import upcoming
from schedwf.errors import MalformedExpressionError
from schedwf.models import ExecutionRecord

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(name="schedwf", help="schedwf: distributed workflow trigger scheduler.")
cron_app = typer.Typer(name="cron", help="Cron expression tools.")

app.add_typer(schedule_app, name="schedule")
app.add_typer(db_app, name="db")
app.add_typer(cron_app, name="cron")


def _version() -> str:
    try:
        return metadata.version("schedwf")
    except metadata.PackageNotFoundError:
        return "unknown"


@app.command("version")
def version_command() -> None:
    """Print the installed version."""
    typer.echo(f"schedwf {_version()}")


async def _run_poller(config_path: str | None, once: bool) -> None:
    cfg = _runtime.load_config(config_path)
    async with SchedulerRuntime(cfg) as runtime:
        orchestrator = runtime.build_orchestrator()
        if once:
            report = await orchestrator.run_cycle()
            console.print(
                f"acquired={report.acquired} dispatched={report.dispatched} "
                f"skipped={report.skipped} failed={report.failed}"
            )
            return
        manager = ConfigManager.instance()
        register_poller_reload_listener(orchestrator, manager)
        register_logging_reload_listener(manager)
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                # Windows event loops do not support signal handlers.
                logger.debug("signal_handler_unavailable signal=%s", sig)
        if hasattr(signal, "SIGHUP"):
            try:
                loop.add_signal_handler(signal.SIGHUP, manager.reload)
            except (NotImplementedError, RuntimeError):
                logger.debug("signal_handler_unavailable signal=SIGHUP")
        await orchestrator.run_forever(stop_event)


@app.command("run")
def run_command(
    config: str = typer.Option("", "--config", help="Config file path."),
    once: bool = typer.Option(False, "--once", help="Run a single poll cycle and exit."),
) -> None:
    """Run the poll loop until SIGINT/SIGTERM (SIGHUP reloads poller settings)."""
    asyncio.run(_run_poller(config or None, once))


@app.command("history")
def history_command(
    schedule_id: str = typer.Argument(..., help="Schedule id."),
    limit: int = typer.Option(20, "--limit", min=1, max=1000),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Show execution history for a schedule, newest first."""
    try:
        target = UUID(schedule_id.strip())
    except ValueError as exc:
        typer.echo(f"Error: invalid schedule id: {schedule_id}", err=True)
        raise typer.Exit(2) from exc

    async def _history() -> list[ExecutionRecord]:
        async with _runtime.open_service(config or None) as service:
            return await service.history(target, limit=limit)

    records = asyncio.run(_history())
    if not records:
        console.print("No history.")
        return
    table = Table(title=f"History {target}")
    table.add_column("Attempted at")
    table.add_column("Outcome")
    table.add_column("Run id")
    table.add_column("Detail")
    for record in records:
        table.add_row(
            record.attempted_at.isoformat(),
            record.outcome.value,
            record.run_id or "-",
            (record.detail or "")[:120],
        )
    console.print(table)


@cron_app.command("next")
def cron_next_command(
    expression: str = typer.Argument(..., help="Cron expression (5, 6 or 7 fields)."),
    count: int = typer.Option(5, "--count", "-c", min=1, max=100),
    after: str = typer.Option("", "--after", help="ISO-8601 reference time (default: now, UTC)."),
) -> None:
    """Preview the next occurrences of a cron expression in UTC."""
    reference = datetime.now(timezone.utc)
    if after.strip():
        try:
            reference = datetime.fromisoformat(after.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            typer.echo(f"Error: --after must be an ISO-8601 timestamp: {after}", err=True)
            raise typer.Exit(2) from exc
    try:
        occurrences = upcoming(expression, reference, count)
    except MalformedExpressionError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc
    for item in occurrences:
        typer.echo(item.isoformat())


@app.command("reload")
def reload_command(
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Re-read configuration and show which changes are hot-applied."""
    manager = ConfigManager.instance()
    result = manager.reload(config_path=config or None)
    console.print("[bold]Reload Result[/bold]")
    console.print(f"Applied: {len(result.applied)}")
    for key, value in result.applied.items():
        console.print(f"  + {key} = {value!r}")
    console.print(f"Skipped: {len(result.skipped)}")
    for key, value in result.skipped.items():
        console.print(f"  - {key} = {value!r} (requires restart)")


def main() -> None:
    """CLI entry point."""
    if "--version" in sys.argv or "-V" in sys.argv:
        typer.echo(f"schedwf {_version()}")
        raise SystemExit(0)
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)
