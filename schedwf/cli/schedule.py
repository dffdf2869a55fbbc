"""schedwf schedule: create, list, pause, resume, delete."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from schedwf.cli import _runtime
from schedwf.errors import InvalidArgumentError, ScheduleNotFoundError
from schedwf.models import Schedule, ScheduleKind

console = Console()

schedule_app = typer.Typer(name="schedule", help="Manage workflow schedules.")


def _parse_id(raw: str) -> UUID:
    try:
        return UUID(raw.strip())
    except ValueError as exc:
        typer.echo(f"Error: invalid schedule id: {raw}", err=True)
        raise typer.Exit(2) from exc


def _parse_payload(raw: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        typer.echo(f"Error: --payload is not valid JSON: {exc}", err=True)
        raise typer.Exit(2) from exc
    if not isinstance(data, dict):
        typer.echo("Error: --payload must be a JSON object.", err=True)
        raise typer.Exit(2)
    return data


def _parse_run_at(raw: str) -> datetime | None:
    if not raw.strip():
        return None
    try:
        return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        typer.echo(f"Error: --run-at must be an ISO-8601 timestamp: {raw}", err=True)
        raise typer.Exit(2) from exc


def _schedule_table(items: list[Schedule]) -> Table:
    table = Table(title="Schedules")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Workflow")
    table.add_column("Kind")
    table.add_column("When")
    table.add_column("Next run")
    table.add_column("Max")
    table.add_column("Status")
    for item in items:
        when = item.cron_expression if item.kind is ScheduleKind.RECURRING else (
            item.run_at.isoformat() if item.run_at else "-"
        )
        table.add_row(
            str(item.id),
            item.name,
            f"{item.workflow_name} v{item.workflow_version}",
            item.kind.value,
            when or "-",
            item.next_run.isoformat(),
            str(item.max_concurrent_runs),
            item.status.value,
        )
    return table


@schedule_app.command("create")
def create_command(
    namespace: str = typer.Option(..., "--namespace", "-n", help="Owning namespace."),
    workflow: str = typer.Option(..., "--workflow", "-w", help="Workflow name to start."),
    cron: str = typer.Option("", "--cron", help="Cron expression (recurring schedule)."),
    run_at: str = typer.Option("", "--run-at", help="ISO-8601 time (one-shot schedule)."),
    version: int = typer.Option(1, "--version", help="Workflow version."),
    max_concurrent: int = typer.Option(1, "--max-concurrent", help="Active-run ceiling."),
    payload: str = typer.Option("", "--payload", help="JSON object passed as workflow input."),
    name: str = typer.Option("", "--name", help="Display name (default namespace:workflow)."),
    created_by: str = typer.Option("system", "--created-by", help="Creator recorded on the schedule."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Create a recurring (--cron) or one-shot (--run-at) schedule."""
    if bool(cron.strip()) == bool(run_at.strip()):
        typer.echo("Error: pass exactly one of --cron or --run-at.", err=True)
        raise typer.Exit(2)
    request: dict[str, Any] = {
        "namespace": namespace,
        "workflow_name": workflow,
        "kind": ScheduleKind.RECURRING if cron.strip() else ScheduleKind.ONE_SHOT,
        "cron_expression": cron.strip() or None,
        "run_at": _parse_run_at(run_at),
        "workflow_version": version,
        "max_concurrent_runs": max_concurrent,
        "payload": _parse_payload(payload),
        "name": name.strip() or None,
        "created_by": created_by,
    }

    async def _create() -> Schedule:
        async with _runtime.open_service(config or None) as service:
            return await service.create(request)

    try:
        schedule = asyncio.run(_create())
    except InvalidArgumentError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc
    console.print(f"[green]Created[/green] {schedule.id} next_run={schedule.next_run.isoformat()}")


@schedule_app.command("list")
def list_command(
    namespace: str = typer.Option("", "--namespace", "-n", help="Filter by namespace."),
    limit: int = typer.Option(50, "--limit", min=1, max=1000),
    offset: int = typer.Option(0, "--offset", min=0),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """List schedules."""

    async def _list() -> list[Schedule]:
        async with _runtime.open_service(config or None) as service:
            return await service.list(namespace=namespace or None, offset=offset, limit=limit)

    items = asyncio.run(_list())
    if not items:
        console.print("No schedules.")
        return
    console.print(_schedule_table(items))


def _lifecycle(action: str, schedule_id: str, config: str) -> None:
    target = _parse_id(schedule_id)

    async def _run() -> Schedule | None:
        async with _runtime.open_service(config or None) as service:
            if action == "pause":
                return await service.pause(target)
            if action == "resume":
                return await service.resume(target)
            await service.delete(target)
            return None

    try:
        result = asyncio.run(_run())
    except ScheduleNotFoundError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
    except InvalidArgumentError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from exc
    if result is None:
        console.print(f"Deleted {target}")
    else:
        console.print(f"{result.id} status={result.status.value} next_run={result.next_run.isoformat()}")


@schedule_app.command("pause")
def pause_command(
    schedule_id: str = typer.Argument(..., help="Schedule id."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Pause an active schedule."""
    _lifecycle("pause", schedule_id, config)


@schedule_app.command("resume")
def resume_command(
    schedule_id: str = typer.Argument(..., help="Schedule id."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Resume a paused schedule."""
    _lifecycle("resume", schedule_id, config)


@schedule_app.command("delete")
def delete_command(
    schedule_id: str = typer.Argument(..., help="Schedule id."),
    config: str = typer.Option("", "--config", help="Config file path."),
) -> None:
    """Delete a schedule; its history is kept."""
    _lifecycle("delete", schedule_id, config)
