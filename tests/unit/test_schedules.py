"""Unit tests for schedule creation and lifecycle management."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from schedwf.errors import InvalidArgumentError, MalformedExpressionError, ScheduleNotFoundError
from schedwf.models import ExecutionOutcome, ExecutionRecord, ScheduleKind, ScheduleStatus
from schedwf.schedules import ScheduleRequest, ScheduleService
from schedwf.store import InMemoryScheduleStore

UTC = timezone.utc
START = datetime(2025, 1, 1, 0, 0, tzinfo=UTC)


def _service(now: datetime = START) -> tuple[ScheduleService, InMemoryScheduleStore]:
    store = InMemoryScheduleStore()
    return ScheduleService(store, clock=lambda: now), store


async def test_create_recurring_sets_first_next_run() -> None:
    service, store = _service()
    schedule = await service.create(
        {"namespace": "billing", "workflow_name": "invoice-run", "kind": "recurring", "cron_expression": "0 9 * * *"}
    )
    assert schedule.next_run == datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
    assert schedule.status is ScheduleStatus.ACTIVE
    assert schedule.name == "billing:invoice-run"
    assert schedule.created_by == "system"
    assert schedule.workflow_version == 1
    assert schedule.max_concurrent_runs == 1
    assert (await store.get(schedule.id)) is not None


async def test_create_one_shot_uses_run_at() -> None:
    service, _ = _service()
    run_at = START + timedelta(hours=2)
    schedule = await service.create(
        ScheduleRequest(namespace="ops", workflow_name="cleanup", kind=ScheduleKind.ONE_SHOT, run_at=run_at)
    )
    assert schedule.next_run == run_at
    assert schedule.run_at == run_at
    assert schedule.cron_expression is None


async def test_create_one_shot_in_past_is_rejected() -> None:
    service, store = _service()
    with pytest.raises(InvalidArgumentError, match="future"):
        await service.create(
            {"namespace": "ops", "workflow_name": "cleanup", "kind": "one_shot", "run_at": START - timedelta(seconds=1)}
        )
    assert await store.list_schedules() == []


async def test_create_one_shot_at_now_is_rejected() -> None:
    service, _ = _service()
    with pytest.raises(InvalidArgumentError):
        await service.create({"namespace": "ops", "workflow_name": "cleanup", "kind": "one_shot", "run_at": START})


async def test_create_recurring_with_malformed_cron_is_rejected() -> None:
    service, _ = _service()
    with pytest.raises(MalformedExpressionError):
        await service.create(
            {"namespace": "ops", "workflow_name": "w", "kind": "recurring", "cron_expression": "99 * * * *"}
        )


@pytest.mark.parametrize(
    "payload",
    [
        {"namespace": "ops", "workflow_name": "w", "kind": "recurring"},
        {"namespace": "ops", "workflow_name": "w", "kind": "one_shot"},
        {"namespace": "ops", "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *", "max_concurrent_runs": 0},
        {"namespace": "ops", "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *", "workflow_version": 0},
        {"namespace": " ", "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *"},
        {"namespace": "x" * 101, "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *"},
        {"namespace": "ops", "workflow_name": "w", "kind": "weekly", "cron_expression": "0 9 * * *"},
    ],
)
async def test_create_rejects_invalid_requests(payload: dict) -> None:
    service, _ = _service()
    with pytest.raises(InvalidArgumentError):
        await service.create(payload)


async def test_pause_and_resume_recurring_recomputes_next_run() -> None:
    now = START
    store = InMemoryScheduleStore()
    service = ScheduleService(store, clock=lambda: now)
    schedule = await service.create(
        {"namespace": "ops", "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *"}
    )
    paused = await service.pause(schedule.id)
    assert paused.status is ScheduleStatus.PAUSED

    now = START + timedelta(days=3, hours=10)
    resumed = await service.resume(schedule.id)
    assert resumed.status is ScheduleStatus.ACTIVE
    assert resumed.next_run == datetime(2025, 1, 5, 9, 0, tzinfo=UTC)


async def test_pause_requires_active_schedule() -> None:
    service, _ = _service()
    schedule = await service.create(
        {"namespace": "ops", "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *"}
    )
    await service.pause(schedule.id)
    with pytest.raises(InvalidArgumentError):
        await service.pause(schedule.id)


async def test_resume_disabled_one_shot_is_rejected() -> None:
    service, store = _service()
    schedule = await service.create(
        {"namespace": "ops", "workflow_name": "w", "kind": "one_shot", "run_at": START + timedelta(minutes=5)}
    )
    await store.set_status(schedule.id, ScheduleStatus.DISABLED)
    with pytest.raises(InvalidArgumentError):
        await service.resume(schedule.id)


async def test_resume_recurring_without_cron_is_rejected(make_schedule) -> None:
    service, store = _service()
    schedule = make_schedule(cron_expression=None, status=ScheduleStatus.PAUSED)
    await store.add(schedule)

    with pytest.raises(InvalidArgumentError, match="no cron expression"):
        await service.resume(schedule.id)
    assert (await store.get(schedule.id)).status is ScheduleStatus.PAUSED  # type: ignore[union-attr]


async def test_resume_active_is_noop() -> None:
    service, _ = _service()
    schedule = await service.create(
        {"namespace": "ops", "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *"}
    )
    resumed = await service.resume(schedule.id)
    assert resumed.next_run == schedule.next_run


async def test_delete_keeps_history() -> None:
    service, store = _service()
    schedule = await service.create(
        {"namespace": "ops", "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *"}
    )
    await store.append_history(
        ExecutionRecord(schedule_id=schedule.id, outcome=ExecutionOutcome.SUCCESS, attempted_at=START)
    )
    await service.delete(schedule.id)
    assert await store.get(schedule.id) is None
    assert len(await service.history(schedule.id)) == 1


async def test_missing_schedule_raises_not_found() -> None:
    service, _ = _service()
    with pytest.raises(ScheduleNotFoundError):
        await service.pause(uuid4())
    with pytest.raises(ScheduleNotFoundError):
        await service.delete(uuid4())


async def test_list_filters_by_namespace() -> None:
    service, _ = _service()
    for ns in ("a", "b", "a"):
        await service.create({"namespace": ns, "workflow_name": "w", "kind": "recurring", "cron_expression": "0 9 * * *"})
    assert len(await service.list(namespace="a")) == 2
    assert len(await service.list()) == 3
