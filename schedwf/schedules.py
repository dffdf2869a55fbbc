"""Schedule management: creation-time validation and lifecycle changes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from schedwf.cron import next_occurrence, to_utc
from schedwf.errors import InvalidArgumentError, ScheduleNotFoundError
from schedwf.models import ExecutionRecord, Schedule, ScheduleKind, ScheduleStatus, utcnow
from schedwf.store.repositories import ScheduleStore

logger = logging.getLogger(__name__)


class ScheduleRequest(BaseModel):
    """Validated input for creating a schedule."""

    namespace: str = Field(min_length=1, max_length=100)
    workflow_name: str = Field(min_length=1, max_length=200)
    kind: ScheduleKind
    workflow_version: int = Field(default=1, ge=1)
    cron_expression: str | None = None
    run_at: datetime | None = None
    max_concurrent_runs: int = Field(default=1, ge=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    name: str | None = Field(default=None, max_length=200)
    created_by: str = Field(default="system", min_length=1, max_length=100)

    @field_validator("namespace", "workflow_name", "created_by")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @model_validator(mode="after")
    def _check_kind_fields(self) -> ScheduleRequest:
        if self.kind is ScheduleKind.RECURRING:
            if not self.cron_expression or not self.cron_expression.strip():
                raise ValueError("cron_expression is required for recurring schedules")
            if self.run_at is not None:
                raise ValueError("run_at is only valid for one-shot schedules")
        elif self.kind is ScheduleKind.ONE_SHOT:
            if self.run_at is None:
                raise ValueError("run_at is required for one-shot schedules")
            if self.cron_expression:
                raise ValueError("cron_expression is only valid for recurring schedules")
        else:
            raise ValueError(f"unsupported schedule kind: {self.kind!r}")
        return self


class ScheduleService:
    """Create, pause, resume and delete schedules against a store."""

    def __init__(self, store: ScheduleStore, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def create(self, request: ScheduleRequest | dict[str, Any]) -> Schedule:
        """Validate and persist a new schedule with its initial ``next_run``.

        Raises:
            InvalidArgumentError: missing or contradictory fields, a malformed
                cron expression, or a ``run_at`` that is not in the future.
        """
        if isinstance(request, dict):
            try:
                request = ScheduleRequest.model_validate(request)
            except ValidationError as exc:
                raise InvalidArgumentError(str(exc)) from exc
        now = self._clock()
        if request.kind is ScheduleKind.RECURRING:
            assert request.cron_expression is not None
            # MalformedExpressionError is an InvalidArgumentError.
            next_run = next_occurrence(request.cron_expression, now)
            run_at = None
        elif request.kind is ScheduleKind.ONE_SHOT:
            assert request.run_at is not None
            run_at = to_utc(request.run_at)
            if run_at <= to_utc(now):
                raise InvalidArgumentError("run_at must be in the future")
            next_run = run_at
        else:
            raise InvalidArgumentError(f"unsupported schedule kind: {request.kind!r}")

        schedule = Schedule(
            namespace=request.namespace,
            workflow_name=request.workflow_name,
            workflow_version=request.workflow_version,
            kind=request.kind,
            cron_expression=request.cron_expression.strip() if request.cron_expression else None,
            run_at=run_at,
            next_run=next_run,
            max_concurrent_runs=request.max_concurrent_runs,
            payload=dict(request.payload),
            name=request.name or "",
            created_by=request.created_by,
            created_at=to_utc(now),
        )
        await self._store.add(schedule)
        logger.info(
            "schedule_created schedule_id=%s namespace=%s workflow=%s kind=%s next_run=%s",
            schedule.id,
            schedule.namespace,
            schedule.workflow_name,
            schedule.kind.value,
            schedule.next_run.isoformat(),
        )
        return schedule

    async def get(self, schedule_id: UUID) -> Schedule:
        schedule = await self._store.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    async def list(self, *, namespace: str | None = None, offset: int = 0, limit: int = 50) -> list[Schedule]:
        return await self._store.list_schedules(namespace=namespace, offset=offset, limit=limit)

    async def pause(self, schedule_id: UUID) -> Schedule:
        schedule = await self.get(schedule_id)
        if schedule.status is not ScheduleStatus.ACTIVE:
            raise InvalidArgumentError(f"schedule {schedule_id} is {schedule.status.value}, not active")
        paused = await self._store.set_status(schedule_id, ScheduleStatus.PAUSED)
        logger.info("schedule_paused schedule_id=%s", schedule_id)
        return paused

    async def resume(self, schedule_id: UUID) -> Schedule:
        """Reactivate a paused schedule.

        A recurring schedule resumes from the next occurrence after now, so
        occurrences missed while paused are not fired. A one-shot keeps its
        ``run_at`` and fires on the next cycle if that time has passed.
        """
        schedule = await self.get(schedule_id)
        if schedule.status is ScheduleStatus.ACTIVE:
            return schedule
        if schedule.status is ScheduleStatus.DISABLED:
            raise InvalidArgumentError(f"schedule {schedule_id} is disabled and cannot be resumed")
        next_run: datetime | None
        if schedule.kind is ScheduleKind.RECURRING:
            if not schedule.cron_expression:
                raise InvalidArgumentError(f"recurring schedule {schedule_id} has no cron expression")
            next_run = next_occurrence(schedule.cron_expression, self._clock())
        elif schedule.kind is ScheduleKind.ONE_SHOT:
            next_run = None
        else:
            raise InvalidArgumentError(f"unsupported schedule kind: {schedule.kind!r}")
        resumed = await self._store.set_status(schedule_id, ScheduleStatus.ACTIVE, next_run=next_run)
        logger.info("schedule_resumed schedule_id=%s next_run=%s", schedule_id, resumed.next_run.isoformat())
        return resumed

    async def delete(self, schedule_id: UUID) -> None:
        if not await self._store.delete(schedule_id):
            raise ScheduleNotFoundError(schedule_id)
        logger.info("schedule_deleted schedule_id=%s", schedule_id)

    async def history(self, schedule_id: UUID, *, limit: int = 50) -> list[ExecutionRecord]:
        return await self._store.list_history(schedule_id, limit=limit)
