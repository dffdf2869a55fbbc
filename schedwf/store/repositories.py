"""Schedule store: due selection, optimistic updates, and execution history."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schedwf.cron import to_utc
from schedwf.db.exceptions import TransientStorageError
from schedwf.db.session import get_session
from schedwf.errors import ScheduleConflictError, ScheduleNotFoundError
from schedwf.models import (
    ExecutionOutcome,
    ExecutionRecord,
    Schedule,
    ScheduleKind,
    ScheduleStatus,
)
from schedwf.store.models import ExecutionRecordORM, ScheduleORM

logger = logging.getLogger(__name__)


class ScheduleStore(Protocol):
    """Engine-side mutation surface plus the management reads it needs."""

    async def find_due(self, now: datetime, limit: int, offset: int = 0) -> list[Schedule]: ...

    async def advance_recurring(
        self,
        schedule_id: UUID,
        *,
        expected_next_run: datetime,
        new_next_run: datetime,
        triggered_at: datetime,
    ) -> None: ...

    async def complete_one_shot(
        self,
        schedule_id: UUID,
        *,
        expected_next_run: datetime,
        triggered_at: datetime,
    ) -> None: ...

    async def append_history(self, record: ExecutionRecord) -> None: ...

    async def add(self, schedule: Schedule) -> Schedule: ...

    async def get(self, schedule_id: UUID) -> Schedule | None: ...

    async def list_schedules(
        self, *, namespace: str | None = None, offset: int = 0, limit: int = 50
    ) -> list[Schedule]: ...

    async def set_status(
        self, schedule_id: UUID, status: ScheduleStatus, *, next_run: datetime | None = None
    ) -> Schedule: ...

    async def delete(self, schedule_id: UUID) -> bool: ...

    async def list_history(self, schedule_id: UUID, *, limit: int = 50) -> list[ExecutionRecord]: ...


def _to_schedule(row: ScheduleORM) -> Schedule:
    return Schedule(
        id=row.id,
        namespace=row.namespace,
        name=row.name or "",
        workflow_name=row.workflow_name,
        workflow_version=int(row.workflow_version),
        kind=ScheduleKind(row.schedule_kind),
        cron_expression=row.cron_expression,
        run_at=row.run_at,
        next_run=row.next_run,
        max_concurrent_runs=int(row.max_concurrent_runs),
        last_triggered_at=row.last_triggered_at,
        status=ScheduleStatus(row.status),
        payload=dict(row.payload or {}),
        created_by=row.created_by,
        created_at=row.created_at,
    )


def _to_orm(schedule: Schedule) -> ScheduleORM:
    return ScheduleORM(
        id=schedule.id,
        namespace=schedule.namespace,
        name=schedule.name,
        workflow_name=schedule.workflow_name,
        workflow_version=schedule.workflow_version,
        schedule_kind=schedule.kind.value,
        cron_expression=schedule.cron_expression,
        run_at=schedule.run_at,
        next_run=schedule.next_run,
        max_concurrent_runs=schedule.max_concurrent_runs,
        last_triggered_at=schedule.last_triggered_at,
        status=schedule.status.value,
        payload=dict(schedule.payload),
        created_by=schedule.created_by,
        created_at=schedule.created_at,
    )


def _to_record(row: ExecutionRecordORM) -> ExecutionRecord:
    return ExecutionRecord(
        id=row.id,
        schedule_id=row.schedule_id,
        outcome=ExecutionOutcome(row.outcome),
        attempted_at=row.attempted_at,
        detail=row.detail,
        run_id=row.run_id,
    )


@asynccontextmanager
async def _storage_errors(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError, asyncio.TimeoutError) as exc:
        logger.warning("store_transient_error operation=%s error=%s", operation, type(exc).__name__)
        raise TransientStorageError(operation, type(exc).__name__) from exc


class SqlScheduleStore:
    """PostgreSQL-backed store; every write is conditioned on the read ``next_run``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_due(self, now: datetime, limit: int, offset: int = 0) -> list[Schedule]:
        stmt = (
            select(ScheduleORM)
            .where(
                ScheduleORM.status == ScheduleStatus.ACTIVE.value,
                ScheduleORM.next_run <= to_utc(now),
            )
            .order_by(ScheduleORM.next_run.asc(), ScheduleORM.id.asc())
            .offset(max(0, offset))
            .limit(max(1, limit))
        )
        async with _storage_errors("find_due"), self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_schedule(row) for row in result.scalars().all()]

    async def advance_recurring(
        self,
        schedule_id: UUID,
        *,
        expected_next_run: datetime,
        new_next_run: datetime,
        triggered_at: datetime,
    ) -> None:
        await self._conditional_update(
            "advance_recurring",
            schedule_id,
            expected_next_run,
            next_run=to_utc(new_next_run),
            last_triggered_at=to_utc(triggered_at),
        )

    async def complete_one_shot(
        self,
        schedule_id: UUID,
        *,
        expected_next_run: datetime,
        triggered_at: datetime,
    ) -> None:
        await self._conditional_update(
            "complete_one_shot",
            schedule_id,
            expected_next_run,
            status=ScheduleStatus.DISABLED.value,
            last_triggered_at=to_utc(triggered_at),
        )

    async def _conditional_update(
        self,
        operation: str,
        schedule_id: UUID,
        expected_next_run: datetime,
        **values: object,
    ) -> None:
        stmt = (
            update(ScheduleORM)
            .where(
                ScheduleORM.id == schedule_id,
                ScheduleORM.next_run == to_utc(expected_next_run),
                ScheduleORM.status == ScheduleStatus.ACTIVE.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with _storage_errors(operation), self._session_factory() as session:
            result = await session.execute(stmt)
            if int(result.rowcount or 0) == 1:
                await session.commit()
                return
            exists = await session.scalar(select(ScheduleORM.id).where(ScheduleORM.id == schedule_id))
        if exists is None:
            raise ScheduleNotFoundError(schedule_id)
        raise ScheduleConflictError(schedule_id)

    async def append_history(self, record: ExecutionRecord) -> None:
        row = ExecutionRecordORM(
            id=record.id,
            schedule_id=record.schedule_id,
            attempted_at=to_utc(record.attempted_at),
            outcome=record.outcome.value,
            run_id=record.run_id,
            detail=record.detail,
        )
        async with _storage_errors("append_history"), get_session(self._session_factory) as session:
            session.add(row)

    async def add(self, schedule: Schedule) -> Schedule:
        async with _storage_errors("add"), get_session(self._session_factory) as session:
            session.add(_to_orm(schedule))
        return schedule

    async def get(self, schedule_id: UUID) -> Schedule | None:
        async with _storage_errors("get"), self._session_factory() as session:
            row = await session.scalar(select(ScheduleORM).where(ScheduleORM.id == schedule_id))
            return _to_schedule(row) if row is not None else None

    async def list_schedules(
        self, *, namespace: str | None = None, offset: int = 0, limit: int = 50
    ) -> list[Schedule]:
        stmt = select(ScheduleORM)
        if namespace is not None:
            stmt = stmt.where(ScheduleORM.namespace == namespace)
        stmt = stmt.order_by(ScheduleORM.created_at.asc(), ScheduleORM.id.asc()).offset(max(0, offset)).limit(max(1, limit))
        async with _storage_errors("list_schedules"), self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_schedule(row) for row in result.scalars().all()]

    async def set_status(
        self, schedule_id: UUID, status: ScheduleStatus, *, next_run: datetime | None = None
    ) -> Schedule:
        async with _storage_errors("set_status"), get_session(self._session_factory) as session:
            row = await session.scalar(select(ScheduleORM).where(ScheduleORM.id == schedule_id))
            if row is None:
                raise ScheduleNotFoundError(schedule_id)
            row.status = status.value
            if next_run is not None:
                row.next_run = to_utc(next_run)
        return _to_schedule(row)

    async def delete(self, schedule_id: UUID) -> bool:
        async with _storage_errors("delete"), get_session(self._session_factory) as session:
            result = await session.execute(delete(ScheduleORM).where(ScheduleORM.id == schedule_id))
        return int(result.rowcount or 0) > 0

    async def list_history(self, schedule_id: UUID, *, limit: int = 50) -> list[ExecutionRecord]:
        stmt = (
            select(ExecutionRecordORM)
            .where(ExecutionRecordORM.schedule_id == schedule_id)
            .order_by(ExecutionRecordORM.attempted_at.desc())
            .limit(max(1, limit))
        )
        async with _storage_errors("list_history"), self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]


class InMemoryScheduleStore:
    """In-memory store with the same conditional-write semantics, for tests and local runs."""

    def __init__(self) -> None:
        self._schedules: dict[UUID, Schedule] = {}
        self._history: list[ExecutionRecord] = []
        self._lock = asyncio.Lock()

    @property
    def history(self) -> list[ExecutionRecord]:
        return list(self._history)

    async def find_due(self, now: datetime, limit: int, offset: int = 0) -> list[Schedule]:
        at = to_utc(now)
        async with self._lock:
            due = [
                item
                for item in self._schedules.values()
                if item.status is ScheduleStatus.ACTIVE and item.next_run <= at
            ]
            ordered = sorted(due, key=lambda item: (item.next_run, str(item.id)))
            start = max(0, offset)
            return [item.copy() for item in ordered[start : start + max(1, limit)]]

    async def advance_recurring(
        self,
        schedule_id: UUID,
        *,
        expected_next_run: datetime,
        new_next_run: datetime,
        triggered_at: datetime,
    ) -> None:
        async with self._lock:
            current = self._checked(schedule_id, expected_next_run)
            current.next_run = to_utc(new_next_run)
            current.last_triggered_at = to_utc(triggered_at)

    async def complete_one_shot(
        self,
        schedule_id: UUID,
        *,
        expected_next_run: datetime,
        triggered_at: datetime,
    ) -> None:
        async with self._lock:
            current = self._checked(schedule_id, expected_next_run)
            current.status = ScheduleStatus.DISABLED
            current.last_triggered_at = to_utc(triggered_at)

    def _checked(self, schedule_id: UUID, expected_next_run: datetime) -> Schedule:
        current = self._schedules.get(schedule_id)
        if current is None:
            raise ScheduleNotFoundError(schedule_id)
        if current.next_run != to_utc(expected_next_run) or current.status is not ScheduleStatus.ACTIVE:
            raise ScheduleConflictError(schedule_id)
        return current

    async def append_history(self, record: ExecutionRecord) -> None:
        async with self._lock:
            self._history.append(record)

    async def add(self, schedule: Schedule) -> Schedule:
        async with self._lock:
            self._schedules[schedule.id] = schedule.copy()
        return schedule

    async def get(self, schedule_id: UUID) -> Schedule | None:
        async with self._lock:
            item = self._schedules.get(schedule_id)
            return item.copy() if item is not None else None

    async def list_schedules(
        self, *, namespace: str | None = None, offset: int = 0, limit: int = 50
    ) -> list[Schedule]:
        async with self._lock:
            items = [item for item in self._schedules.values() if namespace is None or item.namespace == namespace]
            ordered = sorted(items, key=lambda item: (item.created_at, str(item.id)))
            start = max(0, offset)
            return [item.copy() for item in ordered[start : start + max(1, limit)]]

    async def set_status(
        self, schedule_id: UUID, status: ScheduleStatus, *, next_run: datetime | None = None
    ) -> Schedule:
        async with self._lock:
            current = self._schedules.get(schedule_id)
            if current is None:
                raise ScheduleNotFoundError(schedule_id)
            current.status = status
            if next_run is not None:
                current.next_run = to_utc(next_run)
            return current.copy()

    async def delete(self, schedule_id: UUID) -> bool:
        async with self._lock:
            return self._schedules.pop(schedule_id, None) is not None

    async def list_history(self, schedule_id: UUID, *, limit: int = 50) -> list[ExecutionRecord]:
        async with self._lock:
            items = [item for item in self._history if item.schedule_id == schedule_id]
            ordered = sorted(items, key=lambda item: item.attempted_at, reverse=True)
            return ordered[: max(1, limit)]
