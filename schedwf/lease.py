"""Distributed lease: a time-bounded exclusive claim on a named task.

At most one holder owns an unexpired lease per ``task_name``. A crashed
holder's lease becomes acquirable again once ``held_until`` passes, so no
cleanup is needed. The SQL implementation evaluates expiry against the
database clock, which keeps replicas with skewed local clocks in agreement.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schedwf.models import Lease, utcnow
from schedwf.store.models import LeaseORM

logger = logging.getLogger(__name__)


class AcquireResult(str, Enum):
    ACQUIRED = "acquired"
    ALREADY_HELD = "already_held"


class RenewResult(str, Enum):
    RENEWED = "renewed"
    LOST = "lost"


def default_holder_id() -> str:
    """Return a replica-unique holder id: ``host:pid:nonce``."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


class LeaseManager(Protocol):
    async def try_acquire(self, task_name: str, holder_id: str, ttl: timedelta) -> AcquireResult: ...

    async def renew(self, task_name: str, holder_id: str, ttl: timedelta) -> RenewResult: ...

    async def release(self, task_name: str, holder_id: str) -> None: ...


class SqlLeaseManager:
    """Lease rows in ``scheduler_leases``; acquisition is a conditional upsert."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        min_hold: timedelta = timedelta(seconds=1),
    ) -> None:
        self._session_factory = session_factory
        self.min_hold = min_hold

    async def try_acquire(self, task_name: str, holder_id: str, ttl: timedelta) -> AcquireResult:
        now = func.now()
        insert_stmt = pg_insert(LeaseORM).values(
            task_name=task_name,
            holder_id=holder_id,
            held_until=now + ttl,
            acquired_at=now,
        )
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=[LeaseORM.task_name],
            set_={
                "holder_id": insert_stmt.excluded.holder_id,
                "held_until": insert_stmt.excluded.held_until,
                "acquired_at": insert_stmt.excluded.acquired_at,
            },
            where=LeaseORM.held_until <= func.now(),
        ).returning(LeaseORM.task_name)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            acquired = result.scalar_one_or_none() is not None
            await session.commit()
        if acquired:
            logger.debug("lease_acquired task=%s holder=%s", task_name, holder_id)
            return AcquireResult.ACQUIRED
        logger.debug("lease_already_held task=%s holder=%s", task_name, holder_id)
        return AcquireResult.ALREADY_HELD

    async def renew(self, task_name: str, holder_id: str, ttl: timedelta) -> RenewResult:
        stmt = (
            update(LeaseORM)
            .where(
                LeaseORM.task_name == task_name,
                LeaseORM.holder_id == holder_id,
                LeaseORM.held_until > func.now(),
            )
            .values(held_until=func.now() + ttl)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            renewed = int(result.rowcount or 0) == 1
            await session.commit()
        if not renewed:
            logger.warning("lease_lost task=%s holder=%s", task_name, holder_id)
            return RenewResult.LOST
        return RenewResult.RENEWED

    async def release(self, task_name: str, holder_id: str) -> None:
        """Shorten the lease to ``max(now, acquired_at + min_hold)``; never raises."""
        stmt = (
            update(LeaseORM)
            .where(LeaseORM.task_name == task_name, LeaseORM.holder_id == holder_id)
            .values(held_until=func.greatest(func.now(), LeaseORM.acquired_at + self.min_hold))
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            # Expiry covers a failed release.
            logger.warning("lease_release_failed task=%s holder=%s error=%s", task_name, holder_id, exc)

    async def current(self, task_name: str) -> Lease | None:
        async with self._session_factory() as session:
            row = await session.scalar(select(LeaseORM).where(LeaseORM.task_name == task_name))
        if row is None:
            return None
        return Lease(
            task_name=row.task_name,
            holder_id=row.holder_id,
            held_until=row.held_until,
            acquired_at=row.acquired_at,
        )


class InMemoryLeaseManager:
    """Single-process lease table with an injectable clock."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utcnow,
        min_hold: timedelta = timedelta(0),
    ) -> None:
        self._clock = clock
        self.min_hold = min_hold
        self._leases: dict[str, Lease] = {}
        self._lock = asyncio.Lock()

    async def try_acquire(self, task_name: str, holder_id: str, ttl: timedelta) -> AcquireResult:
        async with self._lock:
            now = self._clock()
            existing = self._leases.get(task_name)
            if existing is not None and existing.held_until > now:
                return AcquireResult.ALREADY_HELD
            self._leases[task_name] = Lease(
                task_name=task_name,
                holder_id=holder_id,
                held_until=now + ttl,
                acquired_at=now,
            )
            return AcquireResult.ACQUIRED

    async def renew(self, task_name: str, holder_id: str, ttl: timedelta) -> RenewResult:
        async with self._lock:
            now = self._clock()
            existing = self._leases.get(task_name)
            if existing is None or existing.holder_id != holder_id or existing.held_until <= now:
                return RenewResult.LOST
            self._leases[task_name] = Lease(
                task_name=task_name,
                holder_id=holder_id,
                held_until=now + ttl,
                acquired_at=existing.acquired_at,
            )
            return RenewResult.RENEWED

    async def release(self, task_name: str, holder_id: str) -> None:
        async with self._lock:
            existing = self._leases.get(task_name)
            if existing is None or existing.holder_id != holder_id:
                return
            held_until = max(self._clock(), existing.acquired_at + self.min_hold)
            self._leases[task_name] = Lease(
                task_name=task_name,
                holder_id=holder_id,
                held_until=held_until,
                acquired_at=existing.acquired_at,
            )

    async def current(self, task_name: str) -> Lease | None:
        async with self._lock:
            return self._leases.get(task_name)
