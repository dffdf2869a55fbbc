"""Scheduler domain models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class ScheduleKind(str, Enum):
    RECURRING = "recurring"
    ONE_SHOT = "one_shot"


class ScheduleStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DISABLED = "disabled"


class ExecutionOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Schedule:
    """Durable definition of a trigger intent."""

    namespace: str
    workflow_name: str
    kind: ScheduleKind
    next_run: datetime
    workflow_version: int = 1
    cron_expression: str | None = None
    run_at: datetime | None = None
    max_concurrent_runs: int = 1
    last_triggered_at: datetime | None = None
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    payload: dict[str, Any] = field(default_factory=dict)
    name: str = ""
    created_by: str = "system"
    created_at: datetime = field(default_factory=utcnow)
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"{self.namespace}:{self.workflow_name}"

    def copy(self, **changes: Any) -> Schedule:
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class ExecutionRecord:
    """Immutable audit entry for one dispatch attempt or explicit skip."""

    schedule_id: UUID
    outcome: ExecutionOutcome
    attempted_at: datetime
    detail: str | None = None
    run_id: str | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True, slots=True)
class Lease:
    """Snapshot of a coordination lease row."""

    task_name: str
    holder_id: str
    held_until: datetime
    acquired_at: datetime
