"""schedwf: distributed workflow trigger scheduler."""

from schedwf.cron import next_occurrence, upcoming, validate_expression
from schedwf.errors import (
    DispatchError,
    InvalidArgumentError,
    MalformedExpressionError,
    ScheduleConflictError,
    ScheduleNotFoundError,
    SchedulerError,
    StoreError,
    TransientError,
)
from schedwf.models import ExecutionOutcome, ExecutionRecord, Lease, Schedule, ScheduleKind, ScheduleStatus

__version__ = "0.3.0"

__all__ = [
    "DispatchError",
    "ExecutionOutcome",
    "ExecutionRecord",
    "InvalidArgumentError",
    "Lease",
    "MalformedExpressionError",
    "Schedule",
    "ScheduleConflictError",
    "ScheduleKind",
    "ScheduleNotFoundError",
    "ScheduleStatus",
    "SchedulerError",
    "StoreError",
    "TransientError",
    "next_occurrence",
    "upcoming",
    "validate_expression",
]
