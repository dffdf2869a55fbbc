"""Schedule persistence: ORM models and store implementations."""

from schedwf.store.models import ExecutionRecordORM, LeaseORM, ScheduleORM
from schedwf.store.repositories import InMemoryScheduleStore, ScheduleStore, SqlScheduleStore

__all__ = [
    "ExecutionRecordORM",
    "InMemoryScheduleStore",
    "LeaseORM",
    "ScheduleORM",
    "ScheduleStore",
    "SqlScheduleStore",
]
