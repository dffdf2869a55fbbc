"""Scheduler exception taxonomy.

Per-schedule errors are contained by the orchestrator and surface to schedule
owners only as history records; they never abort a poll cycle.
"""


class SchedulerError(Exception):
    """Base exception for scheduling engine errors."""


class InvalidArgumentError(SchedulerError, ValueError):
    """Raised when a schedule definition is rejected at creation time."""


class MalformedExpressionError(InvalidArgumentError):
    """Raised when a cron expression cannot be parsed or never fires."""

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Malformed cron expression '{expression}': {reason}")


class TransientError(SchedulerError):
    """Raised when an external collaborator is temporarily unavailable."""


class DispatchError(SchedulerError):
    """Raised by engine adapters when a start call is rejected or fails."""


class StoreError(SchedulerError):
    """Base class for schedule store update failures."""


class ScheduleNotFoundError(StoreError):
    """The schedule was deleted concurrently."""

    def __init__(self, schedule_id: object) -> None:
        self.schedule_id = schedule_id
        super().__init__(f"Schedule {schedule_id} not found")


class ScheduleConflictError(StoreError):
    """The schedule changed since it was read (optimistic check lost)."""

    def __init__(self, schedule_id: object) -> None:
        self.schedule_id = schedule_id
        super().__init__(f"Schedule {schedule_id} was modified concurrently")
