"""Workflow engine boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class RunHandle:
    """Identifier the engine assigned to a started run."""

    run_id: str
    detail: str | None = None


class WorkflowEngine(Protocol):
    """The two engine operations the scheduler depends on.

    Implementations raise ``DispatchError`` from ``start_workflow`` and
    ``TransientError`` from ``count_active_runs``.
    """

    async def start_workflow(
        self,
        name: str,
        version: int,
        input: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> RunHandle: ...

    async def count_active_runs(self, namespace: str, workflow_name: str) -> int: ...

    async def aclose(self) -> None: ...
