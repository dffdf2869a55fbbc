"""Trigger dispatcher: exactly one start attempt, classified outcome."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from schedwf.models import ExecutionOutcome
from schedwf.workflows.base import WorkflowEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchResult:
    outcome: ExecutionOutcome
    run_id: str | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is ExecutionOutcome.SUCCESS


class TriggerDispatcher:
    """Wrap ``WorkflowEngine.start_workflow`` so engine errors become results.

    No internal retry: a failed attempt is retried by the next poll cycle.
    """

    def __init__(self, engine: WorkflowEngine) -> None:
        self._engine = engine

    async def start(
        self,
        workflow_name: str,
        workflow_version: int,
        input: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> DispatchResult:
        try:
            handle = await self._engine.start_workflow(
                workflow_name,
                workflow_version,
                input,
                correlation_id=correlation_id,
            )
        except Exception as exc:
            logger.error(
                "dispatch_failed workflow=%s version=%s error=%s",
                workflow_name,
                workflow_version,
                exc,
            )
            return DispatchResult(outcome=ExecutionOutcome.FAILED, detail=f"{type(exc).__name__}: {exc}")
        detail = handle.detail or f"started run {handle.run_id}"
        return DispatchResult(outcome=ExecutionOutcome.SUCCESS, run_id=handle.run_id, detail=detail)
