"""Concurrency oracle: how many runs of a workflow are active in a namespace."""

from __future__ import annotations

import asyncio
import logging

from schedwf.errors import TransientError
from schedwf.workflows.base import WorkflowEngine

logger = logging.getLogger(__name__)


class ConcurrencyOracle:
    """Read-only active-run count with a hard timeout.

    Every failure, including a timeout, is reported as ``TransientError`` so
    the caller can fail closed.
    """

    def __init__(self, engine: WorkflowEngine, *, timeout_seconds: float = 10.0) -> None:
        self._engine = engine
        self.timeout_seconds = timeout_seconds

    async def count_active(self, namespace: str, workflow_name: str) -> int:
        try:
            count = await asyncio.wait_for(
                self._engine.count_active_runs(namespace, workflow_name),
                timeout=self.timeout_seconds,
            )
        except TransientError:
            raise
        except asyncio.TimeoutError as exc:
            raise TransientError(
                f"active run lookup timed out after {self.timeout_seconds}s for {namespace}/{workflow_name}"
            ) from exc
        except Exception as exc:
            raise TransientError(f"active run lookup failed for {namespace}/{workflow_name}: {exc}") from exc
        return max(0, int(count))

    async def allows(self, namespace: str, workflow_name: str, max_concurrent_runs: int) -> tuple[bool, int]:
        """Return ``(count < max_concurrent_runs, count)``."""
        count = await self.count_active(namespace, workflow_name)
        return count < max_concurrent_runs, count
