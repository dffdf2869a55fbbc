"""Scheduling orchestrator: the lease-guarded poll cycle.

One cycle walks ``IDLE -> ACQUIRING_LEASE -> POLLING -> PROCESSING -> DONE``.
Only the replica holding the poller lease processes schedules; every other
replica finds the lease held and ends its cycle immediately. Per-schedule
failures become history records and never abort the cycle. A lease failure,
a lost lease, or ``find_due`` failing ends the cycle early.

Delivery is at-least-once: a run started just before a failed state update
is started again on the next cycle.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from schedwf.config.models import NextRunPolicy, PollerConfig
from schedwf.cron import next_occurrence
from schedwf.errors import (
    MalformedExpressionError,
    ScheduleConflictError,
    ScheduleNotFoundError,
    TransientError,
)
from schedwf.lease import AcquireResult, LeaseManager, RenewResult, default_holder_id
from schedwf.models import ExecutionOutcome, ExecutionRecord, Schedule, ScheduleKind, utcnow
from schedwf.store.repositories import ScheduleStore
from schedwf.workflows.dispatcher import TriggerDispatcher
from schedwf.workflows.oracle import ConcurrencyOracle

logger = logging.getLogger(__name__)


class CyclePhase(str, Enum):
    IDLE = "idle"
    ACQUIRING_LEASE = "acquiring_lease"
    POLLING = "polling"
    PROCESSING = "processing"
    DONE = "done"


@dataclass(slots=True)
class CycleReport:
    """Summary of one poll cycle."""

    holder_id: str
    acquired: bool = False
    pages: int = 0
    examined: int = 0
    dispatched: int = 0
    skipped: int = 0
    failed: int = 0
    lease_lost: bool = False
    budget_exhausted: bool = False
    aborted: str | None = None
    outcomes: dict[UUID, ExecutionOutcome] = field(default_factory=dict)

    def count(self, schedule_id: UUID, outcome: ExecutionOutcome) -> None:
        self.outcomes[schedule_id] = outcome
        if outcome is ExecutionOutcome.SUCCESS:
            self.dispatched += 1
        elif outcome is ExecutionOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


class SchedulingOrchestrator:
    """Drive due schedules through gate, dispatch and state update."""

    def __init__(
        self,
        store: ScheduleStore,
        lease_manager: LeaseManager,
        oracle: ConcurrencyOracle,
        dispatcher: TriggerDispatcher,
        settings: PollerConfig | None = None,
        *,
        holder_id: str | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._lease_manager = lease_manager
        self._oracle = oracle
        self._dispatcher = dispatcher
        self._settings = settings or PollerConfig()
        self._pending_settings: PollerConfig | None = None
        self.holder_id = holder_id or default_holder_id()
        self._clock = clock
        self._monotonic = monotonic
        self.phase = CyclePhase.IDLE

    @property
    def settings(self) -> PollerConfig:
        return self._settings

    def apply_settings(self, settings: PollerConfig) -> None:
        """Stage new poller settings; they take effect at the next cycle."""
        self._pending_settings = settings
        logger.info(
            "poller_settings_staged page_size=%s worker_concurrency=%s next_run_policy=%s",
            settings.page_size,
            settings.worker_concurrency,
            settings.next_run_policy.value,
        )

    def _activate_pending_settings(self) -> None:
        if self._pending_settings is None:
            return
        self._settings = self._pending_settings
        self._pending_settings = None
        if hasattr(self._oracle, "timeout_seconds"):
            self._oracle.timeout_seconds = self._settings.oracle_timeout_seconds
        if hasattr(self._lease_manager, "min_hold"):
            self._lease_manager.min_hold = timedelta(seconds=self._settings.lease_min_hold_seconds)

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Run cycles with a fixed delay between them until *stop_event* is set."""
        logger.info("poller_started holder=%s task=%s", self.holder_id, self._settings.task_name)
        while not stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("poll_cycle_failed holder=%s", self.holder_id)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._settings.poll_interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("poller_stopped holder=%s", self.holder_id)

    async def run_cycle(self) -> CycleReport:
        self._activate_pending_settings()
        settings = self._settings
        report = CycleReport(holder_id=self.holder_id)
        ttl = timedelta(seconds=settings.lease_ttl_seconds)

        self.phase = CyclePhase.ACQUIRING_LEASE
        try:
            acquired = await self._lease_manager.try_acquire(settings.task_name, self.holder_id, ttl)
        except Exception as exc:
            logger.error("lease_acquire_failed task=%s holder=%s error=%s", settings.task_name, self.holder_id, exc)
            report.aborted = f"lease acquire failed: {exc}"
            self.phase = CyclePhase.DONE
            return report
        if acquired is AcquireResult.ALREADY_HELD:
            logger.debug("cycle_lease_held_elsewhere task=%s holder=%s", settings.task_name, self.holder_id)
            self.phase = CyclePhase.DONE
            return report

        report.acquired = True
        deadline = self._monotonic() + settings.cycle_budget_seconds
        try:
            await self._poll(settings, report, deadline, ttl)
        finally:
            try:
                await self._lease_manager.release(settings.task_name, self.holder_id)
            finally:
                self.phase = CyclePhase.DONE
        logger.info(
            "cycle_complete holder=%s pages=%s examined=%s dispatched=%s skipped=%s failed=%s "
            "budget_exhausted=%s lease_lost=%s aborted=%s",
            self.holder_id,
            report.pages,
            report.examined,
            report.dispatched,
            report.skipped,
            report.failed,
            report.budget_exhausted,
            report.lease_lost,
            report.aborted,
        )
        return report

    async def _poll(
        self,
        settings: PollerConfig,
        report: CycleReport,
        deadline: float,
        ttl: timedelta,
    ) -> None:
        cycle_now = self._clock()
        seen: set[UUID] = set()
        offset = 0
        while report.pages < settings.max_pages_per_cycle:
            if report.pages > 0:
                try:
                    renewed = await self._lease_manager.renew(settings.task_name, self.holder_id, ttl)
                except Exception as exc:
                    logger.error("lease_renew_failed task=%s error=%s", settings.task_name, exc)
                    renewed = RenewResult.LOST
                if renewed is RenewResult.LOST:
                    report.lease_lost = True
                    return

            self.phase = CyclePhase.POLLING
            try:
                page = await self._store.find_due(cycle_now, settings.page_size, offset)
            except Exception as exc:
                logger.error("find_due_failed offset=%s error=%s", offset, exc)
                report.aborted = f"find_due failed: {exc}"
                return
            report.pages += 1

            self.phase = CyclePhase.PROCESSING
            remaining_due = await self._process_page(page, seen, settings, report, deadline)
            offset += remaining_due
            if report.budget_exhausted or len(page) < settings.page_size:
                return

    async def _process_page(
        self,
        page: list[Schedule],
        seen: set[UUID],
        settings: PollerConfig,
        report: CycleReport,
        deadline: float,
    ) -> int:
        """Process a page in ``next_run`` order; return how many rows kept their position."""
        semaphore = asyncio.Semaphore(settings.worker_concurrency)

        async def _guarded(schedule: Schedule) -> bool:
            async with semaphore:
                if self._monotonic() >= deadline:
                    report.budget_exhausted = True
                    return True
                return await self._process_schedule(schedule, settings, report)

        tasks: list[Any] = []
        remaining_due = 0
        for schedule in page:
            if schedule.id in seen:
                # Advanced earlier this cycle yet still due (catch-up), or a shifted page.
                remaining_due += 1
                continue
            seen.add(schedule.id)
            tasks.append(_guarded(schedule))
        results = await asyncio.gather(*tasks)
        return remaining_due + sum(1 for still_due in results if still_due)

    async def _process_schedule(
        self,
        schedule: Schedule,
        settings: PollerConfig,
        report: CycleReport,
    ) -> bool:
        """Gate, dispatch and advance one schedule.

        Returns True when the row kept its ``next_run`` and therefore its
        position at the head of the due set.
        """
        report.examined += 1
        try:
            return await self._fire(schedule, settings, report)
        except Exception as exc:
            logger.exception("schedule_processing_error schedule_id=%s", schedule.id)
            await self._record(schedule, ExecutionOutcome.FAILED, report, detail=f"{type(exc).__name__}: {exc}")
            return True

    async def _fire(
        self,
        schedule: Schedule,
        settings: PollerConfig,
        report: CycleReport,
    ) -> bool:
        triggered_at = self._clock()
        new_next_run: datetime | None
        if schedule.kind is ScheduleKind.RECURRING:
            try:
                new_next_run = self._next_run(schedule, settings.next_run_policy, triggered_at)
            except MalformedExpressionError as exc:
                logger.error("schedule_bad_expression schedule_id=%s error=%s", schedule.id, exc)
                await self._record(schedule, ExecutionOutcome.FAILED, report, detail=str(exc))
                return True
        elif schedule.kind is ScheduleKind.ONE_SHOT:
            new_next_run = None
        else:
            raise ValueError(f"Unsupported schedule kind: {schedule.kind!r}")

        try:
            allowed, active = await self._oracle.allows(
                schedule.namespace, schedule.workflow_name, schedule.max_concurrent_runs
            )
        except TransientError as exc:
            logger.warning("schedule_skipped_oracle_unavailable schedule_id=%s error=%s", schedule.id, exc)
            await self._record(
                schedule, ExecutionOutcome.SKIPPED, report, detail=f"concurrency check unavailable: {exc}"
            )
            return True
        if not allowed:
            logger.warning(
                "schedule_skipped_concurrency schedule_id=%s active=%s max=%s",
                schedule.id,
                active,
                schedule.max_concurrent_runs,
            )
            await self._record(
                schedule,
                ExecutionOutcome.SKIPPED,
                report,
                detail=f"active runs {active} >= max_concurrent_runs {schedule.max_concurrent_runs}",
            )
            return True

        result = await self._dispatcher.start(
            schedule.workflow_name,
            schedule.workflow_version,
            {**schedule.payload, "scheduledBy": str(schedule.id)},
            correlation_id=schedule.namespace,
        )
        if not result.ok:
            await self._record(schedule, ExecutionOutcome.FAILED, report, detail=result.detail)
            return True

        try:
            if new_next_run is not None:
                await self._store.advance_recurring(
                    schedule.id,
                    expected_next_run=schedule.next_run,
                    new_next_run=new_next_run,
                    triggered_at=triggered_at,
                )
            else:
                await self._store.complete_one_shot(
                    schedule.id,
                    expected_next_run=schedule.next_run,
                    triggered_at=triggered_at,
                )
        except (ScheduleConflictError, ScheduleNotFoundError) as exc:
            logger.info("schedule_update_lost schedule_id=%s run_id=%s reason=%s", schedule.id, result.run_id, exc)
            await self._record(
                schedule,
                ExecutionOutcome.FAILED,
                report,
                detail=f"run {result.run_id} started but state update lost: {exc}",
                run_id=result.run_id,
            )
            # Either gone or moved by another writer; not counted toward the offset.
            return False

        await self._record(schedule, ExecutionOutcome.SUCCESS, report, detail=result.detail, run_id=result.run_id)
        # An advanced row moved to a later next_run, possibly behind unprocessed
        # rows, so it no longer holds its offset slot even if still due.
        return False

    @staticmethod
    def _next_run(schedule: Schedule, policy: NextRunPolicy, triggered_at: datetime) -> datetime:
        if not schedule.cron_expression:
            raise MalformedExpressionError("", "recurring schedule has no cron expression")
        if policy is NextRunPolicy.CATCH_UP:
            return next_occurrence(schedule.cron_expression, schedule.next_run)
        return next_occurrence(schedule.cron_expression, max(triggered_at, schedule.next_run))

    async def _record(
        self,
        schedule: Schedule,
        outcome: ExecutionOutcome,
        report: CycleReport,
        *,
        detail: str | None = None,
        run_id: str | None = None,
    ) -> None:
        report.count(schedule.id, outcome)
        record = ExecutionRecord(
            schedule_id=schedule.id,
            outcome=outcome,
            attempted_at=self._clock(),
            detail=detail,
            run_id=run_id,
        )
        try:
            await self._store.append_history(record)
        except Exception:
            logger.exception(
                "history_append_failed schedule_id=%s outcome=%s", schedule.id, outcome.value
            )
