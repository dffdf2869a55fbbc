"""Runtime wiring: database, stores, lease, engine adapter and orchestrator."""

from __future__ import annotations

import logging
from datetime import timedelta
from types import TracebackType
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from schedwf.config.models import EngineConfig, SchedwfConfig
from schedwf.db import create_engine, create_session_factory
from schedwf.lease import SqlLeaseManager
from schedwf.orchestrator import SchedulingOrchestrator
from schedwf.schedules import ScheduleService
from schedwf.store.repositories import SqlScheduleStore
from schedwf.workflows.base import WorkflowEngine
from schedwf.workflows.conductor import ConductorClient
from schedwf.workflows.dispatcher import TriggerDispatcher
from schedwf.workflows.hatchet import HatchetWorkflowEngine
from schedwf.workflows.oracle import ConcurrencyOracle

logger = logging.getLogger(__name__)


def build_workflow_engine(config: EngineConfig) -> WorkflowEngine:
    """Instantiate the configured engine adapter."""
    if config.backend == "conductor":
        conductor = config.conductor
        return ConductorClient(
            conductor.base_url,
            api_token=conductor.api_token,
            timeout_seconds=conductor.timeout_seconds,
        )
    if config.backend == "hatchet":
        hatchet = config.hatchet
        return HatchetWorkflowEngine(
            server_url=hatchet.server_url,
            namespace=hatchet.namespace,
            api_token=hatchet.api_token,
            grpc_host_port=hatchet.grpc_host_port,
            grpc_tls_strategy=hatchet.grpc_tls_strategy,
            active_lookback_hours=hatchet.active_lookback_hours,
        )
    raise ValueError(f"Unsupported engine backend: {config.backend}")


class SchedulerRuntime:
    """Owns every long-lived resource of one scheduler process.

    Use as an async context manager; leaving the block closes the engine
    adapter and disposes the database pool.
    """

    def __init__(
        self,
        config: SchedwfConfig,
        *,
        workflow_engine: WorkflowEngine | None = None,
        db_engine: AsyncEngine | None = None,
    ) -> None:
        self.config = config
        self._workflow_engine = workflow_engine
        self._db_engine = db_engine
        self._owns_db_engine = db_engine is None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self.store: SqlScheduleStore | None = None
        self.service: ScheduleService | None = None
        self.orchestrator: SchedulingOrchestrator | None = None

    async def __aenter__(self) -> SchedulerRuntime:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def start(self) -> None:
        if self._db_engine is None:
            self._db_engine = create_engine(self.config.database)
        self.session_factory = create_session_factory(self._db_engine)
        self.store = SqlScheduleStore(self.session_factory)
        self.service = ScheduleService(self.store)

    def build_orchestrator(self, **overrides: Any) -> SchedulingOrchestrator:
        """Create the orchestrator; requires ``start()`` to have run."""
        if self.session_factory is None or self.store is None:
            raise RuntimeError("SchedulerRuntime.start() must be called before build_orchestrator()")
        poller = self.config.poller
        if self._workflow_engine is None:
            self._workflow_engine = build_workflow_engine(self.config.engine)
        lease_manager = SqlLeaseManager(
            self.session_factory,
            min_hold=timedelta(seconds=poller.lease_min_hold_seconds),
        )
        self.orchestrator = SchedulingOrchestrator(
            self.store,
            lease_manager,
            ConcurrencyOracle(self._workflow_engine, timeout_seconds=poller.oracle_timeout_seconds),
            TriggerDispatcher(self._workflow_engine),
            poller,
            **overrides,
        )
        logger.info(
            "runtime_ready engine=%s holder=%s task=%s",
            self.config.engine.backend,
            self.orchestrator.holder_id,
            poller.task_name,
        )
        return self.orchestrator

    async def close(self) -> None:
        if self._workflow_engine is not None:
            await self._workflow_engine.aclose()
        if self._db_engine is not None and self._owns_db_engine:
            await self._db_engine.dispose()
            self._db_engine = None
