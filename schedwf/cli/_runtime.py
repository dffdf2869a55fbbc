"""Shared helpers for CLI commands that need a configured runtime."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from schedwf.app import SchedulerRuntime
from schedwf.config import ConfigManager, SchedwfConfig
from schedwf.logging_setup import configure_logging
from schedwf.schedules import ScheduleService


def load_config(config_path: str | None) -> SchedwfConfig:
    manager = ConfigManager.load(config_path=config_path or None)
    cfg = manager.get()
    configure_logging(cfg.logging)
    return cfg


@asynccontextmanager
async def open_service(config_path: str | None) -> AsyncIterator[ScheduleService]:
    """Yield a ScheduleService bound to the configured database."""
    async with SchedulerRuntime(load_config(config_path)) as runtime:
        assert runtime.service is not None
        yield runtime.service
