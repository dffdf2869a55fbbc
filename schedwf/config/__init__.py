"""Unified configuration system for schedwf."""

from schedwf.config.listeners import (
    register_logging_reload_listener,
    register_poller_reload_listener,
)
from schedwf.config.loader import ConfigLoadError, YAMLConfigLoader
from schedwf.config.manager import ConfigManager, ReloadResult
from schedwf.config.models import (
    ConductorEngineConfig,
    DatabaseConfig,
    EngineConfig,
    HatchetEngineConfig,
    LoggingConfig,
    NextRunPolicy,
    PollerConfig,
    SchedwfConfig,
)

__all__ = [
    "ConductorEngineConfig",
    "ConfigLoadError",
    "ConfigManager",
    "DatabaseConfig",
    "EngineConfig",
    "HatchetEngineConfig",
    "LoggingConfig",
    "NextRunPolicy",
    "PollerConfig",
    "ReloadResult",
    "SchedwfConfig",
    "YAMLConfigLoader",
    "register_logging_reload_listener",
    "register_poller_reload_listener",
]
