"""Configuration change listeners for the running poller."""

from __future__ import annotations

from typing import Any

from schedwf.config.manager import ConfigManager
from schedwf.logging_setup import configure_logging


def register_poller_reload_listener(orchestrator: Any, manager: ConfigManager | None = None) -> None:
    """Stage changed ``poller`` settings on the orchestrator for its next cycle."""
    cfg_manager = manager or ConfigManager.instance()

    def _on_change(old_cfg, new_cfg) -> None:  # type: ignore[no-untyped-def]
        if old_cfg.poller == new_cfg.poller:
            return
        if hasattr(orchestrator, "apply_settings"):
            orchestrator.apply_settings(new_cfg.poller)

    cfg_manager.on_change(_on_change)


def register_logging_reload_listener(manager: ConfigManager | None = None) -> None:
    """Reinstall the root handler when ``logging`` settings change."""
    cfg_manager = manager or ConfigManager.instance()

    def _on_change(old_cfg, new_cfg) -> None:  # type: ignore[no-untyped-def]
        if old_cfg.logging != new_cfg.logging:
            configure_logging(new_cfg.logging)

    cfg_manager.on_change(_on_change)
