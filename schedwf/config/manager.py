"""Process-wide configuration holder with layered loading and hot reload."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, ClassVar

import yaml  # type: ignore[import-untyped]

from schedwf.config.loader import YAMLConfigLoader
from schedwf.config.models import SchedwfConfig

logger = logging.getLogger(__name__)

ConfigListener = Callable[[SchedwfConfig, SchedwfConfig], None]

ENV_PREFIX = "SCHEDWF_"
# Read directly by the loader and the db layer.
_RESERVED_ENV = frozenset({"SCHEDWF_CONFIG", "SCHEDWF_DATABASE_URL"})
# Sections a running poller can pick up without a restart.
HOT_RELOAD_SECTIONS = ("poller", "logging")


def _merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in updates.items():
        current = out.get(key)
        out[key] = _merge(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return out


def _env_value(raw: str) -> Any:
    # YAML scalar rules: "true" -> bool, "30" -> int, "[a, b]" -> list.
    if not raw.strip():
        return raw
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _env_layer(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Turn ``SCHEDWF_SECTION__KEY=value`` variables into a nested dict."""
    layer: dict[str, Any] = {}
    for name, raw in (environ if environ is not None else os.environ).items():
        if not name.startswith(ENV_PREFIX) or name in _RESERVED_ENV:
            continue
        parts = [p.lower() for p in name[len(ENV_PREFIX) :].split("__") if p]
        if len(parts) < 2:
            continue
        node = layer
        for part in parts[:-1]:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                break
        else:
            node[parts[-1]] = _env_value(raw)
    return layer


def _compose(config_path: str | None, overrides: dict[str, Any]) -> SchedwfConfig:
    """Defaults < YAML file < environment < runtime overrides."""
    layered = _merge(YAMLConfigLoader.load_dict(config_path), _env_layer())
    return SchedwfConfig.model_validate(_merge(layered, overrides))


def _changed_keys(old: SchedwfConfig, new: SchedwfConfig) -> dict[str, dict[str, Any]]:
    """Map each changed section to ``{dotted.key: new value}``."""
    changed: dict[str, dict[str, Any]] = {}

    def _walk(section: str, prefix: str, before: Any, after: Any) -> None:
        if isinstance(before, dict) and isinstance(after, dict):
            for key in sorted(set(before) | set(after)):
                _walk(section, f"{prefix}.{key}", before.get(key), after.get(key))
        elif before != after:
            changed.setdefault(section, {})[prefix] = after

    old_dump = old.model_dump(mode="python")
    new_dump = new.model_dump(mode="python")
    for section in new_dump:
        _walk(section, section, old_dump.get(section), new_dump[section])
    return changed


@dataclass(frozen=True)
class ReloadResult:
    """Dotted keys that changed: ``applied`` took effect, ``skipped`` need a restart."""

    applied: dict[str, Any] = field(default_factory=dict)
    skipped: dict[str, Any] = field(default_factory=dict)


class ConfigManager:
    """Singleton holding the active :class:`SchedwfConfig`."""

    _instance: ClassVar[ConfigManager | None] = None
    _class_lock: ClassVar[Lock] = Lock()

    def __init__(self) -> None:
        self._lock = Lock()
        self._config = SchedwfConfig()
        self._listeners: list[ConfigListener] = []
        self._config_path: str | None = None
        self._overrides: dict[str, Any] = {}

    @classmethod
    def instance(cls) -> ConfigManager:
        with cls._class_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def _reset_for_tests(cls) -> None:
        with cls._class_lock:
            cls._instance = None

    @classmethod
    def load(
        cls,
        config_path: str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ConfigManager:
        """Build the config from every layer, install it and notify listeners."""
        manager = cls.instance()
        runtime_overrides = dict(overrides or {})
        new_config = _compose(config_path, runtime_overrides)
        with manager._lock:
            old_config, manager._config = manager._config, new_config
            manager._config_path = config_path
            manager._overrides = runtime_overrides
            listeners = list(manager._listeners)
        for listener in listeners:
            listener(old_config, new_config)
        return manager

    def get(self) -> SchedwfConfig:
        with self._lock:
            return self._config

    def on_change(self, listener: ConfigListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def reload(self, config_path: str | None = None) -> ReloadResult:
        """Re-read the layers and swap in changed ``poller`` / ``logging`` sections.

        Changes to ``database`` or ``engine`` are reported in ``skipped`` and
        left alone; they take effect on the next start.
        """
        with self._lock:
            current = self._config
            path = config_path if config_path is not None else self._config_path
            overrides = dict(self._overrides)
            listeners = list(self._listeners)

        candidate = _compose(path, overrides)
        applied: dict[str, Any] = {}
        skipped: dict[str, Any] = {}
        hot_sections: dict[str, Any] = {}
        for section, keys in _changed_keys(current, candidate).items():
            if section in HOT_RELOAD_SECTIONS:
                applied.update(keys)
                hot_sections[section] = getattr(candidate, section)
            else:
                skipped.update(keys)

        if skipped:
            logger.warning("config_reload_requires_restart keys=%s", ",".join(sorted(skipped)))
        updated = current.model_copy(update=hot_sections) if hot_sections else current
        with self._lock:
            self._config_path = path
            self._config = updated
        if hot_sections:
            logger.info("config_reloaded keys=%s", ",".join(sorted(applied)))
            for listener in listeners:
                listener(current, updated)
        return ReloadResult(applied=applied, skipped=skipped)
