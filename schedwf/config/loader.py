"""Locate and parse ``schedwf.yaml``."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "SCHEDWF_CONFIG"
KNOWN_SECTIONS = frozenset({"database", "poller", "engine", "logging"})


class ConfigLoadError(ValueError):
    """The config file exists but is not usable (bad YAML or wrong shape)."""


def _parse(target: Path) -> Any:
    try:
        with target.open(encoding="utf-8") as fh:
            return yaml.safe_load(fh)
    except yaml.MarkedYAMLError as exc:
        where = f"{target}"
        if exc.problem_mark is not None:
            where += f":{exc.problem_mark.line + 1}:{exc.problem_mark.column + 1}"
        raise ConfigLoadError(f"Invalid YAML at {where}: {exc.problem or exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML at {target}: {exc}") from exc


class YAMLConfigLoader:
    """Resolves the config path and returns the file as a plain dict."""

    DEFAULT_FILENAME = "schedwf.yaml"

    @classmethod
    def resolve_path(cls, cli_path: str | None = None) -> Path:
        """``--config`` first, then ``SCHEDWF_CONFIG``, then ``./schedwf.yaml``."""
        for candidate in (cli_path, os.environ.get(CONFIG_PATH_ENV)):
            if candidate and candidate.strip():
                return Path(candidate.strip())
        return Path.cwd() / cls.DEFAULT_FILENAME

    @classmethod
    def load_dict(cls, path: str | Path | None = None) -> dict[str, Any]:
        """Return the parsed file; an absent or empty file yields ``{}``.

        Raises:
            ConfigLoadError: invalid YAML, a non-mapping root, or a known
                section that is not a mapping.
        """
        target = cls.resolve_path(str(path) if path is not None else None)
        if not target.is_file():
            logger.debug("config_file_absent path=%s", target)
            return {}
        data = _parse(target)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Config root must be a mapping: {target}")
        for section in KNOWN_SECTIONS & set(data):
            if data[section] is not None and not isinstance(data[section], dict):
                raise ConfigLoadError(f"Section '{section}' must be a mapping: {target}")
        unknown = sorted(str(key) for key in data if key not in KNOWN_SECTIONS)
        if unknown:
            logger.warning("config_unknown_sections path=%s sections=%s", target, ",".join(unknown))
        return {key: value for key, value in data.items() if value is not None}
