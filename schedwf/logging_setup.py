"""Root logging configuration for the CLI and the poller process."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from schedwf.config.models import LoggingConfig

_HANDLER_NAME = "schedwf-root"


def configure_logging(config: LoggingConfig) -> logging.Handler:
    """Install (or replace) the single schedwf root handler and set the level.

    Safe to call again on hot reload; the previous handler is swapped out.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    handler: logging.Handler
    if config.rich:
        handler = RichHandler(rich_tracebacks=True, show_time=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s %(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(config.format))
    handler.set_name(_HANDLER_NAME)
    root.addHandler(handler)
    root.setLevel(config.level)
    return handler
