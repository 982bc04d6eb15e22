"""Mini README: Application-wide logging helpers for DraftBudget.

Structure:
    * LOG_FORMAT / DATE_FORMAT - the shared record layout.
    * configure_root_logger - one-shot helper installing the shared handler.
    * set_log_level - adjust the root level, accepting names such as "debug".
    * get_logger - module logger factory used at import time.

Usage:
    Modules call ``get_logger(__name__)`` once at import time. Rejected tree
    mutations, unresolved index paths and missing exchange rates are reported
    as warnings through these loggers instead of being raised; structural
    edits are reported at INFO, or DEBUG while a batch is being assembled.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_handler: Optional[logging.Handler] = None


def _resolve_level(level: Union[int, str]) -> int:
    """Translate a level name such as "debug" to its numeric value."""

    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_root_logger(level: Union[int, str] = logging.INFO) -> None:
    """Attach the shared stream handler to the root logger exactly once."""

    global _handler
    if _handler is not None:
        return

    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger = logging.getLogger()
    root_logger.setLevel(_resolve_level(level))
    root_logger.addHandler(_handler)


def set_log_level(level: Union[int, str]) -> None:
    """Set the root log level, installing the shared handler if needed."""

    configure_root_logger()
    logging.getLogger().setLevel(_resolve_level(level))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-specific logger, configuring the root on first use."""

    configure_root_logger()
    return logging.getLogger(name)
