"""Logging for the ``capacity_import`` package.

Entry points call ``configure_logging`` once; it installs a single stream
handler on the ``capacity_import`` logger and stops propagation to the root
logger. Library modules only ask for loggers through ``get_logger`` and never
attach handlers of their own.

Import steps produce long lists of row messages. ``log_step_messages`` logs a
one-line count per step at INFO and each message at DEBUG, so a normal run
stays short while ``--log-level DEBUG`` shows every row.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import IO

PACKAGE_LOGGER = "capacity_import"
LEVEL_ENV_VAR = "CAPACITY_IMPORT_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_configured = False


def resolve_level(level: int | str | None) -> int:
    """Turn ``level`` (int, name or digits) into a numeric level.

    ``None`` or an unknown name falls back to ``CAPACITY_IMPORT_LOG_LEVEL``
    and then to INFO.
    """

    if isinstance(level, int):
        return level
    if level is not None:
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = logging.getLevelNamesMapping().get(name)
        if numeric is not None:
            return numeric
    env_level = os.getenv(LEVEL_ENV_VAR)
    if env_level and env_level != level:
        return resolve_level(env_level)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Install the package handler; later calls are no-ops."""

    global _configured
    if _configured:
        return

    pkg = logging.getLogger(PACKAGE_LOGGER)
    for handler in [h for h in pkg.handlers if isinstance(h, logging.NullHandler)]:
        pkg.removeHandler(handler)

    numeric = resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    pkg.addHandler(handler)
    pkg.setLevel(numeric)
    pkg.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    pkg = logging.getLogger(PACKAGE_LOGGER)
    if not _configured and not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


def log_step_messages(
    logger: logging.Logger,
    step: str,
    errors: Sequence[str],
    warnings: Sequence[str],
) -> None:
    """Summarize a step's messages at INFO and list them at DEBUG."""

    if not errors and not warnings:
        return
    logger.info("%s: %d error(s), %d warning(s)", step, len(errors), len(warnings))
    if logger.isEnabledFor(logging.DEBUG):
        for message in errors:
            logger.debug("%s error: %s", step, message)
        for message in warnings:
            logger.debug("%s warning: %s", step, message)


__all__ = [
    "PACKAGE_LOGGER",
    "configure_logging",
    "get_logger",
    "log_step_messages",
    "resolve_level",
]
