"""Log output for the ``syncforce`` command.

The library itself only attaches a ``NullHandler``; the CLI routes the
``syncforce`` logger through ``click.echo`` so records land on whatever
stderr click is using (including ``CliRunner`` in tests).
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import click

LOG_LEVEL_ENV = "SF_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"

_PACKAGE_LOGGER = "syncforce"


class ClickEchoHandler(logging.Handler):
    """Write formatted records to stderr via ``click.echo``."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def resolve_level(level: Optional[int] = None) -> int:
    """Explicit level first, then ``SF_LOG_LEVEL`` (name or number), else WARNING."""
    if level is not None:
        return level
    raw = os.getenv(LOG_LEVEL_ENV, "").strip()
    if not raw:
        return logging.WARNING
    if raw.isdigit():
        return int(raw)
    named = logging.getLevelName(raw.upper())
    return named if isinstance(named, int) else logging.WARNING


def configure_logging(level: Optional[int] = None) -> int:
    """Attach one ``ClickEchoHandler`` to the package logger and set its level.

    Repeated calls only change the level. Returns the level in effect.
    """
    lvl = resolve_level(level)
    logger = logging.getLogger(_PACKAGE_LOGGER)
    logger.setLevel(lvl)

    if not any(isinstance(h, ClickEchoHandler) for h in logger.handlers):
        handler = ClickEchoHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
        logger.addHandler(handler)

    # urllib3 connection chatter only at -vv
    logging.getLogger("urllib3").setLevel(logging.DEBUG if lvl <= logging.DEBUG else logging.WARNING)
    return lvl
