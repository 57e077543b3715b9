"""Logging configuration shared by every entry point.

Call ``setup_logging`` once at startup.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.  Console output
goes through rich so it matches the rest of the engine's reporting.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler

from architech.utils import console

_FMT_CONSOLE = "%(message)s"
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str = "WARNING",
    log_file: str | Path | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure Python logging for the whole process.

    Args:
        level: Console log level name (DEBUG, INFO, WARNING, ...).
        log_file: Optional path to a log file.
        log_file_level: Separate level for the log file. Defaults to ``level``.
    """
    numeric_level = _parse_level(level)

    handler = RichHandler(
        console=console,
        show_path=numeric_level <= logging.DEBUG,
        rich_tracebacks=True,
    )
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(_FMT_CONSOLE))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)

    effective_level = numeric_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric constant, defaulting to WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
