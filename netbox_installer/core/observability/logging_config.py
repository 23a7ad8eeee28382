"""
Logging configuration, set up once by the CLI entry point.

Operator-facing status lines are printed by the CLI with click; the
logging tree carries diagnostic detail underneath them. Level
precedence:

    CLI flag  >  NBI_LOG_LEVEL  >  WARNING

NBI_LOG_FILE adds a file handler (level NBI_LOG_FILE_LEVEL, defaulting
to the console level). Keeping a DEBUG file while the console stays
quiet is the usual way to capture a full install transcript.
"""

from __future__ import annotations

import logging
import sys

_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_MINIMAL_FORMAT = "%(message)s"

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Subprocess argv at DEBUG is very chatty during apt/pip steps
_CHATTY_LOGGERS = ("netbox_installer.adapters.system",)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path of a transcript file.
        log_file_level: Level for the file; defaults to ``level``.
        quiet_third_party: Keep chatty loggers at INFO unless the
            console or the file is at DEBUG.
    """
    console_level = _parse_level(level)

    if console_level <= logging.DEBUG:
        fmt, datefmt = _CONSOLE_FORMATS[logging.DEBUG]
    elif console_level <= logging.INFO:
        fmt, datefmt = _CONSOLE_FORMATS[logging.INFO]
    else:
        fmt, datefmt = _MINIMAL_FORMAT, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)

    root.setLevel(root_level)

    quiet = quiet_third_party and root_level > logging.DEBUG
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(
            max(logging.INFO, root_level) if quiet else logging.NOTSET
        )

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to numeric constant; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
