"""
Logging configuration — central setup for all entrypoints.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  ROLLUPCTL_LOG_LEVEL env var  >  INFO (default)

Optional extra file output via ROLLUPCTL_LOG_FILE / ROLLUPCTL_LOG_FILE_LEVEL.

Each deployment run additionally gets a run log (see ``attach_run_log``):
an append-only, human-readable file of ``[timestamp] [LEVEL] message``
lines that also captures every command's output.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# ── Custom level ────────────────────────────────────────────────

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

# ── Format strings ──────────────────────────────────────────────

# INFO/WARNING level — operator-facing, mirrors the run log
_FMT_CONSOLE = "[%(asctime)s] [%(levelname)s] %(message)s"
_DATEFMT_CONSOLE = "%H:%M:%S"

# DEBUG level — full diagnostic with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# File output — always full detail
_FMT_FILE = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Run log — one line per record, the format operators grep
_FMT_RUN_LOG = "[%(asctime)s] [%(levelname)s] %(message)s"
_DATEFMT_RUN_LOG = "%Y-%m-%d %H:%M:%S"

# Command output is logged here at DEBUG; kept off the console
# unless --debug is given.
OUTPUT_LOGGER = "rollupctl.output"

_NOISY_LOGGERS = ("urllib3",)


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Log level name (DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Optional separate level for the log file.
            Defaults to the same as ``level``.
        quiet_third_party: If True, keep noisy third-party loggers at WARNING
            unless we're at DEBUG level.
    """
    numeric_level = _parse_level(level)

    # ── Console handler (stderr) ────────────────────────────────
    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    else:
        fmt, datefmt = _FMT_CONSOLE, _DATEFMT_CONSOLE

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    # ── Root logger ─────────────────────────────────────────────
    root = logging.getLogger()
    for handler in [h for h in root.handlers if not isinstance(h, RunLogHandler)]:
        root.removeHandler(handler)
    root.addHandler(console)

    effective_level = numeric_level

    # ── File handler (optional) ─────────────────────────────────
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)

    # ── Third-party noise control ───────────────────────────────
    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


class RunLogHandler(logging.FileHandler):
    """Append-only handler for a single deployment run."""

    def __init__(self, path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, mode="a", encoding="utf-8")
        self.path = path
        self.setLevel(logging.DEBUG)
        self.setFormatter(logging.Formatter(_FMT_RUN_LOG, datefmt=_DATEFMT_RUN_LOG))


def attach_run_log(path: Path) -> RunLogHandler:
    """Start writing every record (including command output) to ``path``.

    The root logger is lowered to DEBUG so output records reach the
    file; console handlers keep their own level.
    """
    handler = RunLogHandler(path)
    root = logging.getLogger()
    root.addHandler(handler)
    if root.level > logging.DEBUG or root.level == logging.NOTSET:
        root.setLevel(logging.DEBUG)
    return handler


def detach_run_log(handler: RunLogHandler) -> None:
    """Flush and remove a run log handler."""
    root = logging.getLogger()
    root.removeHandler(handler)
    handler.close()


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.INFO
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        return logging.INFO
    return numeric
