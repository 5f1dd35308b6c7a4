"""
Logging configuration — console tiers plus the per-run detail log.

``main.py`` configures the console once at startup. ``run`` and
``check`` then call ``start_run_log`` so that everything the pipeline
logs also lands in a detail file the operator can attach to a report.
Modules only ever do ``logger = logging.getLogger(__name__)``.

Console level precedence:
    --debug / --verbose  >  HOSTPREP_LOG_LEVEL  >  WARNING

Run log: HOSTPREP_LOG_FILE, else ``hostprep_<timestamp>.log`` in the
temp directory, written at HOSTPREP_LOG_FILE_LEVEL (INFO by default,
DEBUG under --debug).
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path

LEVEL_ENV_VAR = "HOSTPREP_LOG_LEVEL"
FILE_ENV_VAR = "HOSTPREP_LOG_FILE"
FILE_LEVEL_ENV_VAR = "HOSTPREP_LOG_FILE_LEVEL"

_DEFAULT_LEVEL = logging.WARNING
_DEFAULT_FILE_LEVEL = "INFO"

# ── Formats ─────────────────────────────────────────────────────

# Console tiers, most detailed first: (threshold, format, datefmt)
_CONSOLE_TIERS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d | %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_PLAIN = "%(message)s"

# The run log keeps full detail regardless of console level
_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d | %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Only quieted below DEBUG
_CHATTY_LOGGERS = ("urllib3", "charset_normalizer")


def resolve_level(verbose: bool = False, debug: bool = False) -> str:
    """Console level name from the CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    return os.environ.get(LEVEL_ENV_VAR) or logging.getLevelName(_DEFAULT_LEVEL)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """(Re)configure the root logger.

    Existing root handlers are closed and replaced, so calling this a
    second time with a log file swaps the startup console-only setup
    for the run setup.

    Args:
        level: Console level name. Unknown names mean WARNING.
        log_file: Optional file to write as well.
        log_file_level: Level for ``log_file``; defaults to ``level``.
        quiet_third_party: Hold chatty library loggers at WARNING unless
            the console is at DEBUG.
    """
    console_level = _parse_level(level)

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))
    root.addHandler(console)

    root_level = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(file_handler)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def start_run_log(console_level: str, debug: bool = False) -> Path:
    """Attach the per-run detail log and return its path."""
    log_path = Path(os.environ.get(FILE_ENV_VAR) or default_log_path())
    if debug:
        file_level = "DEBUG"
    else:
        file_level = os.environ.get(FILE_LEVEL_ENV_VAR) or _DEFAULT_FILE_LEVEL

    setup_logging(
        level=console_level,
        log_file=str(log_path),
        log_file_level=file_level,
        quiet_third_party=not debug,
    )
    logging.getLogger(__name__).info("Run log opened at %s level", file_level.upper())
    return log_path


def default_log_path() -> Path:
    """``hostprep_<YYYYmmdd_HHMMSS>.log`` in the temp directory."""
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Path(tempfile.gettempdir()) / f"hostprep_{stamp}.log"


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_TIERS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_CONSOLE_PLAIN)


def _parse_level(level: str | None) -> int:
    if not level:
        return _DEFAULT_LEVEL
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else _DEFAULT_LEVEL
