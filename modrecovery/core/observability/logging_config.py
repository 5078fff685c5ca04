"""
Logging configuration — one-time setup for the CLI and web entrypoints.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
this config.

Levels are resolved in precedence order:
    CLI flag  >  MRE_LOG_LEVEL env var  >  WARNING (default)

Optional file output via MRE_LOG_FILE / MRE_LOG_FILE_LEVEL env vars.
"""

from __future__ import annotations

import logging
import os
import sys

LEVEL_ENV = "MRE_LOG_LEVEL"
FILE_ENV = "MRE_LOG_FILE"
FILE_LEVEL_ENV = "MRE_LOG_FILE_LEVEL"

# ── Format strings ──────────────────────────────────────────────

_FMT_MINIMAL = "%(message)s"

_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Loggers that are noisy below WARNING
_NOISY_LOGGERS = ("werkzeug", "asyncio", "urllib3")


def resolve_level(cli_level: str | None = None) -> str:
    """Pick the console level: CLI flag, then environment, then WARNING."""
    return cli_level or os.environ.get(LEVEL_ENV) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file path. Defaults to ``$MRE_LOG_FILE``.
        log_file_level: Level for the file. Defaults to ``$MRE_LOG_FILE_LEVEL``,
            then to ``level``.
        quiet_third_party: Keep noisy third-party loggers at WARNING unless
            running at DEBUG.
    """
    numeric_level = _parse_level(level)
    log_file = log_file or os.environ.get(FILE_ENV)
    log_file_level = log_file_level or os.environ.get(FILE_LEVEL_ENV)

    # ── Console handler (stderr) ────────────────────────────────
    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
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

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
