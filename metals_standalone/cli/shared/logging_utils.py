"""Loguru helpers for console and file logging in CLI commands."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from metals_standalone.config.loader import get_data_dir

_SINK_IDS: dict[str, int] = {}
_CONSOLE_SINK_ID: int | None = None

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss.SSS}</dim> | <level>{level: <8}</level> | <level>{message}</level>"


def get_log_path(name: str) -> Path:
    return get_data_dir() / "logs" / f"{name}.log"


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given command name."""
    log_path = get_log_path(name)
    if name in _SINK_IDS:
        return log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    sink_id = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[name] = sink_id
    return log_path


def configure_console_logging(verbose: bool = False) -> None:
    """Replace loguru's default stderr sink with one at INFO (or DEBUG when verbose)."""
    global _CONSOLE_SINK_ID
    if _CONSOLE_SINK_ID is None:
        logger.remove()
    else:
        logger.remove(_CONSOLE_SINK_ID)
    _CONSOLE_SINK_ID = logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format=CONSOLE_FORMAT,
    )
    logger.enable("metals_standalone")
