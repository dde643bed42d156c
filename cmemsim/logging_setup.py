"""
Logger configuration for the cmemsim CLI and embedding applications.

Library modules only call ``logging.getLogger(__name__)``; nothing here runs
on import. Console output goes through rich's RichHandler. A timestamped
log file is written only when a log directory is given.
"""

from __future__ import annotations
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(
    name: str = "cmemsim",
    level: int = logging.DEBUG,
    console_level: int = logging.WARNING,
    log_dir: Optional[Path] = None,
    rich_console: bool = True,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Configure and return the package logger.

    Log files: ``<log_dir>/<name>_YYYYMMDD_HHMMSS.log``
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(level)

    # ── File handler: captures everything (DEBUG+) ──
    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"{name}_{ts}.log"
        file_fmt = logging.Formatter(
            "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(file_fmt)
        logger.addHandler(fh)

    # ── Console handler: warnings and errors by default ──
    if rich_console:
        ch = RichHandler(
            level=console_level,
            console=console or Console(stderr=True),
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        ch.setLevel(console_level)
        logger.addHandler(ch)

    logger.info("Logger initialized: %s", name)
    if log_file is not None:
        logger.info("Log file: %s", log_file)
    logger.info("Console level: %s", logging.getLevelName(console_level))
    return logger
