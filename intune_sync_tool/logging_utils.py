"""
Logging helpers for Intune Sync Tool.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    logger_name: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure root logger or a named logger based on verbosity flags.

    Parameters
    ----------
    verbose: bool
        When True, set level to DEBUG.
    quiet: bool
        When True, set level to WARNING.
    logger_name: Optional[str]
        Name of a specific logger; defaults to root.
    log_file: Optional[Path]
        When given, also append records to this file as an audit trail.
    """
    if verbose and quiet:
        level = logging.INFO
    elif verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        resolved = str(log_file.resolve())
        already_attached = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == resolved for h in logger.handlers
        )
        if not already_attached:
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            handler.setLevel(level)
            logger.addHandler(handler)
    return logger


def close_file_handlers(logger: logging.Logger) -> None:
    """Detach and close the audit file handlers added by ``setup_logging``."""
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()
