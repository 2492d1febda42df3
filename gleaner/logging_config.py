"""
Logging configuration for gleaner.

Suppress verbose library output by default for better UX.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

_LIBRARY_LOGGERS = ("markdown_it",)


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    Args:
        quiet: If True, suppress verbose output. If False, show everything.
    """
    if quiet:
        # Suppress Python warnings (including deprecation warnings)
        warnings.filterwarnings("ignore")
        for name in _LIBRARY_LOGGERS:
            logging.getLogger(name).setLevel(logging.ERROR)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    for name in ("gleaner", *_LIBRARY_LOGGERS):
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(journal_root):
    """Configure a persistent operations log for a journal.

    Writes to {journal_root}/.gleaner/gleaner-ops.log using a rotating file
    handler (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so the caller can remove it.
    """
    log_dir = Path(journal_root) / ".gleaner"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "gleaner-ops.log"
    gleaner_logger = logging.getLogger("gleaner")
    for existing in gleaner_logger.handlers:
        if isinstance(existing, RotatingFileHandler) and existing.baseFilename == os.path.abspath(log_path):
            return existing

    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    gleaner_logger.addHandler(handler)
    # Let INFO through even in quiet mode
    if gleaner_logger.level == logging.NOTSET or gleaner_logger.level > logging.INFO:
        gleaner_logger.setLevel(logging.INFO)

    return handler
