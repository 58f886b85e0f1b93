"""
Logging configuration for metacatalog.

The CLI and the server run quiet by default: uvicorn and httpx only report
warnings. ``--verbose`` (or METACATALOG_VERBOSE) turns on debug output, and
every open catalog appends INFO lines to an operations log in its store.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "metacatalog"
OPS_LOG_FILENAME = "metacatalog-ops.log"

# Loggers that are chatty at INFO
_NOISY_LOGGERS = ("uvicorn.access", "uvicorn.error", "httpx")


def configure_quiet_mode(quiet: bool = True):
    """
    Silence library chatter unless METACATALOG_VERBOSE is set.

    Args:
        quiet: If False, leave library loggers and warnings alone.
    """
    if os.environ.get("METACATALOG_VERBOSE") or not quiet:
        return
    warnings.filterwarnings("ignore")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def enable_debug_mode():
    """Send DEBUG records from metacatalog and uvicorn to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    has_stderr = any(
        isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
        for h in root.handlers
    )
    if not has_stderr:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S",
        ))
        root.addHandler(handler)

    for name in (LOGGER_NAME, "uvicorn", *_NOISY_LOGGERS):
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """Attach a rotating operations log (1MB, 3 backups) in the store directory.

    Active whether or not --verbose is given. The caller passes the returned
    handler to ``detach_ops_log`` when the catalog closes.
    """
    log_path = Path(store_path) / OPS_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(str(log_path), maxBytes=1_000_000, backupCount=3)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S",
    ))

    catalog_logger = logging.getLogger(LOGGER_NAME)
    catalog_logger.addHandler(handler)
    # INFO must reach the file even in quiet mode
    if catalog_logger.level == logging.NOTSET or catalog_logger.level > logging.INFO:
        catalog_logger.setLevel(logging.INFO)
    return handler


def detach_ops_log(handler: RotatingFileHandler) -> None:
    """Remove and close a handler returned by ``configure_ops_log``."""
    logging.getLogger(LOGGER_NAME).removeHandler(handler)
    handler.close()
