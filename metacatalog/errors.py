"""
Error types and error logging for the metadata catalog.

Three kinds surface to callers: bad requests (400), missing entities (404)
and internal faults (500). Full tracebacks go to a log file while callers
see a clean message.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class MetadataError(Exception):
    """Base class for catalog errors."""

    status_code = 500


class BadRequestError(MetadataError, ValueError):
    """Input violates validation rules. No state was changed."""

    status_code = 400


class NotFoundError(MetadataError, LookupError):
    """The referenced entity or its namespace does not exist."""

    status_code = 404

    def __str__(self) -> str:
        # LookupError would repr() a single argument
        return " ".join(str(a) for a in self.args)


class InternalError(MetadataError):
    """Storage or index failure. The mutation was rolled back."""

    status_code = 500


ERROR_LOG_FILENAME = "metacatalog-errors.log"


def _error_log_path() -> Path:
    """Error log location: the store named by METACATALOG_STORE_PATH, else ~/.metacatalog."""
    store = os.environ.get("METACATALOG_STORE_PATH")
    base = Path(store) if store else Path.home() / ".metacatalog"
    return base / ERROR_LOG_FILENAME


def log_exception(exc: BaseException, context: str = "") -> Path:
    """
    Append an exception and its traceback to the error log.

    Args:
        exc: The exception that occurred
        context: What was running, e.g. "POST /v3/namespaces/default/..."

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    header = f"[{datetime.now(timezone.utc).isoformat()}]"
    if context:
        header += f" {context}"
    entry = "\n".join([
        "=" * 60,
        header,
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    ])
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write("\n" + entry)
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
