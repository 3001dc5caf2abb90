"""Structured logging configuration."""

import json
import logging
from datetime import UTC, datetime

from vault_sa_patcher.middleware import CorrelationIDFilter

_NOISY_LOGGERS = ("urllib3", "kubernetes", "uvicorn.access", "httpx", "httpcore")


class JSONFormatter(logging.Formatter):
    """One JSON object per line for cluster log collectors.

    Adds the request correlation id when the record was emitted while serving
    a probe request, and the exception type and traceback for failed fetches
    or cycles.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["error"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": self.formatException(record.exc_info),
            }
        cid = getattr(record, "correlation_id", None)
        if cid is not None:
            log_entry["correlation_id"] = cid
        return json.dumps(log_entry, default=str)


def configure_logging(*, level: int = logging.INFO, log_format: str = "text") -> None:
    """Configure root logger with the specified level and format."""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates.
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.addFilter(CorrelationIDFilter())

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
