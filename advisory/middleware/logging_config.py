"""
Structured logging for the advisory workflow.

Workflow services log with ``extra={"event_type": ..., "request_id": ...}``.
In production every record is one JSON object carrying those fields at the top
level; in development and tests the event type and the REQ- number are shown
inline.  LOG_LEVEL overrides the level (DEBUG in development, INFO otherwise).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Record attributes lifted into JSON entries; the timing middleware sets the
# HTTP ones and the workflow services set the rest
EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "http_request_id",
    "user_id",
    "event_type",
    "request_id",
    "offering_id",
    "activity_id",
    "sub_activity_id",
)

NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in EXTRA_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO     advisory.services.x: <status_changed> REQ-0001 message [3ms]``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        parts = [f"{color}{datetime.now():%H:%M:%S} {record.levelname:<8}{self.RESET} {record.name}:"]
        event = getattr(record, "event_type", None)
        if event:
            parts.append(f"<{event}>")
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(str(request_id))
        parts.append(record.getMessage())
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")
        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for this app."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    # Replaces the handler of any earlier app in this process
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
