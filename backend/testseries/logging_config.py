"""
JSON log lines for the test series service.

One object per line on stdout. Channels split the stream by concern:
http (requests), db (storage and authoring), lifecycle (attempt state
changes), scoring and tags (reference counts).
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# Set by the request middleware, read by every log line emitted while serving it
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CHANNELS = ("http", "db", "lifecycle", "scoring", "tags")


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


class StructuredJsonFormatter(logging.Formatter):
    """
    Keys: timestamp, level, message, channel, context (request_id plus
    attempt/test/user ids), extra, and exception when a traceback is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        log_entry = {
            "timestamp": timestamp.replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.rsplit(".", 1)[-1]),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {})
            },
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging():
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(_level(LOG_LEVEL))
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        get_logger(channel).setLevel(_level(LOG_LEVEL))

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    if channel not in CHANNELS:
        raise ValueError(f"Unknown log channel: {channel}")
    return logging.getLogger(f"testseries.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info: bool = False):
    """
    Log through a channel logger.

    context carries identifiers (attempt_id, test_id, user_id, tag);
    extra_data carries measurements (duration_ms, total_score, count).
    Pass exc_info=True from an except block to attach the traceback.
    """
    logger.log(
        _level(level),
        message,
        exc_info=exc_info,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": logger.name.rsplit(".", 1)[-1],
        }
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
