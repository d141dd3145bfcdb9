"""
Tests for the JSON log formatter and channel loggers.
"""

import json
import logging
import sys

import pytest

from testseries.logging_config import StructuredJsonFormatter, get_logger, request_id_var


def _record(logger, message, exc_info=None, **extra):
    return logger.makeRecord(logger.name, logging.ERROR, __file__, 1, message, (), exc_info, extra=extra)


class TestStructuredJsonFormatter:
    def test_line_carries_channel_request_id_and_context(self):
        logger = get_logger("lifecycle")
        token = request_id_var.set("req-1")
        try:
            record = _record(logger, "Attempt submitted",
                             context={"attempt_id": "a1"}, extra_data={"total_score": 3})
            entry = json.loads(StructuredJsonFormatter().format(record))
        finally:
            request_id_var.reset(token)

        assert entry["channel"] == "lifecycle"
        assert entry["context"] == {"request_id": "req-1", "attempt_id": "a1"}
        assert entry["extra"] == {"total_score": 3}
        assert entry["timestamp"].endswith("Z")
        assert "exception" not in entry

    def test_traceback_is_attached_when_present(self):
        try:
            raise RuntimeError("disk full")
        except RuntimeError:
            record = _record(get_logger("db"), "Storage failure", exc_info=sys.exc_info())

        entry = json.loads(StructuredJsonFormatter().format(record))
        assert "RuntimeError: disk full" in entry["exception"]


def test_unknown_channel_is_rejected():
    with pytest.raises(ValueError):
        get_logger("dedup")
