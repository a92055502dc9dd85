"""Tests for structured logging and event sinks."""

import json
import logging
import sys

import pytest

from finance_migration.events import (
    BATCH_CREATED,
    EventSink,
    LoggingEventSink,
    NullEventSink,
    RecordingEventSink,
)
from finance_migration.exceptions import BatchNotFoundError
from finance_migration.logging_config import LogContext, StructuredFormatter, get_logger


def _record(msg="hello", exc_info=None, **extra):
    record = logging.LogRecord("finance_migration.test", logging.INFO, __file__, 1, msg, (), exc_info)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


class TestStructuredFormatter:
    def test_one_json_line_with_extras(self):
        line = StructuredFormatter().format(_record(rows=3, status="preview"))
        payload = json.loads(line)
        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["rows"] == 3
        assert payload["status"] == "preview"
        assert "\n" not in line

    def test_context_fields_included(self):
        with LogContext.bind(batch_id="b-1", producer="migration"):
            payload = json.loads(StructuredFormatter().format(_record()))
        assert payload["batch_id"] == "b-1"
        assert payload["producer"] == "migration"

    def test_exception_fields(self):
        try:
            raise BatchNotFoundError("b-9")
        except BatchNotFoundError:
            payload = json.loads(StructuredFormatter().format(_record(exc_info=sys.exc_info())))
        assert payload["exc_type"] == "BatchNotFoundError"
        assert payload["exc_code"] == "BATCH_NOT_FOUND"
        assert payload["exc_batch_id"] == "b-9"


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(batch_id="outer")
        with LogContext.bind(batch_id="inner", job_id=None):
            assert LogContext.get_all() == {"batch_id": "inner"}
        assert LogContext.get_all() == {"batch_id": "outer"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="x")


class TestEventSinks:
    def test_sinks_satisfy_protocol(self):
        for sink in (NullEventSink(), LoggingEventSink(), RecordingEventSink()):
            assert isinstance(sink, EventSink)

    def test_recording_sink_copies_payloads(self):
        sink = RecordingEventSink()
        payload = {"batchId": "b"}
        sink.emit(BATCH_CREATED, payload)
        payload["batchId"] = "changed"
        assert sink.names() == [BATCH_CREATED]
        assert sink.payloads(BATCH_CREATED) == [{"batchId": "b"}]
        sink.clear()
        assert sink.events == []

    def test_logging_sink_writes_event(self, captured_logs):
        LoggingEventSink().emit(BATCH_CREATED, {"batchId": "b"})
        (record,) = [r for r in captured_logs() if r["message"] == "event_emitted"]
        assert record["event_name"] == BATCH_CREATED
        assert record["payload"] == {"batchId": "b"}

    def test_loggers_share_namespace(self):
        assert get_logger("services.import").name == "finance_migration.services.import"
