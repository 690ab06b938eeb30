from __future__ import annotations

import logging
import sys
import warnings

from driftpatch.logger import (
    LOGGER_NAME,
    LogBuffer,
    apply_logging_settings,
    capture_logs,
    get_log_buffer,
    logger,
)
from driftpatch.settings import LoggingSettings, LogLevel


def _has_tty_handler(log: logging.Logger) -> bool:
    for handler in log.handlers:
        if isinstance(handler, logging.StreamHandler):
            stream = getattr(handler, "stream", None)
            if stream in (sys.stdout, sys.stderr):
                return True
    return False


def test_log_buffer_disables_tty_and_captures() -> None:
    root_logger = logging.getLogger()
    root_logger.addHandler(logging.StreamHandler(sys.stdout))

    named_logger = logging.getLogger("existing.nonprop")
    named_logger.setLevel(logging.INFO)
    named_logger.propagate = False
    named_logger.addHandler(logging.StreamHandler(sys.stdout))

    buffer = capture_logs(max_entries=None)
    assert isinstance(buffer, LogBuffer)
    assert get_log_buffer() is buffer

    assert not _has_tty_handler(root_logger)
    assert not _has_tty_handler(named_logger)

    root_logger.warning("root warning message")
    named_logger.info("named logger message")

    messages = [record.message for record in buffer.get_records()]
    assert "root warning message" in messages
    assert "named logger message" in messages


def test_structlog_events_are_captured_with_fields() -> None:
    buffer = capture_logs(max_entries=None)
    buffer.clear()
    logger.warning("Skipping chunk", path="a.txt", chunk=2)

    records = [r for r in buffer.get_records() if r.logger_name == LOGGER_NAME]
    assert records
    last = records[-1]
    assert last.level == logging.WARNING
    assert "Skipping chunk" in last.message
    assert "path=a.txt" in last.message
    assert "chunk=2" in last.message


def test_log_buffer_captures_warnings() -> None:
    buffer = capture_logs(max_entries=None)
    warnings.warn("warning from warnings module", UserWarning)

    messages = [record.message for record in buffer.get_records()]
    assert any("warning from warnings module" in message for message in messages)


def test_log_buffer_keeps_most_recent_entries() -> None:
    buffer = LogBuffer(max_entries=2)
    for i in range(3):
        buffer.add_record(logging.makeLogRecord({"name": "t", "msg": f"m{i}"}))
    assert [r.message for r in buffer.get_records()] == ["m1", "m2"]
    buffer.clear()
    assert buffer.get_records() == []


def test_apply_logging_settings_sets_levels() -> None:
    apply_logging_settings(
        LoggingSettings(
            default_level=LogLevel.debug,
            enabled_loggers={"driftpatch.test_child": LogLevel.disabled},
        )
    )
    assert logging.getLogger(LOGGER_NAME).level == logging.DEBUG
    assert logging.getLogger("driftpatch.test_child").level == logging.CRITICAL + 1

    apply_logging_settings(None)
    assert logging.getLogger(LOGGER_NAME).level == logging.INFO
