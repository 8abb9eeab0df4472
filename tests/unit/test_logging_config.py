"""Unit tests for structured logging setup"""

import json
import logging

import pytest

from sessionstore.core.config import Settings
from sessionstore.core.logging_config import StructuredFormatter, init_logging, setup_logging


def make_record(**extra):
    record = logging.LogRecord(
        name="sessionstore.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="hello %s",
        args=("world",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestStructuredFormatter:
    """JSON log lines"""

    def test_formats_json_line(self):
        entry = json.loads(StructuredFormatter().format(make_record()))

        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "sessionstore.test"
        assert "extra" not in entry

    def test_extra_fields_included(self):
        entry = json.loads(StructuredFormatter().format(make_record(table="session", native_upsert=True)))

        assert entry["extra"] == {"table": "session", "native_upsert": True}

    def test_sensitive_fields_redacted(self):
        record = make_record(session_payload={"user": 1}, cookie_value="abc", count=3)

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["extra"]["session_payload"] == "[REDACTED]"
        assert entry["extra"]["cookie_value"] == "[REDACTED]"
        assert entry["extra"]["count"] == 3

    def test_sensitive_fields_kept_when_allowed(self):
        record = make_record(cookie_value="abc")

        entry = json.loads(StructuredFormatter(include_sensitive=True).format(record))

        assert entry["extra"]["cookie_value"] == "abc"

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            record = make_record()
            record.exc_info = sys.exc_info()

        entry = json.loads(StructuredFormatter().format(record))

        assert "ValueError: boom" in entry["exception"]


class TestSetupLogging:
    """Root logger configuration"""

    def test_json_handler_installed(self, restore_root_logger):
        setup_logging(log_level="warning", enable_json=True)

        assert restore_root_logger.level == logging.WARNING
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    def test_file_handler_added(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "sessions.log"

        setup_logging(enable_json=False, log_file=str(log_file))
        logging.getLogger("sessionstore.test").info("written to file")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert "written to file" in log_file.read_text()

    def test_init_logging_debug_forces_debug_level(self, restore_root_logger):
        init_logging(Settings(_env_file=None, debug=True, log_level="ERROR"))

        assert restore_root_logger.level == logging.DEBUG
