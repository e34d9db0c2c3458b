"""Tests for suiguard.core.logging — formatters and run context."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from suiguard.core.logging import DevFormatter, JSONFormatter, RunLogFilter, setup_logging


def _record(msg: str = "hello %s", args=("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="suiguard.test", level=logging.INFO, pathname=__file__, lineno=10,
        msg=msg, args=args, exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJSONFormatter:

    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "suiguard.test"
        assert entry["message"] == "hello world"
        assert entry["line"] == 10

    def test_extra_fields(self):
        entry = json.loads(JSONFormatter().format(
            _record(run_id="r-1", package_id="0xabc", findings_count=3, duration_ms=1.5),
        ))
        assert entry["run_id"] == "r-1"
        assert entry["package_id"] == "0xabc"
        assert entry["findings_count"] == 3
        assert entry["duration_ms"] == 1.5

    def test_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "boom"


class TestDevFormatter:

    def test_run_id_prefix(self):
        text = DevFormatter().format(_record(run_id="abcdef123456"))
        assert "[abcdef12] hello world" in text
        assert "suiguard.test" in text

    def test_without_run_id(self):
        assert "hello world" in DevFormatter().format(_record())


class TestSetupLogging:

    def test_production_uses_json(self, restore_root):
        setup_logging("production", "warning")
        assert restore_root.level == logging.WARNING
        assert len(restore_root.handlers) == 1
        assert isinstance(restore_root.handlers[0].formatter, JSONFormatter)

    def test_development_uses_dev_formatter(self, restore_root):
        setup_logging("development", "nonsense")
        assert restore_root.level == logging.INFO
        assert isinstance(restore_root.handlers[0].formatter, DevFormatter)


def test_run_filter_stamps_record():
    record = _record()
    assert RunLogFilter(run_id="r-9", package_id="0x1").filter(record) is True
    assert record.run_id == "r-9"
    assert record.package_id == "0x1"
