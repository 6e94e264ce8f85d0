# tests/unit/test_logger.py
"""
Unit tests for logging setup and performance logging
"""

import json
import logging
import sys

import pytest

from taxi_ingest.utils.logger import (
    JSONFormatter, PerformanceLogger, get_logger, setup_pipeline_logging, timed_operation
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg="hello", **extra):
    record = logging.LogRecord("taxi_ingest.test", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test structured log output"""

    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))

        assert entry['message'] == "hello"
        assert entry['level'] == "INFO"
        assert entry['logger'] == "taxi_ingest.test"
        assert entry['timestamp'].endswith("Z")

    def test_extra_fields_are_included(self):
        entry = json.loads(JSONFormatter().format(_record(rows_inserted=3, source_file="f.csv")))

        assert entry['rows_inserted'] == 3
        assert entry['source_file'] == "f.csv"

    def test_unserializable_values_are_stringified(self):
        entry = json.loads(JSONFormatter().format(_record(period=object())))

        assert entry['period'].startswith("<object")

    def test_exception_is_formatted(self):
        try:
            raise ValueError("broken")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        entry = json.loads(JSONFormatter().format(record))

        assert "ValueError: broken" in entry['exception']


class TestSetupPipelineLogging:
    """Test root logger configuration"""

    def test_json_console_handler(self, restore_root_logger):
        setup_pipeline_logging("INFO")

        assert restore_root_logger.level == logging.INFO
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)

    def test_debug_uses_plain_text(self, restore_root_logger):
        setup_pipeline_logging("debug")

        assert not isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)

    def test_log_dir_adds_rotating_files(self, restore_root_logger, tmp_path):
        setup_pipeline_logging("INFO", log_dir=str(tmp_path / "logs"))

        get_logger("taxi_ingest.test").error("merge failed")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert (tmp_path / "logs" / "taxi_ingest.log").exists()
        assert "merge failed" in (tmp_path / "logs" / "errors.log").read_text()

    def test_third_party_loggers_are_quieted(self, restore_root_logger):
        setup_pipeline_logging("DEBUG")

        assert logging.getLogger('botocore').level == logging.WARNING
        assert logging.getLogger('snowflake').level == logging.WARNING


class TestPerformanceLogger:
    """Test operation timing"""

    def test_end_returns_duration(self):
        perf = PerformanceLogger("taxi_ingest.test")

        perf.start_operation("promote")
        duration = perf.end_operation("promote", rows=10)

        assert duration >= 0
        assert "promote" not in perf.start_times

    def test_end_without_start(self, caplog):
        perf = PerformanceLogger("taxi_ingest.test")

        with caplog.at_level(logging.WARNING):
            assert perf.end_operation("release") == 0.0

        assert "was not started" in caplog.text

    def test_data_metrics_are_attached(self, caplog):
        perf = PerformanceLogger("taxi_ingest.test")

        with caplog.at_level(logging.INFO):
            perf.log_data_metrics(rows_inserted=7)

        record = caplog.records[-1]
        assert record.metrics_type == "data"
        assert record.rows_inserted == 7


class TestTimedOperation:
    """Test the timing context manager"""

    def test_records_duration(self):
        with timed_operation("stage", get_logger("taxi_ingest.test")) as timer:
            pass

        assert timer.duration >= 0

    def test_does_not_swallow_exceptions(self, caplog):
        with caplog.at_level(logging.INFO):
            with pytest.raises(RuntimeError):
                with timed_operation("promote", get_logger("taxi_ingest.test")):
                    raise RuntimeError("boom")

        completed = [r for r in caplog.records if r.getMessage() == "Completed operation: promote"]
        assert completed[0].success is False
        assert completed[0].error_type == "RuntimeError"
