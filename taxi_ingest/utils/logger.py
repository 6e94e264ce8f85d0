# taxi_ingest/utils/logger.py
"""
Logging setup for the ingestion engine

Console output is one JSON object per line (plain text at DEBUG), so
per-batch counts passed through ``extra=`` stay machine readable.
With a log directory, everything at INFO goes to ``taxi_ingest.log`` and
failures are duplicated into ``errors.log``; both files rotate.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


# Attributes every LogRecord carries; anything else came in through ``extra=``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {'message', 'asctime'}

_QUIET_LOGGERS = ('boto3', 'botocore', 's3transfer', 'urllib3', 'snowflake')

_TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class JSONFormatter(logging.Formatter):
    """Render a record, plus its ``extra`` fields, as a single JSON line"""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        entry: Dict[str, Any] = {
            'timestamp': created.isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'thread': record.threadName,
        }

        for key, value in vars(record).items():
            if key not in _STANDARD_ATTRS and key not in entry:
                entry[key] = value

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _rotating_handler(path: Path, level: int, max_mb: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_pipeline_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """
    Configure the root logger for a run

    Call once at startup. Existing root handlers are replaced, so calling
    it again does not duplicate output.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: Directory for rotating log files; console only when omitted
    """
    level_name = log_level.upper()
    level = getattr(logging, level_name)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    if level_name == "DEBUG":
        console.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    else:
        console.setFormatter(JSONFormatter())
    root_logger.addHandler(console)

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_rotating_handler(directory / 'taxi_ingest.log', logging.INFO, 50, 10))
        root_logger.addHandler(_rotating_handler(directory / 'errors.log', logging.ERROR, 10, 5))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class PerformanceLogger:
    """
    Timings and volume metrics under the ``performance.`` logger namespace

    Durations are measured with a monotonic clock; one timer per
    operation name can be open at a time.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(f"performance.{logger_name}")
        self.start_times: Dict[str, float] = {}

    def start_operation(self, operation_name: str) -> None:
        self.start_times[operation_name] = time.perf_counter()
        self.logger.info(f"Started operation: {operation_name}")

    def end_operation(self, operation_name: str, **extra_metrics) -> float:
        """
        Stop the timer for ``operation_name`` and log its duration

        Returns:
            Duration in seconds, or 0.0 if the operation was never started
        """
        started = self.start_times.pop(operation_name, None)
        if started is None:
            self.logger.warning(f"Operation {operation_name} was not started")
            return 0.0

        duration = time.perf_counter() - started
        self.logger.info(
            f"Completed operation: {operation_name}",
            extra={'operation': operation_name, 'duration_seconds': round(duration, 6), **extra_metrics}
        )
        return duration

    def log_data_metrics(self, **metrics) -> None:
        """Log row counts for a batch or a backfill"""
        self.logger.info("Data metrics", extra={'metrics_type': 'data', **metrics})

    def log_error_metrics(self, error_type: str, error_message: str, **context) -> None:
        self.logger.error(
            "Error occurred",
            extra={'metrics_type': 'error', 'error_type': error_type, 'error_message': error_message, **context}
        )


class timed_operation:
    """
    Context manager that logs how long a block took

    Usage:
        with timed_operation("promote", logger) as timer:
            ...
        timer.duration  # seconds

    Exceptions propagate; the completion record carries ``success`` and
    ``error_type`` either way.
    """

    def __init__(self, operation_name: str, logger: logging.Logger):
        self.operation_name = operation_name
        self.duration = 0.0
        self.performance_logger = PerformanceLogger(logger.name)

    def __enter__(self):
        self.performance_logger.start_operation(self.operation_name)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = self.performance_logger.end_operation(
            self.operation_name,
            success=exc_type is None,
            error_type=exc_type.__name__ if exc_type else None
        )
        return False
