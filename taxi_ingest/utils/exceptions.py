# taxi_ingest/utils/exceptions.py
"""
Error taxonomy for the ingestion engine

Every failure the engine reports is a PipelineError. The class decides
what the orchestrator does with it:

    ConfigurationError  fatal, fix the setup and rerun
    InputError          one record is unusable, the batch continues
    StorageError        staging area or canonical store unreachable,
                        nothing was committed, safe to retry
    ProcessingError     anything unexpected, not retried
"""

import functools
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Type


class PipelineError(Exception):
    """
    Base class carrying a machine-readable code and context

    ``retriable`` is a class attribute: repeating the failed operation
    is safe and may succeed.
    """

    retriable = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or type(self).__name__
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error_type': type(self).__name__,
            'error_code': self.error_code,
            'message': self.message,
            'retriable': self.retriable,
            'context': self.context,
            'cause': str(self.cause) if self.cause else None
        }

    def __str__(self) -> str:
        text = f"{self.error_code}: {self.message}"
        if self.context:
            text += " (Context: " + ", ".join(f"{k}={v}" for k, v in self.context.items()) + ")"
        if self.cause:
            text += f" (Caused by: {self.cause})"
        return text


class ConfigurationError(PipelineError):
    """Missing canonical table, unknown category, bad period or missing credentials"""


class InputError(PipelineError):
    """A record value could not be coerced to its column type"""


class StorageError(PipelineError):
    """The staging area or canonical store could not complete an operation"""

    retriable = True


class StageError(StorageError):
    """Writing, reading or deleting a staged artifact failed"""


class LoaderError(StorageError):
    """Connecting to, bulk loading into or merging into the canonical store failed"""


class MergeConflictError(LoaderError):
    """Another writer held the canonical table; the merge was rolled back"""


class ProcessingError(PipelineError):
    """Unexpected failure inside the engine"""


# Foreign exception types in match order, with the class and code they become
_CONVERSIONS: List[Tuple[Tuple[Type[BaseException], ...], Type[PipelineError], str, str]] = [
    ((ConnectionError, TimeoutError), StorageError, "NETWORK_ERROR", "Network error"),
    ((FileNotFoundError,), ConfigurationError, "FILE_NOT_FOUND", "File not found"),
    ((PermissionError,), StageError, "PERMISSION_DENIED", "Permission denied"),
    ((ValueError,), InputError, "VALIDATION_ERROR", "Data validation error"),
    ((MemoryError,), ProcessingError, "MEMORY_ERROR", "Memory error"),
]


def handle_pipeline_exception(
    func_name: str,
    exception: Exception,
    context: Optional[Dict[str, Any]] = None
) -> PipelineError:
    """
    Convert any exception into a PipelineError

    PipelineErrors are returned as they are, with ``context`` merged in.
    Anything unrecognized becomes a ProcessingError with code UNKNOWN_ERROR.

    Args:
        func_name: Operation that failed, recorded in the context
        exception: The exception to convert
        context: Extra context to attach
    """
    if isinstance(exception, PipelineError):
        if context:
            exception.context.update(context)
        return exception

    error_context = {'function': func_name, **(context or {})}
    for types, error_class, error_code, label in _CONVERSIONS:
        if isinstance(exception, types):
            break
    else:
        error_class, error_code, label = ProcessingError, "UNKNOWN_ERROR", "Unexpected error"

    return error_class(
        f"{label} in {func_name}: {str(exception)}",
        error_code=error_code,
        context=error_context,
        cause=exception
    )


def retry_on_exception(
    max_retries: int = 3,
    delay_seconds: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: Tuple[type, ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep
):
    """
    Retry a callable while it fails with a retriable error

    Failures are converted with handle_pipeline_exception first. A fatal
    error is raised at once; a retriable one is retried up to
    ``max_retries`` times, sleeping ``delay_seconds * backoff_factor ** n``
    before retry ``n + 1``. The error that is finally raised records the
    attempt number and ``max_retries`` in its context.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    error = handle_pipeline_exception(wrapper.__name__, e, {'attempt': attempt + 1})
                    if not error.retriable or attempt >= max_retries:
                        error.context['max_retries'] = max_retries
                        raise error
                sleep(delay_seconds * (backoff_factor ** attempt))
                attempt += 1

        return wrapper
    return decorator


class ErrorCollector:
    """Gathers batch failures during a backfill so one bad period does not stop the rest"""

    def __init__(self):
        self.errors: List[PipelineError] = []

    def add_error(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        self.errors.append(handle_pipeline_exception("batch_operation", error, context))

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def get_summary(self) -> Dict[str, Any]:
        return {
            'error_count': self.error_count,
            'errors': [error.to_dict() for error in self.errors]
        }
