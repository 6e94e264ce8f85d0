# taxi_ingest/orchestrator/ingestion_pipeline.py
"""
Main orchestrator for NYC Taxi batch ingestion
"""

import concurrent.futures
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from taxi_ingest.config.settings import PipelineConfig, Settings, STAGING_BACKENDS, STORE_BACKENDS
from taxi_ingest.extractors.csv_reader import CsvBatchReader, find_input_file, source_filename
from taxi_ingest.loaders.canonical_store import CanonicalStore, InMemoryCanonicalStore
from taxi_ingest.loaders.snowflake_loader import SnowflakeCanonicalStore
from taxi_ingest.loaders.stage_manager import LocalStagingArea, S3StagingArea, StagingArea
from taxi_ingest.models.batch import Batch, MergeReport, Period, RejectedRecord, StagingHandle
from taxi_ingest.models.trip_schema import TripCategory, parse_category
from taxi_ingest.orchestrator.ingestion_engine import IngestionEngine
from taxi_ingest.utils.logger import get_logger, PerformanceLogger, timed_operation
from taxi_ingest.utils.exceptions import (
    ConfigurationError, ErrorCollector, PipelineError, handle_pipeline_exception, retry_on_exception
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestionResult:
    """Outcome of ingesting one source file"""
    status: str
    category: TripCategory
    period: Period
    source_file: str
    report: Optional[MergeReport] = None
    rejected: List[RejectedRecord] = field(default_factory=list)
    error: Optional[PipelineError] = None
    processing_time_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'category': self.category.value,
            'period': str(self.period),
            'source_file': self.source_file,
            'report': self.report.to_dict() if self.report else None,
            'rejected': [record.to_dict() for record in self.rejected],
            'error': self.error.to_dict() if self.error else None,
            'processing_time_seconds': self.processing_time_seconds
        }


class IngestionPipeline:
    """
    Runs batches through the engine with retries and reports the outcome

    Each lifecycle step is retried on its own, and only for retriable
    (storage) failures. Configuration errors fail the batch at once.
    Batch-level failures are returned as failed results rather than
    raised, so one bad month does not stop a backfill.

    After a successful promote the staging artifact is always released.
    After a failed one it is kept for inspection unless
    ``release_on_failure`` is set; the next attempt at the same source
    file overwrites it in place.
    """

    def __init__(
        self,
        engine: IngestionEngine,
        config: PipelineConfig,
        reader: Optional[CsvBatchReader] = None
    ):
        """
        Initialize the ingestion pipeline

        Args:
            engine: Engine wired to a staging area and a canonical store
            config: Retry, concurrency and release settings
            reader: Reader for local trip files
        """
        self.engine = engine
        self.config = config
        self.reader = reader or CsvBatchReader()
        self.logger = get_logger(__name__)
        self.performance_logger = PerformanceLogger(__name__)

        self.logger.info("Ingestion pipeline initialized successfully")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store_backend: Optional[str] = None,
        staging_backend: Optional[str] = None
    ) -> 'IngestionPipeline':
        """
        Build a pipeline from settings

        Raises:
            ConfigurationError: If a backend is unknown or its credentials are missing
        """
        store_backend = (store_backend or settings.pipeline.store_backend).lower()
        staging_backend = (staging_backend or settings.pipeline.staging_backend).lower()

        if store_backend not in STORE_BACKENDS:
            raise ConfigurationError(
                f"Unknown store backend '{store_backend}', expected one of {list(STORE_BACKENDS)}"
            )
        if staging_backend not in STAGING_BACKENDS:
            raise ConfigurationError(
                f"Unknown staging backend '{staging_backend}', expected one of {list(STAGING_BACKENDS)}"
            )
        missing = settings.missing_settings(store_backend=store_backend, staging_backend=staging_backend)
        if missing:
            raise ConfigurationError(
                f"Missing configuration: {', '.join(missing)}",
                error_code="MISSING_SETTINGS",
                context={'store_backend': store_backend, 'staging_backend': staging_backend}
            )

        if store_backend == "snowflake":
            store: CanonicalStore = SnowflakeCanonicalStore(settings.snowflake)
        else:
            store = InMemoryCanonicalStore()

        if staging_backend == "s3":
            staging: StagingArea = S3StagingArea(settings.s3)
        else:
            staging = LocalStagingArea(settings.pipeline.data_dir)

        return cls(IngestionEngine(staging, store), settings.pipeline)

    def _with_retry(self, func):
        return retry_on_exception(
            max_retries=self.config.max_retries,
            delay_seconds=self.config.retry_delay_seconds
        )(func)

    def run_batch(self, batch: Batch) -> IngestionResult:
        """
        Stage, promote and release one batch

        Args:
            batch: Raw rows of one source file

        Returns:
            IngestionResult; failures are reported, not raised
        """
        start_time = _utcnow()
        handle: Optional[StagingHandle] = None
        report: Optional[MergeReport] = None
        error: Optional[PipelineError] = None

        with timed_operation(f"ingest_{batch.source_file}", self.logger):
            try:
                handle = self._with_retry(self.engine.stage)(batch)
                report = self._with_retry(self.engine.promote)(handle)
            except PipelineError as e:
                error = e
                self.logger.error(f"Failed to ingest {batch.source_file}: {str(e)}", extra={'error': e.to_dict()})
                self.performance_logger.log_error_metrics(
                    type(e).__name__, str(e), source_file=batch.source_file, period=str(batch.period)
                )

            if handle is not None and (error is None or self.config.release_on_failure):
                try:
                    self._with_retry(self.engine.release)(handle)
                except PipelineError as e:
                    # the merge already committed; a leftover artifact is overwritten next run
                    self.logger.warning(f"Failed to release {handle.location}: {str(e)}")
            elif handle is not None:
                self.logger.info(f"Keeping staged artifact for inspection: {handle.location}")

        processing_time = (_utcnow() - start_time).total_seconds()
        result = IngestionResult(
            status="completed" if error is None else "failed",
            category=batch.category,
            period=batch.period,
            source_file=batch.source_file,
            report=report,
            rejected=list(handle.rejected) if handle else [],
            error=error,
            processing_time_seconds=processing_time
        )

        if report is not None:
            self.performance_logger.log_data_metrics(
                source_file=batch.source_file,
                rows_read=batch.row_count,
                processing_time_seconds=processing_time,
                **{k: v for k, v in report.to_dict().items() if k.startswith(('rows_', 'duplicates_'))}
            )
        return result

    def ingest_file(
        self,
        category: Union[str, TripCategory],
        period: Period,
        path: Union[str, Path],
        source_file: Optional[str] = None
    ) -> IngestionResult:
        """Read a local trip file and run it as one batch"""
        category = parse_category(category)
        start_time = _utcnow()

        try:
            batch = self.reader.read_batch(path, category, period, source_file=source_file)
        except Exception as e:
            error = handle_pipeline_exception("ingest_file", e, {'path': str(path)})
            self.logger.error(f"Failed to read {path}: {str(error)}")
            return IngestionResult(
                status="failed",
                category=category,
                period=period,
                source_file=source_file or Path(path).name,
                error=error,
                processing_time_seconds=(_utcnow() - start_time).total_seconds()
            )

        return self.run_batch(batch)

    def _ingest_period(self, category: TripCategory, period: Period, input_dir: Path) -> IngestionResult:
        path = find_input_file(input_dir, category, period)
        if path is None:
            return IngestionResult(
                status="failed",
                category=category,
                period=period,
                source_file=source_filename(category, period),
                error=ConfigurationError(
                    f"No input file for {category.value} {period} in {input_dir}",
                    error_code="INPUT_FILE_MISSING",
                    context={'input_dir': str(input_dir)}
                )
            )
        return self.ingest_file(category, period, path)

    def ingest_periods(
        self,
        category: Union[str, TripCategory],
        periods: Iterable[Period],
        input_dir: Union[str, Path]
    ) -> List[IngestionResult]:
        """
        Ingest one file per period from ``input_dir``

        Periods run in parallel when ``max_workers`` is above one. Results
        come back in the order the periods were given.
        """
        category = parse_category(category)
        periods = list(periods)
        input_dir = Path(input_dir)
        error_collector = ErrorCollector()

        self.logger.info(f"Processing {len(periods)} {category.value} periods from {input_dir}")

        with timed_operation(f"ingest_{category.value}_periods", self.logger):
            if self.config.max_workers > 1 and len(periods) > 1:
                with concurrent.futures.ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                    futures = [
                        executor.submit(self._ingest_period, category, period, input_dir)
                        for period in periods
                    ]
                    results = [future.result() for future in futures]
            else:
                results = [self._ingest_period(category, period, input_dir) for period in periods]

        for result in results:
            if result.error is not None:
                error_collector.add_error(result.error, {'period': str(result.period)})

        self.performance_logger.log_data_metrics(
            periods_processed=len(results),
            periods_failed=error_collector.error_count,
            rows_inserted=sum(r.report.rows_inserted for r in results if r.report),
            rows_skipped=sum(r.report.rows_skipped for r in results if r.report)
        )
        if error_collector.has_errors:
            self.logger.warning(
                f"{error_collector.error_count} of {len(results)} periods failed",
                extra=error_collector.get_summary()
            )
        return results

    def ensure_resources(self, category: Union[str, TripCategory]) -> None:
        """Create the staging area and the canonical table if missing"""
        category = parse_category(category)
        self.engine.staging_area.ensure_ready()
        self.engine.canonical_store.ensure_table(category)
        self.logger.info(f"Resources ready for {category.value}")

    def get_pipeline_status(self) -> Dict[str, Any]:
        """Get current pipeline status and health"""
        try:
            staging_ok = self.engine.staging_area.verify_connectivity()
            store_ok = self.engine.canonical_store.verify_connectivity()

            return {
                'pipeline_status': 'healthy' if staging_ok and store_ok else 'degraded',
                'staging_backend': type(self.engine.staging_area).__name__,
                'store_backend': type(self.engine.canonical_store).__name__,
                'staging_connectivity': staging_ok,
                'store_connectivity': store_ok,
                'data_directory': str(self.config.data_dir),
                'max_workers': self.config.max_workers,
                'max_retries': self.config.max_retries,
                'release_on_failure': self.config.release_on_failure,
                'timestamp': _utcnow().isoformat()
            }
        except Exception as e:
            return {
                'pipeline_status': 'unhealthy',
                'error': str(e),
                'timestamp': _utcnow().isoformat()
            }

    def cleanup_resources(self, older_than_days: int = 7) -> Dict[str, Any]:
        """Purge staging artifacts left behind by failed runs"""
        cleanup_results: Dict[str, Any] = {}

        try:
            cleanup_results['staging_artifacts_cleaned'] = self.engine.staging_area.purge(older_than_days)
            cleanup_results['status'] = 'success'
            self.logger.info(f"Cleanup completed: {cleanup_results}")

        except PipelineError as e:
            cleanup_results['status'] = 'error'
            cleanup_results['error'] = str(e)
            self.logger.error(f"Cleanup failed: {str(e)}")

        return cleanup_results
