# taxi_ingest/orchestrator/ingestion_engine.py
"""
Idempotent batch ingestion engine: stage, promote, release
"""

from taxi_ingest.dedup import coerce_frame, deduplicate, fingerprint_frame
from taxi_ingest.loaders.canonical_store import CanonicalStore, missing_table_error
from taxi_ingest.loaders.stage_manager import StagingArea
from taxi_ingest.models.batch import Batch, MergeReport, StagingHandle
from taxi_ingest.models.trip_schema import ROW_KEY_COLUMN, SOURCE_FILE_COLUMN, get_schema
from taxi_ingest.utils.logger import get_logger, timed_operation


class IngestionEngine:
    """
    Moves one batch at a time into its category's canonical table

    The three steps are separate so a caller can retry each on its own:

    - ``stage`` coerces and fingerprints the batch and writes it to the
      staging area, replacing whatever an earlier attempt left there.
    - ``promote`` reads the staged rows back, removes duplicates within
      the batch and merges the survivors. Only rows whose row key is new
      to the canonical table are inserted, so promoting the same data
      again inserts nothing.
    - ``release`` deletes the staged artifact.

    The engine keeps no state between calls; concurrent use across
    batches is coordinated by the canonical store's merge.
    """

    def __init__(self, staging_area: StagingArea, canonical_store: CanonicalStore):
        self.staging_area = staging_area
        self.canonical_store = canonical_store
        self.logger = get_logger(__name__)

    def stage(self, batch: Batch) -> StagingHandle:
        """
        Coerce, fingerprint and stage a batch

        Rows whose natural key cannot be read are left out and returned
        on the handle as rejected records.

        Args:
            batch: Raw rows of one source file

        Returns:
            Handle to the staged artifact

        Raises:
            StageError: If the staging area cannot be written
        """
        schema = batch.schema

        with timed_operation(f"stage_{batch.source_file}", self.logger):
            typed, rejected = coerce_frame(batch.frame, schema)
            typed[ROW_KEY_COLUMN] = fingerprint_frame(typed, schema)
            typed[SOURCE_FILE_COLUMN] = batch.source_file
            staged = typed[list(schema.stored_columns)]

            location = self.staging_area.location_for(batch.category, batch.period, batch.source_file)
            self.staging_area.write(location, staged)

        self.logger.info(
            f"Staged {batch.source_file}: {len(staged)} rows, {len(rejected)} rejected"
        )
        return StagingHandle(
            category=batch.category,
            period=batch.period,
            source_file=batch.source_file,
            location=location,
            rows_staged=len(staged),
            rejected=tuple(rejected)
        )

    def promote(self, handle: StagingHandle) -> MergeReport:
        """
        Deduplicate the staged rows and merge them into the canonical table

        The staging artifact is left in place whatever the outcome.

        Raises:
            ConfigurationError: If the canonical table does not exist
            LoaderError: If the merge fails; nothing is committed
        """
        schema = get_schema(handle.category)

        with timed_operation(f"promote_{handle.source_file}", self.logger):
            if not self.canonical_store.table_exists(handle.category):
                raise missing_table_error(schema.table_name)

            staged = self.staging_area.read(handle.location)
            survivors = deduplicate(staged, schema)
            counts = self.canonical_store.merge(handle.category, survivors)

        report = MergeReport(
            category=handle.category,
            period=handle.period,
            source_file=handle.source_file,
            rows_staged=len(staged),
            rows_rejected=handle.rows_rejected,
            duplicates_removed=len(staged) - len(survivors),
            rows_inserted=counts.inserted,
            rows_skipped=counts.skipped
        )
        self.logger.info(f"Promoted {handle.source_file}", extra=report.to_dict())
        return report

    def release(self, handle: StagingHandle) -> bool:
        """Delete the staged artifact; False if it was already gone"""
        released = self.staging_area.delete(handle.location)
        if not released:
            self.logger.debug(f"Nothing to release at {handle.location}")
        return released
