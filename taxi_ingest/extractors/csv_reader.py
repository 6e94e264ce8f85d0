# taxi_ingest/extractors/csv_reader.py
"""
Local trip file reader for NYC Taxi ingestion

Reads already-downloaded monthly TLC trip files into a Batch. Every
column is read as text so the coercion step sees the values exactly as
published.
"""

from pathlib import Path
from typing import Optional, Union

import pandas as pd

from taxi_ingest.models.batch import Batch, Period
from taxi_ingest.models.trip_schema import TripCategory, get_schema, parse_category
from taxi_ingest.utils.logger import get_logger
from taxi_ingest.utils.exceptions import ConfigurationError, StageError


INPUT_SUFFIXES = (".csv.gz", ".csv")


def source_filename(category: Union[str, TripCategory], period: Period) -> str:
    """Name TLC publishes a category's monthly file under, e.g. ``green_tripdata_2019-01.csv``"""
    return f"{parse_category(category).table_name}_{period}.csv"


def find_input_file(input_dir: Path, category: Union[str, TripCategory], period: Period) -> Optional[Path]:
    """
    Locate the input file for a (category, period) in ``input_dir``

    A compressed file is preferred over a plain one.
    """
    stem = Path(input_dir) / source_filename(category, period)
    for suffix in INPUT_SUFFIXES:
        candidate = stem.with_name(stem.name[:-len(".csv")] + suffix)
        if candidate.is_file():
            return candidate
    return None


class CsvBatchReader:
    """Reads local ``.csv`` and ``.csv.gz`` trip files"""

    def __init__(self):
        self.logger = get_logger(__name__)

    def read_batch(
        self,
        path: Union[str, Path],
        category: Union[str, TripCategory],
        period: Period,
        source_file: Optional[str] = None
    ) -> Batch:
        """
        Read a trip file into a Batch

        Args:
            path: Local file path
            category: Taxi category of the file
            period: Month the file covers
            source_file: Lineage name, defaults to the file name without ``.gz``

        Returns:
            Batch with the schema's columns in schema order, all as text

        Raises:
            ConfigurationError: If the file does not exist
            StageError: If the file cannot be read
        """
        path = Path(path)
        category = parse_category(category)
        schema = get_schema(category)

        if not path.is_file():
            raise ConfigurationError(
                f"Input file does not exist: {path}",
                error_code="INPUT_FILE_MISSING",
                context={'path': str(path)}
            )

        if source_file is None:
            source_file = path.name[:-len(".gz")] if path.name.endswith(".gz") else path.name

        try:
            frame = pd.read_csv(
                path,
                dtype=str,
                keep_default_na=False,
                na_values=[""],
                compression="infer"
            )
        except pd.errors.EmptyDataError:
            self.logger.warning(f"File {path} is empty")
            frame = pd.DataFrame(columns=list(schema.column_names))
        except (OSError, pd.errors.ParserError, UnicodeDecodeError) as e:
            raise StageError(f"Failed to read {path}: {str(e)}", cause=e, context={'path': str(path)}) from e

        frame.columns = [str(c).strip() for c in frame.columns]

        missing = [c for c in schema.column_names if c not in frame.columns]
        extra = [c for c in frame.columns if c not in schema.column_names]
        if missing:
            self.logger.warning(f"{path.name} is missing columns {missing}; filling with nulls")
        if extra:
            self.logger.info(f"{path.name} has extra columns {extra}; dropping them")

        frame = frame.reindex(columns=list(schema.column_names))

        self.logger.info(f"Read {len(frame)} rows from {path}")
        return Batch(category=category, period=period, source_file=source_file, frame=frame)
