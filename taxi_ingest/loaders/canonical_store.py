# taxi_ingest/loaders/canonical_store.py
"""
Canonical table contract and an in-process implementation
"""

import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Dict, Union

import pandas as pd

from taxi_ingest.models.batch import MergeCounts
from taxi_ingest.models.trip_schema import ROW_KEY_COLUMN, TripCategory, get_schema, parse_category
from taxi_ingest.utils.logger import get_logger
from taxi_ingest.utils.exceptions import ConfigurationError


def missing_table_error(table_name: str) -> ConfigurationError:
    return ConfigurationError(
        f"Canonical table {table_name} does not exist",
        error_code="CANONICAL_TABLE_MISSING",
        context={'table_name': table_name}
    )


class CanonicalStore(ABC):
    """
    Durable, deduplicated store of trips keyed by row key

    ``merge`` is a set union by row key: rows whose key is already present
    are skipped, never updated, and the whole merge commits or nothing
    does. Every implementation must evaluate "already present" against a
    single consistent snapshot of the table.
    """

    @abstractmethod
    def table_exists(self, category: Union[str, TripCategory]) -> bool:
        pass

    @abstractmethod
    def ensure_table(self, category: Union[str, TripCategory]) -> None:
        """Create the canonical table for ``category`` if it is missing"""

    @abstractmethod
    def merge(self, category: Union[str, TripCategory], frame: pd.DataFrame) -> MergeCounts:
        """
        Insert rows of ``frame`` whose row key is not yet in the table

        Args:
            category: Taxi category selecting the canonical table
            frame: Deduplicated, fingerprinted rows

        Returns:
            Counts of inserted and skipped rows

        Raises:
            ConfigurationError: If the canonical table does not exist
            LoaderError: If the store cannot be reached or the merge fails
        """

    @abstractmethod
    def row_count(self, category: Union[str, TripCategory]) -> int:
        pass

    def verify_connectivity(self) -> bool:
        return True


class InMemoryCanonicalStore(CanonicalStore):
    """
    Canonical tables held in process memory

    A single lock serializes merges, which gives each merge a consistent
    snapshot. New rows are collected before any is applied, so a failing
    merge leaves the table as it was.
    """

    def __init__(self):
        self.logger = get_logger(__name__)
        self._lock = threading.Lock()
        self._tables: Dict[TripCategory, "OrderedDict[str, dict]"] = {}

    def table_exists(self, category: Union[str, TripCategory]) -> bool:
        return parse_category(category) in self._tables

    def ensure_table(self, category: Union[str, TripCategory]) -> None:
        category = parse_category(category)
        with self._lock:
            if category not in self._tables:
                self._tables[category] = OrderedDict()
                self.logger.info(f"Created in-memory table {category.table_name}")

    def merge(self, category: Union[str, TripCategory], frame: pd.DataFrame) -> MergeCounts:
        category = parse_category(category)
        columns = get_schema(category).stored_columns
        incoming = frame.reindex(columns=list(columns))

        with self._lock:
            table = self._tables.get(category)
            if table is None:
                raise missing_table_error(category.table_name)

            new_rows = OrderedDict()
            for record in incoming.to_dict(orient="records"):
                key = record[ROW_KEY_COLUMN]
                if key not in table and key not in new_rows:
                    new_rows[key] = record

            table.update(new_rows)

        inserted = len(new_rows)
        return MergeCounts(inserted=inserted, skipped=len(incoming) - inserted)

    def row_count(self, category: Union[str, TripCategory]) -> int:
        category = parse_category(category)
        with self._lock:
            table = self._tables.get(category)
            if table is None:
                raise missing_table_error(category.table_name)
            return len(table)

    def snapshot(self, category: Union[str, TripCategory]) -> pd.DataFrame:
        """Copy of a canonical table in insertion order"""
        category = parse_category(category)
        columns = list(get_schema(category).stored_columns)
        with self._lock:
            table = self._tables.get(category)
            if table is None:
                raise missing_table_error(category.table_name)
            rows = list(table.values())
        return pd.DataFrame(rows, columns=columns)
