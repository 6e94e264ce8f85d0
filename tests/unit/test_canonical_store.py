# tests/unit/test_canonical_store.py
"""
Unit tests for the in-memory canonical store
"""

import threading

import pandas as pd
import pytest

from taxi_ingest.dedup import coerce_frame, fingerprint_frame
from taxi_ingest.loaders.canonical_store import InMemoryCanonicalStore
from taxi_ingest.models.trip_schema import TripCategory
from taxi_ingest.utils.exceptions import ConfigurationError


@pytest.fixture
def rows_factory(green_frame_factory, green_schema):
    def build(count, start=0, source_file="green_tripdata_2019-01.csv"):
        typed, _ = coerce_frame(green_frame_factory(count, start), green_schema)
        typed['row_key'] = fingerprint_frame(typed, green_schema)
        typed['source_file'] = source_file
        return typed[list(green_schema.stored_columns)]
    return build


class TestInMemoryCanonicalStoreTables:
    """Test table lifecycle"""

    def test_table_missing_until_ensured(self):
        store = InMemoryCanonicalStore()

        assert store.table_exists(TripCategory.GREEN) is False
        store.ensure_table("green")
        assert store.table_exists(TripCategory.GREEN) is True
        assert store.row_count("green") == 0

    def test_ensure_table_is_idempotent(self, memory_store, rows_factory):
        memory_store.merge(TripCategory.GREEN, rows_factory(3))

        memory_store.ensure_table(TripCategory.GREEN)

        assert memory_store.row_count(TripCategory.GREEN) == 3

    def test_merge_into_missing_table_fails(self, rows_factory):
        store = InMemoryCanonicalStore()

        with pytest.raises(ConfigurationError) as exc_info:
            store.merge(TripCategory.GREEN, rows_factory(2))

        assert exc_info.value.error_code == "CANONICAL_TABLE_MISSING"
        assert exc_info.value.retriable is False
        assert store.table_exists(TripCategory.GREEN) is False

    def test_row_count_of_missing_table_fails(self):
        with pytest.raises(ConfigurationError):
            InMemoryCanonicalStore().row_count(TripCategory.YELLOW)


class TestInMemoryCanonicalStoreMerge:
    """Test insert-only merge semantics"""

    def test_first_merge_inserts_everything(self, memory_store, rows_factory):
        counts = memory_store.merge(TripCategory.GREEN, rows_factory(10))

        assert (counts.inserted, counts.skipped) == (10, 0)
        assert memory_store.row_count(TripCategory.GREEN) == 10

    def test_merge_is_idempotent(self, memory_store, rows_factory):
        memory_store.merge(TripCategory.GREEN, rows_factory(10))

        counts = memory_store.merge(TripCategory.GREEN, rows_factory(10))

        assert (counts.inserted, counts.skipped) == (0, 10)
        assert memory_store.row_count(TripCategory.GREEN) == 10

    def test_partial_overlap_inserts_only_new_keys(self, memory_store, rows_factory):
        memory_store.merge(TripCategory.GREEN, rows_factory(10))

        counts = memory_store.merge(TripCategory.GREEN, rows_factory(10, start=3))

        assert (counts.inserted, counts.skipped) == (3, 7)
        assert memory_store.row_count(TripCategory.GREEN) == 13

    def test_existing_rows_are_never_updated(self, memory_store, rows_factory):
        memory_store.merge(TripCategory.GREEN, rows_factory(1, source_file="first.csv"))

        memory_store.merge(TripCategory.GREEN, rows_factory(1, source_file="second.csv"))

        assert memory_store.snapshot(TripCategory.GREEN)['source_file'].tolist() == ["first.csv"]

    def test_repeated_key_within_merge_is_inserted_once(self, memory_store, rows_factory):
        rows = pd.concat([rows_factory(2), rows_factory(2)], ignore_index=True)

        counts = memory_store.merge(TripCategory.GREEN, rows)

        assert (counts.inserted, counts.skipped) == (2, 2)

    def test_empty_merge(self, memory_store, rows_factory):
        counts = memory_store.merge(TripCategory.GREEN, rows_factory(0))

        assert (counts.inserted, counts.skipped) == (0, 0)

    def test_snapshot_has_stored_column_order(self, memory_store, rows_factory, green_schema):
        memory_store.merge(TripCategory.GREEN, rows_factory(2))

        snapshot = memory_store.snapshot(TripCategory.GREEN)

        assert list(snapshot.columns) == list(green_schema.stored_columns)
        assert snapshot['row_key'].is_unique

    def test_categories_are_isolated(self, memory_store, rows_factory):
        memory_store.ensure_table(TripCategory.YELLOW)
        memory_store.merge(TripCategory.GREEN, rows_factory(4))

        assert memory_store.row_count(TripCategory.YELLOW) == 0

    def test_concurrent_disjoint_merges_insert_everything(self, memory_store, rows_factory):
        batches = [rows_factory(25, start=i * 25) for i in range(8)]
        results = []
        barrier = threading.Barrier(len(batches))

        def merge(rows):
            barrier.wait()
            results.append(memory_store.merge(TripCategory.GREEN, rows))

        threads = [threading.Thread(target=merge, args=(rows,)) for rows in batches]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(c.inserted for c in results) == 200
        assert memory_store.row_count(TripCategory.GREEN) == 200

    def test_concurrent_overlapping_merges_never_duplicate(self, memory_store, rows_factory):
        batches = [rows_factory(20, start=i * 5) for i in range(6)]
        results = []
        barrier = threading.Barrier(len(batches))

        def merge(rows):
            barrier.wait()
            results.append(memory_store.merge(TripCategory.GREEN, rows))

        threads = [threading.Thread(target=merge, args=(rows,)) for rows in batches]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = memory_store.snapshot(TripCategory.GREEN)
        assert snapshot['row_key'].is_unique
        assert len(snapshot) == 45
        assert sum(c.inserted for c in results) == 45
