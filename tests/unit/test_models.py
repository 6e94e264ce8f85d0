# tests/unit/test_models.py
"""
Unit tests for schema and batch models
"""

import pytest

from taxi_ingest.models.batch import MergeReport, Period, RejectedRecord, StagingHandle
from taxi_ingest.models.trip_schema import (
    ColumnSpec, ColumnType, GREEN_SCHEMA, TripCategory, TripSchema, YELLOW_SCHEMA,
    get_schema, parse_category
)
from taxi_ingest.utils.exceptions import ConfigurationError


class TestPeriod:
    """Test calendar month parsing"""

    def test_parse(self):
        assert Period.parse("2019-01") == Period(2019, 1)
        assert Period.parse(" 2020-12 ") == Period(2020, 12)

    def test_str_is_zero_padded(self):
        assert str(Period(2019, 3)) == "2019-03"

    def test_ordering(self):
        assert sorted([Period(2020, 1), Period(2019, 12)]) == [Period(2019, 12), Period(2020, 1)]

    @pytest.mark.parametrize("value", ["2019-1", "2019/01", "January 2019", "", "2019-13", "2019-00"])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError) as exc_info:
            Period.parse(value)

        assert exc_info.value.error_code == "INVALID_PERIOD"


class TestSchemas:
    """Test the fixed category schemas"""

    @pytest.mark.parametrize("value, expected", [
        ("green", TripCategory.GREEN),
        (" YELLOW ", TripCategory.YELLOW),
        (TripCategory.GREEN, TripCategory.GREEN),
    ])
    def test_parse_category(self, value, expected):
        assert parse_category(value) is expected

    def test_unknown_category(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_category("fhv")

        assert exc_info.value.error_code == "UNKNOWN_CATEGORY"
        assert exc_info.value.context['known_categories'] == ['yellow', 'green']

    def test_table_names(self):
        assert GREEN_SCHEMA.table_name == "green_tripdata"
        assert YELLOW_SCHEMA.table_name == "yellow_tripdata"

    def test_natural_keys(self):
        assert GREEN_SCHEMA.natural_key == (
            "VendorID", "lpep_pickup_datetime", "lpep_dropoff_datetime", "PULocationID", "DOLocationID"
        )
        assert YELLOW_SCHEMA.natural_key[1:3] == ("tpep_pickup_datetime", "tpep_dropoff_datetime")

    def test_stored_columns(self):
        stored = get_schema("green").stored_columns

        assert stored[:2] == ("row_key", "source_file")
        assert stored[2:] == GREEN_SCHEMA.column_names

    def test_column_type(self):
        assert YELLOW_SCHEMA.column_type("trip_distance") is ColumnType.FLOAT
        with pytest.raises(KeyError):
            YELLOW_SCHEMA.column_type("airport_fee")

    def test_schema_rejects_unknown_key_columns(self):
        with pytest.raises(ConfigurationError):
            TripSchema(
                category=TripCategory.GREEN,
                columns=(ColumnSpec("VendorID", ColumnType.INTEGER),),
                natural_key=("VendorID", "pickup"),
                primary_timestamp="pickup",
            )


class TestBatchModels:
    """Test handles and reports"""

    def test_rejected_record_to_dict(self):
        record = RejectedRecord(position=4, field="VendorID", value=3.5, reason="not an integer")

        assert record.to_dict() == {
            'position': 4, 'field': 'VendorID', 'value': '3.5', 'reason': 'not an integer'
        }
        assert RejectedRecord(0, "VendorID", None, "missing").to_dict()['value'] is None

    def test_staging_handle_counts_rejections(self):
        rejected = (RejectedRecord(1, "VendorID", "x", "bad"),)
        handle = StagingHandle(TripCategory.GREEN, Period(2019, 1), "f.csv", "/tmp/f.parquet", 9, rejected)

        assert handle.rows_rejected == 1

    def test_merge_report_to_dict(self):
        report = MergeReport(
            TripCategory.YELLOW, Period(2019, 2), "yellow_tripdata_2019-02.csv",
            rows_staged=5, duplicates_removed=1, rows_inserted=3, rows_skipped=1
        )

        assert report.to_dict() == {
            'category': 'yellow',
            'period': '2019-02',
            'source_file': 'yellow_tripdata_2019-02.csv',
            'rows_staged': 5,
            'rows_rejected': 0,
            'duplicates_removed': 1,
            'rows_inserted': 3,
            'rows_skipped': 1,
        }
