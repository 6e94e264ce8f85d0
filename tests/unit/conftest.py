# tests/unit/conftest.py
"""
Shared pytest fixtures for the ingestion engine tests
"""

import pytest
import pandas as pd
from unittest.mock import Mock

from taxi_ingest.config.settings import PipelineConfig, SnowflakeConfig
from taxi_ingest.loaders.canonical_store import InMemoryCanonicalStore
from taxi_ingest.loaders.stage_manager import LocalStagingArea
from taxi_ingest.models.batch import Batch, Period
from taxi_ingest.models.trip_schema import TripCategory, get_schema
from taxi_ingest.orchestrator.ingestion_engine import IngestionEngine


def make_green_frame(count: int = 10, start: int = 0) -> pd.DataFrame:
    """
    Raw green trip rows as published: every value is text

    Rows ``start`` .. ``start + count - 1`` are distinct trips, one per
    minute, so two frames with overlapping ranges share exactly the
    overlapping trips.
    """
    rows = []
    for i in range(start, start + count):
        pickup = pd.Timestamp("2019-01-01 00:00:00") + pd.Timedelta(minutes=i)
        rows.append({
            'VendorID': '2',
            'lpep_pickup_datetime': str(pickup),
            'lpep_dropoff_datetime': str(pickup + pd.Timedelta(minutes=12)),
            'store_and_fwd_flag': 'N',
            'RatecodeID': '1',
            'PULocationID': str(100 + i),
            'DOLocationID': '236',
            'passenger_count': '1',
            'trip_distance': '2.4',
            'fare_amount': '10.5',
            'extra': '0.5',
            'mta_tax': '0.5',
            'tip_amount': '2.0',
            'tolls_amount': '0',
            'ehail_fee': '',
            'improvement_surcharge': '0.3',
            'total_amount': '13.8',
            'payment_type': '1',
            'trip_type': '1',
            'congestion_surcharge': '',
        })
    columns = list(get_schema(TripCategory.GREEN).column_names)
    return pd.DataFrame(rows, columns=columns)


def make_batch(frame: pd.DataFrame, source_file: str = "green_tripdata_2019-01.csv",
               period: Period = Period(2019, 1)) -> Batch:
    return Batch(category=TripCategory.GREEN, period=period, source_file=source_file, frame=frame)


@pytest.fixture
def green_schema():
    return get_schema(TripCategory.GREEN)


@pytest.fixture
def yellow_schema():
    return get_schema(TripCategory.YELLOW)


@pytest.fixture
def green_frame():
    """Ten distinct raw green trips"""
    return make_green_frame(10)


@pytest.fixture
def memory_store():
    """In-memory canonical store with the green table created"""
    store = InMemoryCanonicalStore()
    store.ensure_table(TripCategory.GREEN)
    return store


@pytest.fixture
def local_staging(tmp_path):
    staging = LocalStagingArea(tmp_path)
    staging.ensure_ready()
    return staging


@pytest.fixture
def engine(local_staging, memory_store):
    return IngestionEngine(local_staging, memory_store)


@pytest.fixture
def pipeline_config(tmp_path):
    return PipelineConfig(
        data_dir=tmp_path,
        max_workers=1,
        max_retries=2,
        retry_delay_seconds=0.0
    )


@pytest.fixture
def snowflake_config():
    """Create a test Snowflake configuration"""
    return SnowflakeConfig(
        account="test_account",
        username="test_user",
        password="test_password",
        warehouse="TEST_WH",
        database="TEST_DB",
        schema="RAW",
        role="test_role"
    )


@pytest.fixture
def mock_snowflake_connection():
    """Create a mock Snowflake connection"""
    connection = Mock()
    cursor = Mock()
    connection.cursor.return_value = cursor

    # Setup default cursor behaviors
    cursor.execute.return_value = None
    cursor.fetchone.return_value = None
    cursor.fetchall.return_value = []
    cursor.close.return_value = None
    connection.close.return_value = None

    return connection


@pytest.fixture
def green_frame_factory():
    """Build raw green frames: ``green_frame_factory(count, start)``"""
    return make_green_frame


@pytest.fixture
def batch_factory():
    """Wrap a raw frame in a green Batch: ``batch_factory(frame, source_file, period)``"""
    return make_batch
