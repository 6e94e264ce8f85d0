# taxi_ingest/models/trip_schema.py
"""
Fixed column schemas for NYC Taxi trip categories
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union, Dict

from taxi_ingest.utils.exceptions import ConfigurationError


ROW_KEY_COLUMN = "row_key"
SOURCE_FILE_COLUMN = "source_file"


class TripCategory(Enum):
    """Taxi categories with a canonical table"""
    YELLOW = "yellow"
    GREEN = "green"

    @property
    def table_name(self) -> str:
        return f"{self.value}_tripdata"


class ColumnType(Enum):
    """Logical column types shared by every storage backend"""
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    type: ColumnType


@dataclass(frozen=True)
class TripSchema:
    """
    Column layout of one taxi category

    ``natural_key`` lists, in hashing order, the business fields that
    identify a trip. ``primary_timestamp`` orders duplicates when a
    single representative has to be chosen.
    """
    category: TripCategory
    columns: Tuple[ColumnSpec, ...]
    natural_key: Tuple[str, ...]
    primary_timestamp: str

    def __post_init__(self):
        names = self.column_names
        missing = [name for name in self.natural_key + (self.primary_timestamp,) if name not in names]
        if missing:
            raise ConfigurationError(
                f"Schema for {self.category.value} references unknown columns: {missing}"
            )

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def table_name(self) -> str:
        return self.category.table_name

    @property
    def stored_columns(self) -> Tuple[str, ...]:
        """Column order of staged and canonical rows"""
        return (ROW_KEY_COLUMN, SOURCE_FILE_COLUMN) + self.column_names

    def column_type(self, name: str) -> ColumnType:
        for column in self.columns:
            if column.name == name:
                return column.type
        raise KeyError(name)


def _columns(*pairs) -> Tuple[ColumnSpec, ...]:
    return tuple(ColumnSpec(name, column_type) for name, column_type in pairs)


I, F, S, T = ColumnType.INTEGER, ColumnType.FLOAT, ColumnType.STRING, ColumnType.TIMESTAMP

YELLOW_SCHEMA = TripSchema(
    category=TripCategory.YELLOW,
    columns=_columns(
        ("VendorID", I),
        ("tpep_pickup_datetime", T),
        ("tpep_dropoff_datetime", T),
        ("passenger_count", I),
        ("trip_distance", F),
        ("RatecodeID", I),
        ("store_and_fwd_flag", S),
        ("PULocationID", I),
        ("DOLocationID", I),
        ("payment_type", I),
        ("fare_amount", F),
        ("extra", F),
        ("mta_tax", F),
        ("tip_amount", F),
        ("tolls_amount", F),
        ("improvement_surcharge", F),
        ("total_amount", F),
        ("congestion_surcharge", F),
    ),
    natural_key=(
        "VendorID",
        "tpep_pickup_datetime",
        "tpep_dropoff_datetime",
        "PULocationID",
        "DOLocationID",
    ),
    primary_timestamp="tpep_pickup_datetime",
)

GREEN_SCHEMA = TripSchema(
    category=TripCategory.GREEN,
    columns=_columns(
        ("VendorID", I),
        ("lpep_pickup_datetime", T),
        ("lpep_dropoff_datetime", T),
        ("store_and_fwd_flag", S),
        ("RatecodeID", I),
        ("PULocationID", I),
        ("DOLocationID", I),
        ("passenger_count", I),
        ("trip_distance", F),
        ("fare_amount", F),
        ("extra", F),
        ("mta_tax", F),
        ("tip_amount", F),
        ("tolls_amount", F),
        ("ehail_fee", F),
        ("improvement_surcharge", F),
        ("total_amount", F),
        ("payment_type", I),
        ("trip_type", I),
        ("congestion_surcharge", F),
    ),
    natural_key=(
        "VendorID",
        "lpep_pickup_datetime",
        "lpep_dropoff_datetime",
        "PULocationID",
        "DOLocationID",
    ),
    primary_timestamp="lpep_pickup_datetime",
)

del I, F, S, T

SCHEMAS: Dict[TripCategory, TripSchema] = {
    TripCategory.YELLOW: YELLOW_SCHEMA,
    TripCategory.GREEN: GREEN_SCHEMA,
}


def parse_category(value: Union[str, TripCategory]) -> TripCategory:
    """
    Resolve a category name such as ``"green"``

    Raises:
        ConfigurationError: If the category is unknown
    """
    if isinstance(value, TripCategory):
        return value
    try:
        return TripCategory(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown taxi category: {value}",
            error_code="UNKNOWN_CATEGORY",
            context={'known_categories': [c.value for c in TripCategory]}
        )


def get_schema(category: Union[str, TripCategory]) -> TripSchema:
    """Return the fixed schema for a category"""
    return SCHEMAS[parse_category(category)]
