"""Data models"""

from .trip_schema import (
    TripCategory, ColumnType, ColumnSpec, TripSchema, YELLOW_SCHEMA, GREEN_SCHEMA,
    ROW_KEY_COLUMN, SOURCE_FILE_COLUMN, get_schema, parse_category
)
from .batch import Period, Batch, RejectedRecord, StagingHandle, MergeCounts, MergeReport

__all__ = [
    'TripCategory', 'ColumnType', 'ColumnSpec', 'TripSchema', 'YELLOW_SCHEMA', 'GREEN_SCHEMA',
    'ROW_KEY_COLUMN', 'SOURCE_FILE_COLUMN', 'get_schema', 'parse_category',
    'Period', 'Batch', 'RejectedRecord', 'StagingHandle', 'MergeCounts', 'MergeReport'
]
