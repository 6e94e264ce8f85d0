# taxi_ingest/models/batch.py
"""
Batch, staging handle and merge report models
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Tuple

import pandas as pd

from taxi_ingest.models.trip_schema import TripCategory, TripSchema, get_schema
from taxi_ingest.utils.exceptions import ConfigurationError


_PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass(frozen=True, order=True)
class Period:
    """A calendar month, the unit TLC publishes trip files in"""
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ConfigurationError(
                f"Month must be between 1 and 12, got {self.month}",
                error_code="INVALID_PERIOD"
            )

    @classmethod
    def parse(cls, value: str) -> 'Period':
        """
        Parse a ``YYYY-MM`` string

        Raises:
            ConfigurationError: If the value is not a valid year-month
        """
        match = _PERIOD_PATTERN.match(str(value).strip())
        if not match:
            raise ConfigurationError(
                f"Invalid period '{value}', expected YYYY-MM",
                error_code="INVALID_PERIOD"
            )
        return cls(int(match.group(1)), int(match.group(2)))

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass
class Batch:
    """
    Raw rows of one source file for one (category, period)

    ``frame`` keeps the rows in file order; its positional index is the
    tie-breaker for duplicates that share a pickup time.
    """
    category: TripCategory
    period: Period
    source_file: str
    frame: pd.DataFrame

    @property
    def schema(self) -> TripSchema:
        return get_schema(self.category)

    @property
    def row_count(self) -> int:
        return len(self.frame)


@dataclass(frozen=True)
class RejectedRecord:
    """A row excluded from a batch because a natural-key field could not be coerced"""
    position: int
    field: str
    value: Any
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'position': self.position,
            'field': self.field,
            'value': None if self.value is None else str(self.value),
            'reason': self.reason
        }


@dataclass(frozen=True)
class StagingHandle:
    """Where a fingerprinted batch was written and what was left out of it"""
    category: TripCategory
    period: Period
    source_file: str
    location: str
    rows_staged: int
    rejected: Tuple[RejectedRecord, ...] = ()

    @property
    def rows_rejected(self) -> int:
        return len(self.rejected)


@dataclass(frozen=True)
class MergeCounts:
    """Outcome of one conditional bulk insert into a canonical table"""
    inserted: int
    skipped: int


@dataclass
class MergeReport:
    """Counts describing one promoted batch"""
    category: TripCategory
    period: Period
    source_file: str
    rows_staged: int = 0
    rows_rejected: int = 0
    duplicates_removed: int = 0
    rows_inserted: int = 0
    rows_skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category.value,
            'period': str(self.period),
            'source_file': self.source_file,
            'rows_staged': self.rows_staged,
            'rows_rejected': self.rows_rejected,
            'duplicates_removed': self.duplicates_removed,
            'rows_inserted': self.rows_inserted,
            'rows_skipped': self.rows_skipped
        }
