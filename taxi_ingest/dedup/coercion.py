# taxi_ingest/dedup/coercion.py
"""
Typed coercion of raw batch rows

Raw rows arrive as text (or loosely typed values) from the extraction
step. Each column is converted to its schema type; a row whose natural
key cannot be converted is rejected with a recorded reason, while an
unreadable value in any other column is replaced by null.
"""

from typing import List, Tuple

import pandas as pd

from taxi_ingest.dedup.fingerprint import is_missing
from taxi_ingest.models.batch import RejectedRecord
from taxi_ingest.models.trip_schema import ColumnType, TripSchema
from taxi_ingest.utils.logger import get_logger


logger = get_logger(__name__)

_INT64_BOUND = float(2 ** 63)


def _strip(values: pd.Series) -> pd.Series:
    if values.dtype == object or pd.api.types.is_string_dtype(values):
        return values.map(lambda v: v.strip() if isinstance(v, str) else v)
    return values


def _coerce_column(values: pd.Series, column_type: ColumnType) -> Tuple[pd.Series, pd.Series]:
    """
    Convert one column

    Returns:
        Tuple of (converted values, mask of values that failed conversion)
    """
    missing = values.map(is_missing).astype(bool)
    present = _strip(values).where(~missing)

    if column_type is ColumnType.TIMESTAMP:
        if pd.api.types.is_datetime64_any_dtype(present):
            converted = present
        else:
            try:
                converted = pd.to_datetime(present.astype(object), errors="coerce", format="mixed")
            except (TypeError, ValueError):
                converted = None
        if converted is None or not pd.api.types.is_datetime64_any_dtype(converted):
            # mixed UTC offsets come back as objects or raise, depending on the pandas release
            converted = pd.to_datetime(present.astype(object), errors="coerce", format="mixed", utc=True)
        if getattr(converted.dt, "tz", None) is not None:
            converted = converted.dt.tz_convert("UTC").dt.tz_localize(None)
        failed = ~missing & converted.isna()
        return converted.astype("datetime64[ns]"), failed

    if column_type is ColumnType.INTEGER:
        numeric = pd.to_numeric(present, errors="coerce")
        fractional = numeric.notna() & (numeric % 1 != 0)
        failed = (~missing & numeric.isna()) | fractional
        if not pd.api.types.is_signed_integer_dtype(numeric):
            # values beyond int64 parse as float64 or uint64 and cannot be cast
            as_float = numeric.astype("float64")
            failed |= numeric.notna() & ((as_float >= _INT64_BOUND) | (as_float <= -_INT64_BOUND))
        return numeric.where(~failed).astype("Int64"), failed

    if column_type is ColumnType.FLOAT:
        numeric = pd.to_numeric(present, errors="coerce").astype("float64")
        failed = ~missing & numeric.isna()
        return numeric, failed

    converted = present.astype(object).where(~missing, None)
    return converted.map(lambda v: v if v is None else str(v)).astype("string"), pd.Series(False, index=values.index)


def coerce_frame(frame: pd.DataFrame, schema: TripSchema) -> Tuple[pd.DataFrame, List[RejectedRecord]]:
    """
    Coerce a raw frame to ``schema``

    Args:
        frame: Raw rows in batch order
        schema: Target schema

    Returns:
        Tuple of (typed frame with exactly the schema columns in schema
        order and a fresh index, rejected records by batch position)
    """
    raw = frame.reset_index(drop=True)
    natural_key = set(schema.natural_key)
    coerced = {}
    rejected_by_position = {}

    for column in schema.columns:
        if column.name in raw.columns:
            values = raw[column.name]
        else:
            values = pd.Series([None] * len(raw), index=raw.index, dtype=object)

        converted, failed = _coerce_column(values, column.type)
        failed_positions = failed[failed].index.tolist()

        if failed_positions and column.name in natural_key:
            for position in failed_positions:
                if position not in rejected_by_position:
                    value = values.iloc[position]
                    rejected_by_position[position] = RejectedRecord(
                        position=int(position),
                        field=column.name,
                        value=value,
                        reason=f"could not parse '{value}' as {column.type.value}"
                    )
        elif failed_positions:
            logger.warning(
                f"Nulled {len(failed_positions)} unreadable values in non-key column {column.name}"
            )

        coerced[column.name] = converted

    typed = pd.DataFrame(coerced, index=raw.index)
    rejected = [rejected_by_position[p] for p in sorted(rejected_by_position)]

    if rejected:
        typed = typed.drop(index=[r.position for r in rejected])
        logger.warning(f"Rejected {len(rejected)} rows with unreadable natural-key fields")

    return typed.reset_index(drop=True), rejected
