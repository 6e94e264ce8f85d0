# taxi_ingest/dedup/fingerprint.py
"""
Natural-key fingerprints (row keys) for trip records

The row key is the lowercase hex MD5 of the natural-key fields, each
rendered in its canonical string form and concatenated without a
delimiter in schema order. Null or missing fields render as ``""``.

Canonical forms:

- TIMESTAMP: ``YYYY-MM-DD HH:MM:SS[.ffffff]``, tz-aware values in UTC
- INTEGER: decimal digits, so ``132``, ``132.0`` and ``"132"`` agree
- FLOAT: ``repr(float(value))``
- STRING: ``str(value)``
"""

import hashlib
import numbers
from typing import Any, Iterable, Mapping

import pandas as pd

from taxi_ingest.models.trip_schema import ColumnType, TripSchema
from taxi_ingest.utils.exceptions import InputError


def is_missing(value: Any) -> bool:
    """True for None, NaN, NaT, pd.NA and blank strings"""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _canonical_timestamp(value: Any) -> str:
    try:
        ts = pd.Timestamp(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError, OverflowError) as e:
        raise InputError(f"could not parse '{value}' as timestamp", cause=e)
    if ts is pd.NaT:
        raise InputError(f"could not parse '{value}' as timestamp")
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts.isoformat(sep=" ")


def _canonical_integer(value: Any) -> str:
    if isinstance(value, numbers.Integral):
        return str(int(value))
    try:
        if isinstance(value, str):
            text = value.strip()
            try:
                return str(int(text))
            except ValueError:
                value = float(text)
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InputError(f"could not parse '{value}' as integer", cause=e)
    if not number.is_integer():
        raise InputError(f"could not parse '{value}' as integer")
    return str(int(number))


def _canonical_float(value: Any) -> str:
    try:
        return repr(float(value.strip() if isinstance(value, str) else value))
    except (TypeError, ValueError) as e:
        raise InputError(f"could not parse '{value}' as float", cause=e)


def canonical_value(value: Any, column_type: ColumnType) -> str:
    """
    Render a field value in its canonical string form

    Args:
        value: Raw or coerced field value
        column_type: Logical type of the field

    Returns:
        Canonical string, ``""`` for missing values

    Raises:
        InputError: If the value cannot be read as ``column_type``
    """
    if is_missing(value):
        return ""
    if column_type is ColumnType.TIMESTAMP:
        return _canonical_timestamp(value)
    if column_type is ColumnType.INTEGER:
        return _canonical_integer(value)
    if column_type is ColumnType.FLOAT:
        return _canonical_float(value)
    return str(value)


def _digest(parts: Iterable[str]) -> str:
    return hashlib.md5("".join(parts).encode("utf-8")).hexdigest()


def fingerprint(record: Mapping[str, Any], schema: TripSchema) -> str:
    """
    Compute the row key of a single record

    Args:
        record: Field name to value mapping; absent keys count as null
        schema: Schema naming the natural-key fields and their types

    Returns:
        32-character lowercase hex digest
    """
    return _digest(
        canonical_value(record.get(name), schema.column_type(name))
        for name in schema.natural_key
    )


def fingerprint_frame(frame: pd.DataFrame, schema: TripSchema) -> pd.Series:
    """Compute row keys for every row of ``frame``, aligned to its index"""
    key_columns = []
    for name in schema.natural_key:
        column_type = schema.column_type(name)
        values = frame[name].tolist() if name in frame.columns else [None] * len(frame)
        key_columns.append([canonical_value(value, column_type) for value in values])

    digests = [_digest(parts) for parts in zip(*key_columns)] if len(frame) else []
    return pd.Series(digests, index=frame.index, dtype=object)
