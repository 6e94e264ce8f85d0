# taxi_ingest/dedup/deduplicate.py
"""
Intra-batch deduplication by row key
"""

import numpy as np
import pandas as pd

from taxi_ingest.models.trip_schema import ROW_KEY_COLUMN, TripSchema
from taxi_ingest.utils.exceptions import ProcessingError


_POSITION = "__position"


def deduplicate(frame: pd.DataFrame, schema: TripSchema) -> pd.DataFrame:
    """
    Keep one row per row key

    Equivalent to ``ROW_NUMBER() OVER (PARTITION BY row_key ORDER BY
    <primary timestamp>, <batch position>) = 1``: the earliest pickup wins
    and ties go to the row seen first. Survivors keep their batch order.

    Args:
        frame: Fingerprinted rows in batch order
        schema: Schema naming the primary timestamp column

    Returns:
        Deduplicated copy of ``frame`` with a fresh index

    Raises:
        ProcessingError: If the rows have not been fingerprinted
    """
    if ROW_KEY_COLUMN not in frame.columns:
        raise ProcessingError(
            f"Cannot deduplicate rows without a {ROW_KEY_COLUMN} column",
            error_code="NOT_FINGERPRINTED"
        )

    ordered = frame.reset_index(drop=True)
    if ordered.empty:
        return ordered.copy()

    ranked = ordered.assign(**{_POSITION: np.arange(len(ordered))}).sort_values(
        [schema.primary_timestamp, _POSITION], na_position="last"
    )
    survivors = ranked.drop_duplicates(subset=[ROW_KEY_COLUMN], keep="first")

    return (
        survivors.sort_values(_POSITION)
        .drop(columns=[_POSITION])
        .reset_index(drop=True)
    )
