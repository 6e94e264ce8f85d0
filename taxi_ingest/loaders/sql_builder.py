# taxi_ingest/loaders/sql_builder.py
"""
SQL construction for the canonical store

Statements are built from the fixed schema definitions only. Identifiers
are validated and double-quoted; row values never appear in SQL text and
are bound as parameters or bulk-loaded.
"""

import re
from typing import Iterable, Optional

from taxi_ingest.models.trip_schema import ColumnType, ROW_KEY_COLUMN, SOURCE_FILE_COLUMN, TripSchema
from taxi_ingest.utils.exceptions import ConfigurationError


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")

SNOWFLAKE_TYPES = {
    ColumnType.INTEGER: "INTEGER",
    ColumnType.FLOAT: "FLOAT",
    ColumnType.STRING: "VARCHAR",
    ColumnType.TIMESTAMP: "TIMESTAMP_NTZ",
}


def quote_identifier(name: str) -> str:
    """
    Quote a table or column name

    Raises:
        ConfigurationError: If the name is not a plain identifier
    """
    if not _IDENTIFIER.match(name or ""):
        raise ConfigurationError(f"Invalid SQL identifier: {name!r}", error_code="INVALID_IDENTIFIER")
    return f'"{name}"'


def qualified_name(table: str, schema_name: Optional[str] = None, database: Optional[str] = None) -> str:
    parts = [part for part in (database, schema_name, table) if part]
    return ".".join(quote_identifier(part) for part in parts)


def _column_list(columns: Iterable[str], alias: Optional[str] = None) -> str:
    prefix = f"{alias}." if alias else ""
    return ", ".join(f"{prefix}{quote_identifier(c)}" for c in columns)


def column_definitions(schema: TripSchema) -> str:
    definitions = [
        f"{quote_identifier(ROW_KEY_COLUMN)} VARCHAR(32) NOT NULL",
        f"{quote_identifier(SOURCE_FILE_COLUMN)} VARCHAR",
    ]
    definitions.extend(
        f"{quote_identifier(column.name)} {SNOWFLAKE_TYPES[column.type]}"
        for column in schema.columns
    )
    return ",\n            ".join(definitions)


def create_canonical_table_sql(table: str, schema: TripSchema) -> str:
    return f"""
        CREATE TABLE IF NOT EXISTS {table} (
            {column_definitions(schema)},
            PRIMARY KEY ({quote_identifier(ROW_KEY_COLUMN)})
        )
        """


def create_temp_table_sql(temp_table: str, like_table: str) -> str:
    return f"CREATE OR REPLACE TEMPORARY TABLE {temp_table} LIKE {like_table}"


def drop_table_sql(table: str) -> str:
    return f"DROP TABLE IF EXISTS {table}"


def table_exists_sql() -> str:
    """Bind (schema_name, table_name)"""
    return (
        "SELECT COUNT(*) FROM information_schema.tables "
        "WHERE table_schema = %s AND table_name = %s"
    )


def count_rows_sql(table: str) -> str:
    return f"SELECT COUNT(*) FROM {table}"


def merge_sql(target: str, source: str, schema: TripSchema) -> str:
    """
    Insert-only merge keyed by row key

    Matched rows are left untouched; only rows whose key is absent
    from ``target`` are inserted.
    """
    columns = schema.stored_columns
    key = quote_identifier(ROW_KEY_COLUMN)
    return f"""
        MERGE INTO {target} AS T
        USING {source} AS S
        ON T.{key} = S.{key}
        WHEN NOT MATCHED THEN
            INSERT ({_column_list(columns)})
            VALUES ({_column_list(columns, alias="S")})
        """
