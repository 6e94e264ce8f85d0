# taxi_ingest/loaders/snowflake_loader.py
"""
Snowflake canonical store for NYC Taxi trips
"""

import uuid
from contextlib import contextmanager
from typing import Union

import pandas as pd
import snowflake.connector
from snowflake.connector.pandas_tools import write_pandas

from taxi_ingest.config.settings import SnowflakeConfig
from taxi_ingest.loaders import sql_builder
from taxi_ingest.loaders.canonical_store import CanonicalStore, missing_table_error
from taxi_ingest.models.batch import MergeCounts
from taxi_ingest.models.trip_schema import TripCategory, get_schema, parse_category
from taxi_ingest.utils.logger import get_logger
from taxi_ingest.utils.exceptions import LoaderError, MergeConflictError

# Snowflake aborts a statement that conflicts with a concurrent transaction
# on the same table with this error number.
TRANSACTION_CONFLICT_ERRNO = 625


class SnowflakeCanonicalStore(CanonicalStore):
    """
    Canonical tables in a Snowflake schema

    A merge bulk-loads the batch into a session temporary table and then
    runs a single ``MERGE ... WHEN NOT MATCHED THEN INSERT`` inside an
    explicit transaction. Snowflake evaluates the MERGE against one
    snapshot of the target, so concurrent merges of overlapping batches
    either both succeed without duplicating a key or one of them aborts.
    """

    def __init__(self, config: SnowflakeConfig):
        """
        Initialize Snowflake store

        Args:
            config: Snowflake configuration object
        """
        self.config = config
        self.logger = get_logger(__name__)

    @contextmanager
    def get_connection(self):
        """
        Context manager for Snowflake database connections

        Ensures proper connection handling and cleanup
        """
        connection = None
        try:
            connection = snowflake.connector.connect(
                account=self.config.account,
                user=self.config.username,
                password=self.config.password,
                warehouse=self.config.warehouse,
                database=self.config.database,
                schema=self.config.schema,
                role=self.config.role
            )
            self.logger.debug("Connected to Snowflake successfully")
        except snowflake.connector.errors.Error as e:
            self.logger.error(f"Failed to connect to Snowflake: {str(e)}")
            raise LoaderError(f"Snowflake connection failed: {str(e)}", cause=e) from e

        try:
            yield connection
        finally:
            connection.close()
            self.logger.debug("Snowflake connection closed")

    def _table(self, category: TripCategory) -> str:
        return sql_builder.qualified_name(category.table_name, self.config.schema, self.config.database)

    def table_exists(self, category: Union[str, TripCategory]) -> bool:
        category = parse_category(category)
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(sql_builder.table_exists_sql(), (self.config.schema, category.table_name))
                    result = cursor.fetchone()
                finally:
                    cursor.close()
        except snowflake.connector.errors.Error as e:
            raise LoaderError(f"Failed to look up table {category.table_name}: {str(e)}", cause=e) from e

        return bool(result and result[0])

    def ensure_table(self, category: Union[str, TripCategory]) -> None:
        category = parse_category(category)
        table = self._table(category)
        create_table_sql = sql_builder.create_canonical_table_sql(table, get_schema(category))

        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(create_table_sql)
                finally:
                    cursor.close()
        except snowflake.connector.errors.Error as e:
            raise LoaderError(f"Failed to create table {table}: {str(e)}", cause=e) from e

        self.logger.info(f"Successfully created/verified table: {table}")

    def merge(self, category: Union[str, TripCategory], frame: pd.DataFrame) -> MergeCounts:
        category = parse_category(category)
        schema = get_schema(category)

        if not self.table_exists(category):
            raise missing_table_error(category.table_name)

        if frame.empty:
            return MergeCounts(inserted=0, skipped=0)

        table = self._table(category)
        temp_name = f"{category.table_name}_merge_{uuid.uuid4().hex}"
        temp_table = sql_builder.qualified_name(temp_name, self.config.schema, self.config.database)
        rows = frame.reindex(columns=list(schema.stored_columns))

        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                # DDL commits implicitly, so the temporary table is created
                # and filled before the transaction opens.
                cursor.execute(sql_builder.create_temp_table_sql(temp_table, table))
                success, _, nrows, _ = write_pandas(
                    conn=conn,
                    df=rows,
                    table_name=temp_name,
                    database=self.config.database,
                    schema=self.config.schema,
                    quote_identifiers=True,
                    auto_create_table=False,
                    use_logical_type=True
                )
                if not success or nrows != len(rows):
                    raise LoaderError(
                        f"Bulk load into {temp_table} wrote {nrows} of {len(rows)} rows",
                        error_code="BULK_LOAD_INCOMPLETE"
                    )

                cursor.execute("BEGIN")
                try:
                    cursor.execute(sql_builder.merge_sql(table, temp_table, schema))
                    result = cursor.fetchone()
                    cursor.execute("COMMIT")
                except Exception:
                    cursor.execute("ROLLBACK")
                    raise

            except snowflake.connector.errors.Error as e:
                if getattr(e, 'errno', None) == TRANSACTION_CONFLICT_ERRNO:
                    raise MergeConflictError(
                        f"Merge into {table} conflicted with a concurrent transaction",
                        cause=e,
                        context={'table': table}
                    ) from e
                raise LoaderError(f"Failed to merge into {table}: {str(e)}", cause=e, context={'table': table}) from e

            finally:
                try:
                    cursor.execute(sql_builder.drop_table_sql(temp_table))
                except snowflake.connector.errors.Error as e:
                    self.logger.warning(f"Failed to drop temporary table {temp_table}: {str(e)}")
                cursor.close()

        inserted = int(result[0]) if result else 0
        counts = MergeCounts(inserted=inserted, skipped=len(rows) - inserted)
        self.logger.info(f"Merged into {table}: {counts.inserted} inserted, {counts.skipped} skipped")
        return counts

    def row_count(self, category: Union[str, TripCategory]) -> int:
        category = parse_category(category)
        table = self._table(category)
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(sql_builder.count_rows_sql(table))
                    result = cursor.fetchone()
                finally:
                    cursor.close()
        except snowflake.connector.errors.Error as e:
            raise LoaderError(f"Failed to count rows in {table}: {str(e)}", cause=e) from e

        return int(result[0]) if result else 0

    def verify_connectivity(self) -> bool:
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute("SELECT CURRENT_VERSION()")
                    cursor.fetchone()
                finally:
                    cursor.close()
            return True
        except (LoaderError, snowflake.connector.errors.Error) as e:
            self.logger.error(f"Cannot reach Snowflake: {str(e)}")
            return False
