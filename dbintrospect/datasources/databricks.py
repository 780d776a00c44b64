"""Databricks SQL warehouse data source implementation."""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from sqlglot import exp

from ..catalog.schema import (
    ColumnDescriptor,
    IndexMap,
    SchemaMap,
    TableSizeCache,
    qualify,
)
from ..catalog.store import MetadataStore
from ..config import BackendKind
from ..errors import QueryExecutionError
from .base import DBAPIDataSource, DataSourceCapability

logger = logging.getLogger(__name__)

_ROW_COUNT = re.compile(r"(\d+)\s+rows?", re.IGNORECASE)

MANAGED_TABLES_QUERY = """
    SELECT
        table_catalog,
        table_schema,
        table_name
    FROM system.information_schema.tables
    WHERE table_catalog = :catalog
        AND table_type = 'MANAGED'
    ORDER BY table_catalog, table_schema, table_name
"""


def quote_table(catalog: str, schema: Optional[str] = None, table: Optional[str] = None) -> str:
    """Render a quoted catalog[.schema[.table]] reference in Databricks SQL."""
    if table is None and schema is None:
        return exp.to_identifier(catalog, quoted=True).sql(dialect="databricks")
    if table is None:
        return exp.table_(schema, db=catalog, quoted=True).sql(dialect="databricks")
    return exp.table_(table, db=schema, catalog=catalog, quoted=True).sql(dialect="databricks")


def first_present(row: Dict[str, Any], *names: str) -> Optional[Any]:
    """Return the first non-empty value among alternative column names."""
    for name in names:
        value = row.get(name)
        if value:
            return value
    return None


def parse_statistics_row_count(rows: List[Dict[str, Any]]) -> int:
    """Read the row count from the `Statistics` row of DESCRIBE EXTENDED."""
    for row in rows:
        if row.get("col_name") == "Statistics" and row.get("data_type"):
            match = _ROW_COUNT.search(str(row["data_type"]))
            if match:
                return int(match.group(1))
            break
    return 0


class DatabricksDataSource(DBAPIDataSource):
    """Databricks SQL warehouse; tables keyed `catalog.schema.table`.

    `database` is the Unity Catalog catalog and `password` the access token.
    """

    kind = BackendKind.DATABRICKS
    driver_module = "databricks.sql"
    driver_package = "databricks-sql-connector"

    def open_session(self):
        options = self.config.databricks_options
        return self.driver.connect(
            server_hostname=self.config.host,
            http_path=options.http_path,
            access_token=self.config.password,
        )

    def get_capabilities(self) -> List[DataSourceCapability]:
        return [
            DataSourceCapability.SCHEMA,
            DataSourceCapability.SIZES,
            DataSourceCapability.QUERY,
            DataSourceCapability.POOLED_SESSIONS,
        ]

    async def load_schema(self, database: str, store: Optional[MetadataStore] = None) -> SchemaMap:
        """Load the columns of every schema in the catalog."""
        query = f"""
            SELECT
                table_catalog,
                table_schema,
                table_name,
                column_name,
                data_type,
                is_nullable,
                column_default,
                ordinal_position
            FROM {quote_table(database, "information_schema", "columns")}
            WHERE table_catalog = :catalog
            ORDER BY table_schema, table_name, ordinal_position
        """
        rows = await self.fetch_all(query, {"catalog": database})

        schema_map: SchemaMap = {}
        for row in rows:
            table = qualify(
                self.kind,
                row["table_name"],
                schema=row["table_schema"],
                catalog=row["table_catalog"],
            )
            schema_map.setdefault(table, []).append(
                ColumnDescriptor(
                    name=row["column_name"],
                    data_type=row["data_type"],
                    nullable=row["is_nullable"] == "YES",
                    default_value=row["column_default"],
                    position=row["ordinal_position"],
                )
            )

        logger.info(f"Loaded {len(schema_map)} Databricks tables from catalog '{database}'")
        return schema_map

    async def load_indexes(self, database: str, store: Optional[MetadataStore] = None) -> IndexMap:
        """Warehouse tables have no secondary indexes."""
        return {}

    async def load_sizes(self, database: str, store: Optional[MetadataStore] = None) -> TableSizeCache:
        """Collect row counts, via the system catalog when it is available."""
        try:
            tables = await self._list_managed_tables(database)
        except QueryExecutionError as e:
            logger.info(f"system.information_schema.tables not available, falling back to SHOW: {e}")
            tables = []

        if tables:
            return await self._load_sizes_batched(tables)
        return await self._load_sizes_by_describe(database)

    async def _list_managed_tables(self, catalog: str) -> List[Tuple[str, str, str]]:
        rows = await self.fetch_all(MANAGED_TABLES_QUERY, {"catalog": catalog})
        tables = []
        for row in rows:
            tables.append((row["table_catalog"], row["table_schema"], row["table_name"]))
        logger.debug(f"Found {len(tables)} tables in system.information_schema")
        return tables

    async def _load_sizes_batched(self, tables: List[Tuple[str, str, str]]) -> TableSizeCache:
        """Run DESCRIBE DETAIL for each batch of tables concurrently.

        Every statement gets its own cursor, but all of them share the one
        warehouse connection. The driver only allows sharing the module
        between threads (threadsafety 1) and serializes requests on a
        connection internally, so a batch overlaps result fetching and
        bookkeeping rather than running statements in parallel on the server.
        """
        sizes: TableSizeCache = {}
        batch_size = self.loader_config.size_batch_size
        total_batches = (len(tables) + batch_size - 1) // batch_size

        for start in range(0, len(tables), batch_size):
            batch = tables[start:start + batch_size]
            results = await asyncio.gather(
                *[self._describe_detail_row_count(*table) for table in batch]
            )
            for qualified_name, row_count in results:
                sizes[qualified_name] = row_count
            logger.debug(f"Processed batch {start // batch_size + 1}/{total_batches}")

        logger.info(f"Loaded sizes for {len(sizes)} Databricks tables via DESCRIBE DETAIL")
        return sizes

    async def _describe_detail_row_count(self, catalog: str, schema: str, table: str) -> Tuple[str, int]:
        qualified_name = qualify(self.kind, table, schema=schema, catalog=catalog)
        try:
            rows = await self.fetch_all(f"DESCRIBE DETAIL {quote_table(catalog, schema, table)}")
            row_count = int(rows[0].get("numRows") or 0) if rows else 0
        except (QueryExecutionError, ValueError, TypeError) as e:
            logger.warning(f"Error getting size for {qualified_name}: {e}")
            row_count = 0
        return qualified_name, row_count

    async def _load_sizes_by_describe(self, catalog: str) -> TableSizeCache:
        try:
            schema_rows = await self.fetch_all(f"SHOW SCHEMAS IN {quote_table(catalog)}")
        except QueryExecutionError as e:
            logger.error(f"Error listing Databricks schemas in catalog '{catalog}': {e}")
            return {}

        sizes: TableSizeCache = {}
        for schema_row in schema_rows:
            schema = first_present(schema_row, "databaseName", "namespace_name", "schema_name")
            if not schema:
                continue
            try:
                table_rows = await self.fetch_all(f"SHOW TABLES IN {quote_table(catalog, schema)}")
            except QueryExecutionError as e:
                logger.warning(f"Error loading tables from schema {schema}: {e}")
                continue

            for table_row in table_rows:
                table = first_present(table_row, "tableName", "table_name")
                if not table:
                    continue
                qualified_name = qualify(self.kind, table, schema=schema, catalog=catalog)
                try:
                    rows = await self.fetch_all(
                        f"DESCRIBE EXTENDED {quote_table(catalog, schema, table)}"
                    )
                    sizes[qualified_name] = parse_statistics_row_count(rows)
                except QueryExecutionError as e:
                    logger.warning(f"Error getting size for {qualified_name}: {e}")
                    sizes[qualified_name] = 0

        logger.info(f"Loaded sizes for {len(sizes)} Databricks tables via DESCRIBE EXTENDED")
        return sizes
