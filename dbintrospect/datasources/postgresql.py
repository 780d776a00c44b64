"""PostgreSQL data source implementation."""

import logging
from typing import List, Optional

from ..catalog.schema import (
    ColumnDescriptor,
    IndexDescriptor,
    IndexMap,
    SchemaMap,
    TableSizeCache,
    qualify,
)
from ..catalog.store import MetadataStore
from ..config import BackendKind
from ..errors import QueryExecutionError
from .base import DBAPIDataSource, DataSourceCapability
from .index_definition import index_descriptors

logger = logging.getLogger(__name__)

SYSTEM_SCHEMAS = ("pg_catalog", "information_schema", "pg_toast")

SCHEMAS_QUERY = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE schema_name NOT IN %s
    ORDER BY schema_name
"""

COLUMNS_QUERY = """
    SELECT
        c.table_name,
        c.column_name,
        c.data_type,
        c.character_maximum_length,
        c.numeric_precision,
        c.numeric_scale,
        c.is_nullable,
        c.column_default,
        c.ordinal_position
    FROM information_schema.columns c
    JOIN information_schema.tables t
        ON c.table_name = t.table_name AND c.table_schema = t.table_schema
    WHERE c.table_schema = %s
        AND t.table_type = 'BASE TABLE'
    ORDER BY c.table_name, c.ordinal_position
"""

INDEX_CATALOG_QUERY = """
    SELECT
        n.nspname AS schema_name,
        t.relname AS table_name,
        i.relname AS index_name,
        ix.indisunique AS is_unique,
        am.amname AS index_method,
        k.ordinality AS seq_in_index,
        COALESCE(a.attname, pg_get_indexdef(ix.indexrelid, k.ordinality::int, true)) AS column_name
    FROM pg_index ix
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_am am ON am.oid = i.relam
    CROSS JOIN LATERAL unnest(ix.indkey::int2[]) WITH ORDINALITY AS k(attnum, ordinality)
    LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
    WHERE n.nspname NOT IN %s
        AND k.ordinality <= ix.indnkeyatts
    ORDER BY n.nspname, t.relname, i.relname, k.ordinality
"""

INDEX_DEFINITIONS_QUERY = """
    SELECT schemaname, tablename, indexname, indexdef
    FROM pg_indexes
    WHERE schemaname NOT IN %s
    ORDER BY schemaname, tablename, indexname
"""

TABLE_SIZES_QUERY = """
    SELECT relname AS table_name, n_live_tup AS table_rows
    FROM pg_stat_user_tables
    WHERE schemaname = %s
"""


class PostgreSQLDataSource(DBAPIDataSource):
    """PostgreSQL data source; every non-system schema, keyed `schema.table`."""

    kind = BackendKind.POSTGRES
    driver_module = "psycopg2"
    driver_package = "psycopg2-binary"

    def open_session(self):
        conn = self.driver.connect(
            host=self.config.host,
            port=self.config.effective_port,
            dbname=self.config.database,
            user=self.config.user,
            password=self.config.password,
            sslmode="disable" if self.config.disable_ssl else "require",
        )
        # A failed catalog query must not abort the ones that follow.
        conn.autocommit = True
        return conn

    def get_capabilities(self) -> List[DataSourceCapability]:
        return [
            DataSourceCapability.SCHEMA,
            DataSourceCapability.INDEXES,
            DataSourceCapability.SIZES,
            DataSourceCapability.QUERY,
        ]

    async def list_schemas(self) -> List[str]:
        """List all non-system schemas."""
        rows = await self.fetch_all(SCHEMAS_QUERY, (SYSTEM_SCHEMAS,))
        schemas = []
        for row in rows:
            schemas.append(row["schema_name"])
        return schemas

    async def load_schema(self, database: str, store: Optional[MetadataStore] = None) -> SchemaMap:
        """Load base-table columns of every non-system schema.

        A schema whose query fails is logged and left out; the others still
        load. If the schema listing itself fails the result is empty.
        """
        try:
            schemas = await self.list_schemas()
        except QueryExecutionError as e:
            logger.error(f"Error listing PostgreSQL schemas on {self.name}: {e}")
            return {}
        logger.debug(f"Found {len(schemas)} PostgreSQL schemas: {schemas}")

        schema_map: SchemaMap = {}
        for schema_name in schemas:
            try:
                rows = await self.fetch_all(COLUMNS_QUERY, (schema_name,))
            except QueryExecutionError as e:
                self._record_partial_failure(store, schema_name, e)
                continue

            tables = set()
            for row in rows:
                table = qualify(self.kind, row["table_name"], schema=schema_name)
                tables.add(table)
                schema_map.setdefault(table, []).append(
                    ColumnDescriptor(
                        name=row["column_name"],
                        data_type=row["data_type"],
                        nullable=row["is_nullable"] == "YES",
                        default_value=row["column_default"],
                        max_length=row["character_maximum_length"],
                        precision=row["numeric_precision"],
                        scale=row["numeric_scale"],
                        position=row["ordinal_position"],
                    )
                )
            logger.debug(f"Loaded {len(tables)} tables from schema '{schema_name}'")

        logger.info(f"Loaded schema map with {len(schema_map)} qualified tables")
        return schema_map

    async def load_indexes(self, database: str, store: Optional[MetadataStore] = None) -> IndexMap:
        """Load index columns from pg_index, or parse pg_indexes if that fails."""
        try:
            rows = await self.fetch_all(INDEX_CATALOG_QUERY, (SYSTEM_SCHEMAS,))
        except QueryExecutionError as e:
            logger.warning(
                f"Structured index catalog unavailable on {self.name}, "
                f"parsing index definitions instead: {e}"
            )
            return await self._load_indexes_from_definitions()

        index_map: IndexMap = {}
        for row in rows:
            table = qualify(self.kind, row["table_name"], schema=row["schema_name"])
            index_map.setdefault(table, []).append(
                IndexDescriptor(
                    index_name=row["index_name"],
                    column_name=row["column_name"],
                    non_unique=0 if row["is_unique"] else 1,
                    seq_in_index=int(row["seq_in_index"]),
                    index_type=row["index_method"].upper(),
                )
            )

        logger.info(f"Loaded indexes for {len(index_map)} PostgreSQL tables")
        return index_map

    async def _load_indexes_from_definitions(self) -> IndexMap:
        rows = await self.fetch_all(INDEX_DEFINITIONS_QUERY, (SYSTEM_SCHEMAS,))

        index_map: IndexMap = {}
        for row in rows:
            table = qualify(self.kind, row["tablename"], schema=row["schemaname"])
            index_map.setdefault(table, []).extend(
                index_descriptors(row["indexname"], row["indexdef"])
            )

        logger.info(f"Parsed {len(rows)} PostgreSQL index definitions")
        return index_map

    async def load_sizes(self, database: str, store: Optional[MetadataStore] = None) -> TableSizeCache:
        """Load live-tuple estimates per schema from pg_stat_user_tables."""
        try:
            schemas = await self.list_schemas()
        except QueryExecutionError as e:
            logger.error(f"Error listing PostgreSQL schemas for table sizes on {self.name}: {e}")
            return {}

        sizes: TableSizeCache = {}
        for schema_name in schemas:
            try:
                rows = await self.fetch_all(TABLE_SIZES_QUERY, (schema_name,))
            except QueryExecutionError as e:
                logger.warning(f"Error loading table sizes for schema '{schema_name}': {e}")
                continue

            total_rows = 0
            for row in rows:
                row_count = int(row["table_rows"] or 0)
                sizes[qualify(self.kind, row["table_name"], schema=schema_name)] = row_count
                total_rows += row_count
            logger.debug(
                f"Loaded sizes for {len(rows)} tables in schema '{schema_name}', "
                f"total rows: {total_rows}"
            )

        return sizes
