"""MySQL data source implementation."""

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
from .base import DBAPIDataSource, DataSourceCapability

logger = logging.getLogger(__name__)

COLUMNS_QUERY = """
    SELECT
        TABLE_NAME,
        COLUMN_NAME,
        COLUMN_DEFAULT,
        IS_NULLABLE,
        DATA_TYPE,
        CHARACTER_MAXIMUM_LENGTH,
        NUMERIC_PRECISION,
        NUMERIC_SCALE,
        ORDINAL_POSITION,
        COLUMN_KEY,
        EXTRA
    FROM information_schema.COLUMNS
    WHERE TABLE_SCHEMA = %s
    ORDER BY TABLE_NAME, ORDINAL_POSITION
"""

STATISTICS_QUERY = """
    SELECT
        TABLE_NAME,
        INDEX_NAME,
        COLUMN_NAME,
        NON_UNIQUE,
        SEQ_IN_INDEX,
        INDEX_TYPE
    FROM information_schema.STATISTICS
    WHERE TABLE_SCHEMA = %s
    ORDER BY TABLE_NAME, INDEX_NAME, SEQ_IN_INDEX
"""

TABLE_ROWS_QUERY = """
    SELECT TABLE_NAME, TABLE_ROWS
    FROM information_schema.TABLES
    WHERE TABLE_SCHEMA = %s
"""


class MySQLDataSource(DBAPIDataSource):
    """MySQL data source; a single catalog keyed by bare table name."""

    kind = BackendKind.MYSQL
    driver_module = "pymysql"
    driver_package = "PyMySQL"

    def open_session(self):
        return self.driver.connect(
            host=self.config.host,
            port=self.config.effective_port,
            user=self.config.user,
            password=self.config.password,
            database=self.config.database,
        )

    def get_capabilities(self) -> List[DataSourceCapability]:
        return [
            DataSourceCapability.SCHEMA,
            DataSourceCapability.INDEXES,
            DataSourceCapability.SIZES,
            DataSourceCapability.QUERY,
        ]

    async def load_schema(self, database: str, store: Optional[MetadataStore] = None) -> SchemaMap:
        """Load columns of every table from information_schema.COLUMNS."""
        rows = await self.fetch_all(COLUMNS_QUERY, (database,))

        schema_map: SchemaMap = {}
        for row in rows:
            table = qualify(self.kind, row["TABLE_NAME"])
            schema_map.setdefault(table, []).append(
                ColumnDescriptor(
                    name=row["COLUMN_NAME"],
                    data_type=row["DATA_TYPE"],
                    nullable=row["IS_NULLABLE"] == "YES",
                    default_value=row["COLUMN_DEFAULT"],
                    max_length=row["CHARACTER_MAXIMUM_LENGTH"],
                    precision=row["NUMERIC_PRECISION"],
                    scale=row["NUMERIC_SCALE"],
                    position=row["ORDINAL_POSITION"],
                    key=row["COLUMN_KEY"] or None,
                    extra=row["EXTRA"] or None,
                )
            )

        logger.info(f"Loaded {len(schema_map)} MySQL tables from '{database}'")
        return schema_map

    async def load_indexes(self, database: str, store: Optional[MetadataStore] = None) -> IndexMap:
        """Load index columns from information_schema.STATISTICS."""
        rows = await self.fetch_all(STATISTICS_QUERY, (database,))

        index_map: IndexMap = {}
        for row in rows:
            table = qualify(self.kind, row["TABLE_NAME"])
            index_map.setdefault(table, []).append(
                IndexDescriptor(
                    index_name=row["INDEX_NAME"],
                    column_name=row["COLUMN_NAME"],
                    non_unique=int(row["NON_UNIQUE"]),
                    seq_in_index=int(row["SEQ_IN_INDEX"]),
                    index_type=row["INDEX_TYPE"],
                )
            )

        logger.info(f"Loaded indexes for {len(index_map)} MySQL tables from '{database}'")
        return index_map

    async def load_sizes(self, database: str, store: Optional[MetadataStore] = None) -> TableSizeCache:
        """Load row estimates from information_schema.TABLES."""
        rows = await self.fetch_all(TABLE_ROWS_QUERY, (database,))

        sizes: TableSizeCache = {}
        for row in rows:
            sizes[qualify(self.kind, row["TABLE_NAME"])] = int(row["TABLE_ROWS"] or 0)
        return sizes
