"""Base data source interface."""

import asyncio
import importlib
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..catalog.schema import IndexMap, SchemaMap, TableSizeCache
from ..catalog.store import MetadataStore
from ..config import BackendKind, ConnectionConfig, LoaderConfig
from ..errors import (
    BackendConnectionError,
    DriverUnavailableError,
    PartialSchemaError,
    QueryExecutionError,
)

logger = logging.getLogger(__name__)


class DataSourceCapability(Enum):
    """Capabilities that a data source may support."""

    SCHEMA = "schema"
    INDEXES = "indexes"
    SIZES = "sizes"
    QUERY = "query"
    POOLED_SESSIONS = "pooled_sessions"


class DataSource(ABC):
    """Abstract base class for data sources.

    Subclasses declare the driver they need through `driver_module` (import
    name) and `driver_package` (distribution name). Driver calls block, so
    they are run with `run_blocking`, keeping every public method awaitable.
    """

    kind: BackendKind
    driver_module: str
    driver_package: str

    def __init__(
        self,
        config: ConnectionConfig,
        loader_config: Optional[LoaderConfig] = None,
        driver: Any = None,
    ):
        """Initialize data source.

        Args:
            config: Resolved connection configuration
            loader_config: Sampling and batching limits
            driver: Driver module; loaded by import name when omitted
        """
        self.name = config.name
        self.config = config
        self.loader_config = loader_config or LoaderConfig()
        self.driver = driver if driver is not None else self.load_driver()
        self.connection = None
        self._connected = False

    @classmethod
    def load_driver(cls):
        """Import the driver module for this backend.

        Raises:
            DriverUnavailableError: If the driver is not installed
        """
        try:
            return importlib.import_module(cls.driver_module)
        except ImportError as e:
            raise DriverUnavailableError(cls.kind.value, cls.driver_package, e) from e

    @abstractmethod
    def open_session(self) -> Any:
        """Open a driver connection and return it (blocking)."""
        pass

    @abstractmethod
    def get_capabilities(self) -> List[DataSourceCapability]:
        """Return list of capabilities supported by this data source."""
        pass

    @abstractmethod
    async def load_schema(
        self, database: str, store: Optional[MetadataStore] = None
    ) -> SchemaMap:
        """Build the schema map for a database.

        Args:
            database: Database, catalog or schema name to introspect
            store: Store receiving partial-failure records

        Returns:
            Qualified entity name -> ordered columns
        """
        pass

    @abstractmethod
    async def load_indexes(
        self, database: str, store: Optional[MetadataStore] = None
    ) -> IndexMap:
        """Build the index map for a database."""
        pass

    @abstractmethod
    async def load_sizes(
        self, database: str, store: Optional[MetadataStore] = None
    ) -> TableSizeCache:
        """Build the row/document count map for a database."""
        pass

    @abstractmethod
    async def execute_query(self, query: Any, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute a query and return rows as dicts."""
        pass

    async def connect(self) -> None:
        """Establish connection to the data source."""
        if self._connected:
            return
        logger.info(f"Connecting to {self.kind.value} at '{self.config.host}' ({self.name})")
        try:
            self.connection = await self.run_blocking(self.open_session)
        except DriverUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to connect to {self.kind.value} {self.name}: {e}")
            raise BackendConnectionError(
                f"{self.kind.value} connection failed: {e}"
            ) from e
        self._connected = True
        logger.info(f"Successfully connected to {self.kind.value}: {self.name}")

    async def disconnect(self) -> None:
        """Close connection to the data source."""
        if self.connection is not None:
            connection = self.connection
            self.connection = None
            self._connected = False
            await self.run_blocking(connection.close)
            logger.info(f"Disconnected from {self.kind.value}: {self.name}")

    async def run_blocking(self, func, *args, **kwargs):
        """Run a blocking driver call off the event loop."""
        return await asyncio.to_thread(func, *args, **kwargs)

    def supports_capability(self, capability: DataSourceCapability) -> bool:
        """Check if data source supports a capability."""
        return capability in self.get_capabilities()

    def is_connected(self) -> bool:
        """Check if data source is connected."""
        return self._connected

    def _require_connection(self):
        if self.connection is None:
            raise RuntimeError(f"Not connected to {self.name}")
        return self.connection

    def _record_partial_failure(
        self, store: Optional[MetadataStore], entity: str, error: BaseException
    ) -> PartialSchemaError:
        partial = PartialSchemaError(entity, error)
        logger.warning(f"{self.kind.value} {self.name}: {partial}")
        if store is not None:
            store.record_partial_failure(partial)
        return partial

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"


class DBAPIDataSource(DataSource):
    """Data source backed by a DB-API 2.0 driver."""

    def fetch_all_blocking(self, query: str, params: Optional[Any] = None) -> List[Dict[str, Any]]:
        """Execute a statement on a fresh cursor and return rows as dicts."""
        logger.debug(f"Executing query on {self.name}: {query.strip()[:100]}...")
        return run_statement(self._require_connection(), query, params)

    async def fetch_all(self, query: str, params: Optional[Any] = None) -> List[Dict[str, Any]]:
        """Execute a statement and return rows as dicts.

        Raises:
            QueryExecutionError: If the driver raises
        """
        try:
            return await self.run_blocking(self.fetch_all_blocking, query, params)
        except Exception as e:
            raise QueryExecutionError(f"Query failed on {self.name}: {e}") from e

    async def execute_query(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute a SQL statement and return rows as dicts."""
        return await self.fetch_all(query, params)


def run_statement(connection: Any, query: str, params: Optional[Any] = None) -> List[Dict[str, Any]]:
    """Run one statement on its own cursor of a DB-API connection.

    Returns:
        Rows as dicts keyed by column name; empty for statements without a result set
    """
    cursor = connection.cursor()
    try:
        if params is None:
            cursor.execute(query)
        else:
            cursor.execute(query, params)
        if cursor.description is None:
            return []
        columns = _extract_column_names(cursor.description)
        return _build_rows(columns, cursor.fetchall())
    finally:
        cursor.close()


def _extract_column_names(description) -> List[str]:
    """Extract column names from cursor description."""
    columns = []
    for desc in description:
        columns.append(desc[0])
    return columns


def _build_rows(columns: List[str], rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    """Pair each row tuple with the column names."""
    result = []
    for row in rows:
        result.append(dict(zip(columns, row)))
    return result
