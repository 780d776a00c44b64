"""Entry points that load metadata into a store and run queries."""

import logging
from typing import Any, Dict, List, Optional

from ..catalog.store import MetadataSnapshot, MetadataStore
from ..config import BackendKind, ConnectionConfig, LoaderConfig
from ..datasources.base import DataSource
from ..datasources.registry import BackendRegistry, default_registry
from ..errors import ConfigurationError
from ..pool.manager import ConnectionLifecycleManager, get_default_manager
from ..utils.logging import connection_logger

logger = logging.getLogger(__name__)


def _check_backend(source: DataSource, backend) -> BackendKind:
    kind = BackendKind.parse(backend)
    if source.kind != kind:
        raise ConfigurationError(
            f"Backend '{kind.value}' does not match data source {source.kind.value} ({source.name})"
        )
    return kind


def _apply_options(source: DataSource, options: Optional[LoaderConfig]) -> None:
    if options is not None:
        source.loader_config = options


async def load_schema_map(
    source: DataSource,
    database_name: str,
    backend,
    store: MetadataStore,
    options: Optional[LoaderConfig] = None,
) -> None:
    """Load the schema map of a database into the store.

    The previous schema map is replaced, not merged.

    Args:
        source: Connected data source
        database_name: Database, catalog or document database to introspect
        backend: Backend kind of the source
        store: Store receiving the map
        options: Sampling limits overriding the source's own
    """
    _check_backend(source, backend)
    _apply_options(source, options)
    schema_map = await source.load_schema(database_name, store)
    store.replace_schema_map(schema_map)


async def load_table_sizes(
    source: DataSource,
    database_name: str,
    backend,
    store: MetadataStore,
    options: Optional[LoaderConfig] = None,
) -> None:
    """Load row/document counts of a database into the store."""
    _check_backend(source, backend)
    _apply_options(source, options)
    sizes = await source.load_sizes(database_name, store)
    store.replace_table_sizes(sizes)


async def load_indexes(
    source: DataSource,
    backend,
    store: MetadataStore,
    database_name: Optional[str] = None,
) -> None:
    """Load index definitions into the store.

    Args:
        source: Connected data source
        backend: Backend kind of the source
        store: Store receiving the map
        database_name: Database to read; defaults to the source's configured one
    """
    _check_backend(source, backend)
    index_map = await source.load_indexes(database_name or source.config.database, store)
    store.replace_index_map(index_map)


async def init_metadata(
    config: ConnectionConfig,
    store: Optional[MetadataStore] = None,
    registry: Optional[BackendRegistry] = None,
    options: Optional[LoaderConfig] = None,
) -> MetadataSnapshot:
    """Connect, load every map for the configured backend, and disconnect.

    Relational backends load schema, then indexes, then sizes. The
    document and warehouse backends load schema, then sizes, and leave the
    index map empty.

    Args:
        config: Connection configuration
        store: Store to fill; a new one is used when omitted
        registry: Backend registry; the built-in one when omitted
        options: Sampling and batching limits

    Returns:
        Snapshot of the three maps after loading

    Raises:
        ConfigurationError: On an unknown backend or missing required field
        DriverUnavailableError: If the backend's driver is not installed
        BackendConnectionError: If connecting fails
    """
    store = store if store is not None else MetadataStore()
    registry = registry or default_registry()

    source = registry.create(config, loader_config=options)
    kind = source.kind
    database = config.database
    log = connection_logger(__name__, config)
    log.info("Loading metadata")

    store.clear_partial_failures()
    async with source:
        await load_schema_map(source, database, kind, store)
        if kind.is_relational:
            await load_indexes(source, kind, store, database)
        else:
            store.replace_index_map({})
        await load_table_sizes(source, database, kind, store)

    snapshot = store.snapshot()
    log.info(
        f"Loaded {len(snapshot.schema_map)} tables, "
        f"{len(snapshot.table_size_cache)} sizes, "
        f"{len(store.partial_failures)} partial failures"
    )
    return snapshot


async def execute_query(
    sql: Any,
    config: ConnectionConfig,
    params: Optional[Any] = None,
    manager: Optional[ConnectionLifecycleManager] = None,
    registry: Optional[BackendRegistry] = None,
) -> List[Dict[str, Any]]:
    """Run a query against the configured backend.

    The warehouse backend goes through the connection pool; the other
    backends open a connection for this call and close it afterwards.
    For MongoDB `sql` is a `MongoQuery` or its dict form.
    """
    kind = BackendKind.parse(config.backend)
    if kind == BackendKind.DATABRICKS:
        manager = manager or get_default_manager()
        return await manager.execute_query(sql, config, params)

    source = (registry or default_registry()).create(config)
    async with source:
        return await source.execute_query(sql, params)
