"""Metadata introspection for MySQL, PostgreSQL, MongoDB and Databricks."""

from .catalog import (
    ColumnDescriptor,
    DocumentFieldDescriptor,
    DocumentIndexDescriptor,
    IndexDescriptor,
    MetadataSnapshot,
    MetadataStore,
    qualify,
)
from .config import BackendKind, Config, ConnectionConfig, LoaderConfig, PoolConfig, load_config
from .errors import (
    BackendConnectionError,
    ConfigurationError,
    ConnectionTimeoutError,
    DriverUnavailableError,
    IntrospectionError,
    PartialSchemaError,
    QueryExecutionError,
)
from .loader import (
    execute_query,
    init_metadata,
    load_indexes,
    load_schema_map,
    load_table_sizes,
)
from .pool import ConnectionHandle, ConnectionLifecycleManager

__version__ = "0.1.0"

__all__ = [
    "ColumnDescriptor",
    "DocumentFieldDescriptor",
    "DocumentIndexDescriptor",
    "IndexDescriptor",
    "MetadataSnapshot",
    "MetadataStore",
    "qualify",
    "BackendKind",
    "Config",
    "ConnectionConfig",
    "LoaderConfig",
    "PoolConfig",
    "load_config",
    "BackendConnectionError",
    "ConfigurationError",
    "ConnectionTimeoutError",
    "DriverUnavailableError",
    "IntrospectionError",
    "PartialSchemaError",
    "QueryExecutionError",
    "execute_query",
    "init_metadata",
    "load_indexes",
    "load_schema_map",
    "load_table_sizes",
    "ConnectionHandle",
    "ConnectionLifecycleManager",
]
