"""Configuration management."""

from .config import (
    BackendKind,
    Config,
    ConnectionConfig,
    DatabricksOptions,
    LoaderConfig,
    LoggingConfig,
    MongoOptions,
    PoolConfig,
    build_mongo_connection_string,
    load_config,
    parse_connection,
)

__all__ = [
    "BackendKind",
    "Config",
    "ConnectionConfig",
    "DatabricksOptions",
    "LoaderConfig",
    "LoggingConfig",
    "MongoOptions",
    "PoolConfig",
    "build_mongo_connection_string",
    "load_config",
    "parse_connection",
]
