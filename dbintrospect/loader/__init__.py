"""Metadata loading entry points."""

from .metadata import (
    execute_query,
    init_metadata,
    load_indexes,
    load_schema_map,
    load_table_sizes,
)

__all__ = [
    "execute_query",
    "init_metadata",
    "load_indexes",
    "load_schema_map",
    "load_table_sizes",
]
