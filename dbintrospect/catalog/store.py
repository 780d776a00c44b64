"""Metadata store holding the schema, index and size maps of one configuration."""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import PartialSchemaError
from .schema import AnyColumn, IndexMap, SchemaMap, TableSizeCache


@dataclass(frozen=True)
class MetadataSnapshot:
    """Immutable view of the three metadata maps at one point in time."""

    schema_map: SchemaMap = field(default_factory=dict)
    index_map: IndexMap = field(default_factory=dict)
    table_size_cache: TableSizeCache = field(default_factory=dict)

    def table_names(self) -> List[str]:
        return sorted(self.schema_map)

    def get_columns(self, name: str) -> Optional[List[AnyColumn]]:
        """Get the columns of an entity by qualified or partial name."""
        key = self.resolve_table(name)
        if key is None:
            return None
        return self.schema_map[key]

    def resolve_table(self, table_ref: str) -> Optional[str]:
        """Resolve a table reference to its qualified key.

        Supports the exact qualified key, or a trailing part of it
        (`table` or `schema.table`) when exactly one key matches.
        Matching of trailing parts is case-insensitive.

        Args:
            table_ref: Table reference string

        Returns:
            Qualified key if found and unambiguous, None otherwise
        """
        if table_ref in self.schema_map:
            return table_ref

        suffix = "." + table_ref.lower()
        matches = []
        for key in self.schema_map:
            lowered = key.lower()
            if lowered == table_ref.lower() or lowered.endswith(suffix):
                matches.append(key)

        if len(matches) == 1:
            return matches[0]
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase wire shape."""
        return {
            "schemaMap": {
                name: [col.to_dict() for col in cols]
                for name, cols in self.schema_map.items()
            },
            "indexMap": {
                name: [idx.to_dict() for idx in indexes]
                for name, indexes in self.index_map.items()
            },
            "tableSizeCache": dict(self.table_size_cache),
        }

    def __repr__(self) -> str:
        return (
            f"MetadataSnapshot(tables={len(self.schema_map)}, "
            f"indexed={len(self.index_map)}, sized={len(self.table_size_cache)})"
        )


class MetadataStore:
    """Owner of the schema, index and size maps for one configuration.

    Each map is replaced as a whole, never merged, so a reader sees either
    the previous load or the new one.
    """

    def __init__(self):
        """Initialize an empty store."""
        self._lock = threading.Lock()
        self._schema_map: SchemaMap = {}
        self._index_map: IndexMap = {}
        self._table_size_cache: TableSizeCache = {}
        self._partial_failures: List[PartialSchemaError] = []

    @property
    def schema_map(self) -> SchemaMap:
        return self.snapshot().schema_map

    @property
    def index_map(self) -> IndexMap:
        return self.snapshot().index_map

    @property
    def table_size_cache(self) -> TableSizeCache:
        return self.snapshot().table_size_cache

    @property
    def partial_failures(self) -> List[PartialSchemaError]:
        with self._lock:
            return list(self._partial_failures)

    def replace_schema_map(self, schema_map: SchemaMap) -> None:
        with self._lock:
            self._schema_map = dict(schema_map)

    def replace_index_map(self, index_map: IndexMap) -> None:
        with self._lock:
            self._index_map = dict(index_map)

    def replace_table_sizes(self, table_sizes: TableSizeCache) -> None:
        with self._lock:
            self._table_size_cache = dict(table_sizes)

    def record_partial_failure(self, error: PartialSchemaError) -> None:
        with self._lock:
            self._partial_failures.append(error)

    def clear_partial_failures(self) -> None:
        with self._lock:
            self._partial_failures = []

    def swap(self, snapshot: MetadataSnapshot) -> None:
        """Replace all three maps at once."""
        with self._lock:
            self._schema_map = dict(snapshot.schema_map)
            self._index_map = dict(snapshot.index_map)
            self._table_size_cache = dict(snapshot.table_size_cache)

    def reset(self) -> None:
        """Empty all maps and recorded failures."""
        with self._lock:
            self._schema_map = {}
            self._index_map = {}
            self._table_size_cache = {}
            self._partial_failures = []

    def snapshot(self) -> MetadataSnapshot:
        """Return a copy of the current maps that later reloads won't touch."""
        with self._lock:
            return MetadataSnapshot(
                schema_map={k: list(v) for k, v in self._schema_map.items()},
                index_map={k: list(v) for k, v in self._index_map.items()},
                table_size_cache=dict(self._table_size_cache),
            )

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"MetadataStore(tables={len(self._schema_map)}, "
                f"indexed={len(self._index_map)}, sized={len(self._table_size_cache)})"
            )
