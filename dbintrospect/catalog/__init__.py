"""Normalized metadata model and the store that holds it."""

from .schema import (
    ColumnDescriptor,
    DocumentFieldDescriptor,
    DocumentIndexDescriptor,
    IndexDescriptor,
    IndexMap,
    SchemaMap,
    TableSizeCache,
    qualify,
)
from .store import MetadataSnapshot, MetadataStore

__all__ = [
    "ColumnDescriptor",
    "DocumentFieldDescriptor",
    "DocumentIndexDescriptor",
    "IndexDescriptor",
    "IndexMap",
    "SchemaMap",
    "TableSizeCache",
    "qualify",
    "MetadataSnapshot",
    "MetadataStore",
]
