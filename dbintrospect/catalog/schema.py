"""Normalized metadata descriptors shared by every backend."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..config import BackendKind
from ..errors import ConfigurationError


@dataclass
class ColumnDescriptor:
    """Column metadata."""

    name: str
    data_type: str
    nullable: bool
    default_value: Optional[Any] = None
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    position: Optional[int] = None
    key: Optional[str] = None
    extra: Optional[str] = None

    @property
    def is_nullable(self) -> str:
        return "YES" if self.nullable else "NO"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columnName": self.name,
            "dataType": self.data_type,
            "isNullable": self.is_nullable,
            "defaultValue": self.default_value,
            "maxLength": self.max_length,
            "precision": self.precision,
            "scale": self.scale,
            "position": self.position,
            "key": self.key,
            "extra": self.extra,
        }

    def __repr__(self) -> str:
        return f"Column({self.name}, {self.data_type})"


@dataclass
class DocumentFieldDescriptor(ColumnDescriptor):
    """Field inferred from sampled documents of a collection."""

    is_array: bool = False
    is_nested: bool = False
    null_percentage: float = 0.0
    observed_types: List[str] = field(default_factory=list)
    occurrence_count: int = 0
    sample_values: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columnName": self.name,
            "dataType": self.data_type,
            "isNullable": self.is_nullable,
            "nullPercentage": self.null_percentage,
            "isArray": self.is_array,
            "isNested": self.is_nested,
            "allTypes": list(self.observed_types),
            "sampleValues": list(self.sample_values),
            "occurrenceCount": self.occurrence_count,
        }

    def __repr__(self) -> str:
        return f"Field({self.name}, {self.data_type})"


@dataclass
class IndexDescriptor:
    """One column of a relational index."""

    index_name: str
    column_name: str
    non_unique: int
    seq_in_index: int
    index_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "indexName": self.index_name,
            "columnName": self.column_name,
            "nonUnique": self.non_unique,
            "seqInIndex": self.seq_in_index,
            "indexType": self.index_type,
        }


@dataclass
class DocumentIndexDescriptor:
    """A document-store index."""

    index_name: str
    keys: Dict[str, Any]
    unique: bool = False
    sparse: bool = False
    compound: bool = False
    fields: List[str] = field(default_factory=list)
    text_index: bool = False
    partial_filter: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "indexName": self.index_name,
            "keys": dict(self.keys),
            "unique": self.unique,
            "sparse": self.sparse,
            "compound": self.compound,
            "fields": list(self.fields),
            "textIndex": self.text_index,
            "partialFilter": self.partial_filter,
        }


AnyColumn = Union[ColumnDescriptor, DocumentFieldDescriptor]
AnyIndex = Union[IndexDescriptor, DocumentIndexDescriptor]

SchemaMap = Dict[str, List[AnyColumn]]
IndexMap = Dict[str, List[AnyIndex]]
TableSizeCache = Dict[str, int]


def qualify(
    backend: BackendKind,
    table: str,
    schema: Optional[str] = None,
    catalog: Optional[str] = None,
) -> str:
    """Build the qualified entity name for a table or collection.

    Exactly one rule applies per backend:
    - postgres: schema.table
    - databricks: catalog.schema.table
    - mysql, mongodb: table

    Raises:
        ConfigurationError: If a part required by the backend's rule is missing
    """
    backend = BackendKind.parse(backend)
    if backend == BackendKind.POSTGRES:
        if not schema:
            raise ConfigurationError(f"Schema required to qualify postgres table '{table}'")
        return f"{schema}.{table}"
    if backend == BackendKind.DATABRICKS:
        if not schema or not catalog:
            raise ConfigurationError(
                f"Catalog and schema required to qualify databricks table '{table}'"
            )
        return f"{catalog}.{schema}.{table}"
    return table
