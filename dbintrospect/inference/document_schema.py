"""Statistical field-schema inference for sampled documents.

Each sampled document is walked recursively. Per field path the walker keeps
a type histogram, null and total counts, array/nested flags and a bounded set
of sample values. Nested objects extend the path with `.key`; objects inside
arrays extend it with `[i]` for the first few elements.
"""

import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping

from ..catalog.schema import DocumentFieldDescriptor

TYPE_PRIORITY = ["string", "number", "boolean", "object", "array", "null"]
NESTED_SENTINEL = "[nested object]"
EMITTED_SAMPLE_VALUES = 5


@dataclass
class FieldStats:
    """Accumulated observations for one field path."""

    path: str
    types: Dict[str, int] = field(default_factory=dict)
    is_array: bool = False
    is_nested: bool = False
    null_count: int = 0
    total_count: int = 0
    sample_values: List[Any] = field(default_factory=list)

    def observe_type(self, type_name: str) -> None:
        self.types[type_name] = self.types.get(type_name, 0) + 1

    def add_sample(self, value: Any, limit: int) -> None:
        if len(self.sample_values) >= limit:
            return
        # True == 1 == 1.0, so equal values of different types are all kept
        if any(type(seen) is type(value) and seen == value for seen in self.sample_values):
            return
        self.sample_values.append(value)


def type_name(value: Any) -> str:
    """Name the primitive type of a document value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float, Decimal)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (datetime.datetime, datetime.date)):
        return "date"
    if isinstance(value, (bytes, bytearray)):
        return "binary"
    return type(value).__name__


def dominant_type(observed: List[str]) -> str:
    """Pick one type for a field seen with several.

    The first entry of TYPE_PRIORITY present wins, independent of frequency,
    so identical samples always yield the same answer.
    """
    if len(observed) == 1:
        return observed[0]
    for candidate in TYPE_PRIORITY:
        if candidate in observed:
            return candidate
    if observed:
        return observed[0]
    return "unknown"


class DocumentSchemaInferrer:
    """Infer a flat field list from a sample of documents."""

    def __init__(self, max_sample_values: int = 10, array_recursion_limit: int = 3):
        self.max_sample_values = max_sample_values
        self.array_recursion_limit = array_recursion_limit

    def infer(self, documents: Iterable[Mapping[str, Any]]) -> List[DocumentFieldDescriptor]:
        """Infer field descriptors, sorted by path."""
        fields: Dict[str, FieldStats] = {}
        for doc in documents:
            self._walk(doc, fields, "")

        descriptors = []
        for path in sorted(fields):
            descriptors.append(self._describe(fields[path]))
        return descriptors

    def _walk(self, obj: Mapping[str, Any], fields: Dict[str, FieldStats], prefix: str) -> None:
        for key, value in obj.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            stats = fields.get(path)
            if stats is None:
                stats = FieldStats(path=path)
                fields[path] = stats
            stats.total_count += 1

            kind = type_name(value)
            if kind == "null":
                stats.null_count += 1
                stats.observe_type("null")
            elif kind == "array":
                self._walk_array(value, stats, fields, path)
            elif kind == "object":
                stats.is_nested = True
                stats.observe_type("object")
                self._walk(value, fields, path)
                stats.add_sample(NESTED_SENTINEL, self.max_sample_values)
            else:
                stats.observe_type(kind)
                stats.add_sample(value, self.max_sample_values)

    def _walk_array(self, value, stats: FieldStats, fields: Dict[str, FieldStats], path: str) -> None:
        stats.is_array = True
        stats.observe_type("array")
        if not value:
            return

        element_type = type_name(value[0])
        stats.observe_type(f"array<{element_type}>")
        if element_type == "object":
            stats.is_nested = True
            for index, item in enumerate(value[: self.array_recursion_limit]):
                if type_name(item) == "object":
                    self._walk(item, fields, f"{path}[{index}]")
        stats.add_sample(list(value[: self.array_recursion_limit]), self.max_sample_values)

    def _describe(self, stats: FieldStats) -> DocumentFieldDescriptor:
        observed = list(stats.types)
        return DocumentFieldDescriptor(
            name=stats.path,
            data_type=dominant_type(observed),
            nullable=stats.null_count > 0,
            null_percentage=stats.null_count * 100 / stats.total_count,
            is_array=stats.is_array,
            is_nested=stats.is_nested,
            observed_types=observed,
            occurrence_count=stats.total_count - stats.null_count,
            sample_values=stats.sample_values[:EMITTED_SAMPLE_VALUES],
        )


def infer_fields(
    documents: Iterable[Mapping[str, Any]],
    max_sample_values: int = 10,
    array_recursion_limit: int = 3,
) -> List[DocumentFieldDescriptor]:
    """Infer field descriptors from documents with default limits."""
    inferrer = DocumentSchemaInferrer(max_sample_values, array_recursion_limit)
    return inferrer.infer(documents)
