"""Schema inference for schema-less backends."""

from .document_schema import (
    DocumentSchemaInferrer,
    TYPE_PRIORITY,
    dominant_type,
    infer_fields,
    type_name,
)

__all__ = [
    "DocumentSchemaInferrer",
    "TYPE_PRIORITY",
    "dominant_type",
    "infer_fields",
    "type_name",
]
