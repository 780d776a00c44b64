"""Heuristic parser for PostgreSQL index definition strings.

Only used when the structured pg_index catalog query fails. It reads the
text of `pg_indexes.indexdef`, e.g.

    CREATE UNIQUE INDEX orders_pkey ON public.orders USING btree (id, region)

and is known to be wrong for expression indexes (`lower(email)` splits at
the first closing parenthesis), partial indexes (the WHERE predicate is
ignored) and per-column collations or operator classes (kept verbatim in the
column name).
"""

import re
from dataclasses import dataclass
from typing import List

from ..catalog.schema import IndexDescriptor

_COLUMN_LIST = re.compile(r"\(([^)]+)\)")

INDEX_METHODS = [
    ("USING btree", "BTREE"),
    ("USING hash", "HASH"),
    ("USING gist", "GIST"),
    ("USING spgist", "SPGIST"),
    ("USING gin", "GIN"),
    ("USING brin", "BRIN"),
]
DEFAULT_METHOD = "OTHER"
UNIQUE_MARKER = "unique index"


@dataclass
class ParsedIndexDefinition:
    """Columns and classification read from an index definition."""

    columns: List[str]
    method: str
    unique: bool


def parse_index_definition(indexdef: str) -> ParsedIndexDefinition:
    """Extract columns, access method and uniqueness from an index definition."""
    columns: List[str] = []
    match = _COLUMN_LIST.search(indexdef)
    if match:
        columns = [col.strip() for col in match.group(1).split(",") if col.strip()]

    method = DEFAULT_METHOD
    for marker, name in INDEX_METHODS:
        if marker in indexdef:
            method = name
            break

    return ParsedIndexDefinition(
        columns=columns,
        method=method,
        unique=UNIQUE_MARKER in indexdef.lower(),
    )


def index_descriptors(index_name: str, indexdef: str) -> List[IndexDescriptor]:
    """Expand one index definition into per-column descriptors."""
    parsed = parse_index_definition(indexdef)
    descriptors = []
    for seq, column in enumerate(parsed.columns, start=1):
        descriptors.append(
            IndexDescriptor(
                index_name=index_name,
                column_name=column,
                non_unique=0 if parsed.unique else 1,
                seq_in_index=seq,
                index_type=parsed.method,
            )
        )
    return descriptors
