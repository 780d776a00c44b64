"""Tests for the PostgreSQL index-definition fallback parser."""

from dbintrospect.datasources.index_definition import (
    index_descriptors,
    parse_index_definition,
)


def test_parse_unique_btree():
    parsed = parse_index_definition(
        "CREATE UNIQUE INDEX orders_pkey ON public.orders USING btree (id, region)"
    )

    assert parsed.columns == ["id", "region"]
    assert parsed.method == "BTREE"
    assert parsed.unique is True


def test_parse_access_methods():
    assert parse_index_definition("CREATE INDEX i ON t USING gin (tags)").method == "GIN"
    assert parse_index_definition("CREATE INDEX i ON t USING hash (code)").method == "HASH"
    assert parse_index_definition("CREATE INDEX i ON t USING brin (created_at)").method == "BRIN"
    assert parse_index_definition("CREATE INDEX i ON t USING spgist (ip)").method == "SPGIST"
    assert parse_index_definition("CREATE INDEX i ON t USING bloom (a)").method == "OTHER"


def test_expression_index_is_truncated():
    """Known limitation: the column list stops at the first closing parenthesis."""
    parsed = parse_index_definition(
        "CREATE INDEX users_email_lower ON public.users USING btree (lower(email))"
    )

    assert parsed.columns == ["lower(email"]
    assert parsed.unique is False


def test_index_descriptors_sequence():
    descriptors = index_descriptors(
        "orders_customer_idx",
        "CREATE INDEX orders_customer_idx ON sales.orders USING btree (customer_id, created_at)",
    )

    assert [d.column_name for d in descriptors] == ["customer_id", "created_at"]
    assert [d.seq_in_index for d in descriptors] == [1, 2]
    assert all(d.non_unique == 1 for d in descriptors)
    assert all(d.index_type == "BTREE" for d in descriptors)
