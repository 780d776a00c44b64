"""Tests for the metadata model and store."""

import pytest

from dbintrospect.catalog import (
    ColumnDescriptor,
    IndexDescriptor,
    MetadataSnapshot,
    MetadataStore,
    qualify,
)
from dbintrospect.config import BackendKind
from dbintrospect.errors import ConfigurationError, PartialSchemaError


@pytest.fixture
def store():
    """Store holding two same-named tables in different schemas."""
    store = MetadataStore()
    store.replace_schema_map(
        {
            "public.orders": [ColumnDescriptor("id", "integer", False, position=1)],
            "sales.orders": [ColumnDescriptor("id", "integer", False, position=1)],
            "public.customers": [
                ColumnDescriptor("id", "integer", False, position=1),
                ColumnDescriptor("email", "text", True, position=2),
            ],
        }
    )
    store.replace_index_map(
        {"public.orders": [IndexDescriptor("orders_pkey", "id", 0, 1, "BTREE")]}
    )
    store.replace_table_sizes({"public.orders": 10, "sales.orders": 5})
    return store


def test_qualify_rules():
    assert qualify(BackendKind.POSTGRES, "orders", schema="sales") == "sales.orders"
    assert qualify("databricks", "orders", schema="sales", catalog="main") == "main.sales.orders"
    assert qualify(BackendKind.MYSQL, "orders", schema="ignored") == "orders"
    assert qualify(BackendKind.MONGODB, "events") == "events"


def test_qualify_missing_parts():
    with pytest.raises(ConfigurationError):
        qualify(BackendKind.POSTGRES, "orders")
    with pytest.raises(ConfigurationError):
        qualify(BackendKind.DATABRICKS, "orders", schema="sales")


def test_resolve_table(store):
    """Test exact and unambiguous partial table references."""
    snapshot = store.snapshot()

    assert snapshot.resolve_table("public.orders") == "public.orders"
    assert snapshot.resolve_table("customers") == "public.customers"
    assert snapshot.resolve_table("SALES.ORDERS") == "sales.orders"
    assert snapshot.resolve_table("orders") is None
    assert snapshot.resolve_table("missing") is None
    assert [c.name for c in snapshot.get_columns("customers")] == ["id", "email"]
    assert snapshot.get_columns("missing") is None


def test_snapshot_unaffected_by_later_reload(store):
    snapshot = store.snapshot()

    store.replace_schema_map({"public.orders": []})
    store.replace_table_sizes({})

    assert len(snapshot.schema_map) == 3
    assert snapshot.table_size_cache["sales.orders"] == 5
    assert list(store.schema_map) == ["public.orders"]


def test_swap_and_reset(store):
    store.record_partial_failure(PartialSchemaError("audit", RuntimeError("denied")))

    store.swap(MetadataSnapshot(schema_map={"orders": []}, table_size_cache={"orders": 1}))

    assert list(store.schema_map) == ["orders"]
    assert store.index_map == {}
    assert store.table_size_cache == {"orders": 1}
    assert len(store.partial_failures) == 1

    store.reset()

    assert store.snapshot().schema_map == {}
    assert store.partial_failures == []


def test_to_dict_wire_shape(store):
    data = store.snapshot().to_dict()

    email = data["schemaMap"]["public.customers"][1]
    assert email["columnName"] == "email"
    assert email["dataType"] == "text"
    assert email["isNullable"] == "YES"
    assert email["position"] == 2
    assert data["indexMap"]["public.orders"][0] == {
        "indexName": "orders_pkey",
        "columnName": "id",
        "nonUnique": 0,
        "seqInIndex": 1,
        "indexType": "BTREE",
    }
    assert data["tableSizeCache"] == {"public.orders": 10, "sales.orders": 5}


def test_partial_schema_error_message():
    error = PartialSchemaError("audit", RuntimeError("permission denied"))
    assert str(error) == "Failed to load 'audit': permission denied"
