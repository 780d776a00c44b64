"""MongoDB data source implementation."""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from ..catalog.schema import (
    DocumentIndexDescriptor,
    IndexMap,
    SchemaMap,
    TableSizeCache,
    qualify,
)
from ..catalog.store import MetadataStore
from ..config import BackendKind, build_mongo_connection_string
from ..errors import QueryExecutionError
from ..inference import DocumentSchemaInferrer
from .base import DataSource, DataSourceCapability

logger = logging.getLogger(__name__)

MONGO_OPERATIONS = ("find", "aggregate", "distinct", "count")

PARAM_PLACEHOLDER = re.compile(r":\{\{([^}]+)\}\}")


@dataclass
class MongoQuery:
    """A document-store query in place of SQL text."""

    collection: str
    operation: str
    filter: Dict[str, Any] = field(default_factory=dict)
    pipeline: List[Dict[str, Any]] = field(default_factory=list)
    field_name: Optional[str] = None  # distinct
    sort: Optional[Dict[str, int]] = None
    limit: Optional[int] = None
    skip: Optional[int] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MongoQuery":
        """Build a query from its dict form.

        Raises:
            QueryExecutionError: If the dict has unknown or missing keys
        """
        data = dict(data)
        if "field" in data:
            data["field_name"] = data.pop("field")
        try:
            return cls(**data)
        except TypeError as e:
            raise QueryExecutionError(f"Invalid MongoDB query format: {e}") from e


def bind_params(value: Any, params: Mapping[str, Any]) -> Any:
    """Substitute `:{{name}}` placeholders in a query document.

    A string that is exactly one placeholder is replaced by the parameter
    value itself, keeping its type. Placeholders inside longer strings are
    replaced by the value's text. Placeholders without a parameter are
    left as they are.

    Example:
        >>> bind_params({"status": ":{{status}}", "note": "id-:{{id}}"}, {"status": "open", "id": 7})
        {'status': 'open', 'note': 'id-7'}
    """
    if isinstance(value, dict):
        return {key: bind_params(item, params) for key, item in value.items()}
    if isinstance(value, list):
        return [bind_params(item, params) for item in value]
    if not isinstance(value, str):
        return value

    whole = PARAM_PLACEHOLDER.fullmatch(value)
    if whole is not None:
        return params.get(whole.group(1), value)

    def substitute(match):
        name = match.group(1)
        return str(params[name]) if name in params else match.group(0)

    return PARAM_PLACEHOLDER.sub(substitute, value)


class MongoDBDataSource(DataSource):
    """MongoDB data source; collections keyed by bare name, fields inferred."""

    kind = BackendKind.MONGODB
    driver_module = "pymongo"
    driver_package = "pymongo"

    def open_session(self):
        return self.driver.MongoClient(build_mongo_connection_string(self.config))

    def get_capabilities(self) -> List[DataSourceCapability]:
        return [
            DataSourceCapability.SCHEMA,
            DataSourceCapability.INDEXES,
            DataSourceCapability.SIZES,
            DataSourceCapability.QUERY,
        ]

    def _database(self, database: Optional[str] = None):
        client = self._require_connection()
        name = database or self.config.database
        if not name:
            return client.get_default_database()
        return client[name]

    async def list_collections(self, database: str) -> List[str]:
        """List collection names, sorted."""
        db = self._database(database)
        try:
            names = await self.run_blocking(db.list_collection_names)
        except Exception as e:
            raise QueryExecutionError(f"Listing collections failed on {self.name}: {e}") from e
        return sorted(names)

    async def sample_documents(self, database: str, collection: str) -> List[Dict[str, Any]]:
        """Draw a random sample with the $sample stage."""
        coll = self._database(database)[collection]
        pipeline = [{"$sample": {"size": self.loader_config.sample_size}}]
        return await self.run_blocking(lambda: list(coll.aggregate(pipeline)))

    async def load_schema(self, database: str, store: Optional[MetadataStore] = None) -> SchemaMap:
        """Infer a field list per collection from a random sample.

        Empty collections map to an empty field list. A collection whose
        sampling fails is logged and left out.
        """
        inferrer = DocumentSchemaInferrer(
            max_sample_values=self.loader_config.max_sample_values,
            array_recursion_limit=self.loader_config.array_recursion_limit,
        )

        schema_map: SchemaMap = {}
        for collection in await self.list_collections(database):
            key = qualify(self.kind, collection)
            try:
                docs = await self.sample_documents(database, collection)
            except Exception as e:
                self._record_partial_failure(store, collection, e)
                continue

            if not docs:
                logger.debug(f"Collection {collection} is empty")
                schema_map[key] = []
                continue

            schema_map[key] = inferrer.infer(docs)
            logger.debug(f"Inferred {len(schema_map[key])} fields for {collection}")

        logger.info(f"Loaded schema for {len(schema_map)} MongoDB collections")
        return schema_map

    async def load_indexes(self, database: str, store: Optional[MetadataStore] = None) -> IndexMap:
        """List indexes of every collection."""
        index_map: IndexMap = {}
        for collection in await self.list_collections(database):
            coll = self._database(database)[collection]
            try:
                indexes = await self.run_blocking(lambda: list(coll.list_indexes()))
            except Exception as e:
                logger.warning(f"Error loading indexes for {collection}: {e}")
                index_map[qualify(self.kind, collection)] = []
                continue

            index_map[qualify(self.kind, collection)] = [
                self._index_descriptor(index) for index in indexes
            ]
            logger.debug(f"Loaded {len(indexes)} indexes for collection {collection}")
        return index_map

    def _index_descriptor(self, index: Dict[str, Any]) -> DocumentIndexDescriptor:
        keys = dict(index["key"])
        return DocumentIndexDescriptor(
            index_name=index["name"],
            keys=keys,
            unique=bool(index.get("unique", False)),
            sparse=bool(index.get("sparse", False)),
            compound=len(keys) > 1,
            fields=list(keys),
            text_index="weights" in index,
            partial_filter=index.get("partialFilterExpression"),
        )

    async def load_sizes(self, database: str, store: Optional[MetadataStore] = None) -> TableSizeCache:
        """Count documents per collection; failures count as zero."""
        sizes: TableSizeCache = {}
        for collection in await self.list_collections(database):
            coll = self._database(database)[collection]
            try:
                count = await self.run_blocking(coll.estimated_document_count)
            except Exception as e:
                logger.warning(f"Error getting document count for {collection}: {e}")
                count = 0
            sizes[qualify(self.kind, collection)] = int(count or 0)
        return sizes

    async def execute_query(self, query: Any, params: Optional[Any] = None) -> List[Dict[str, Any]]:
        """Run a MongoQuery (or its dict form) and return documents.

        `params` is a mapping bound into `:{{name}}` placeholders of the
        filter and pipeline before the query runs.
        """
        if isinstance(query, dict):
            query = MongoQuery.from_dict(query)
        if not isinstance(query, MongoQuery):
            raise QueryExecutionError("Invalid MongoDB query format")
        if query.operation not in MONGO_OPERATIONS:
            raise QueryExecutionError(f"Unsupported MongoDB operation: {query.operation}")
        if params:
            if not isinstance(params, Mapping):
                raise QueryExecutionError("MongoDB query parameters must be a mapping of names to values")
            query = replace(
                query,
                filter=bind_params(query.filter, params),
                pipeline=bind_params(query.pipeline, params),
            )

        coll = self._database()[query.collection]
        try:
            return await self.run_blocking(self._run_operation, coll, query)
        except Exception as e:
            raise QueryExecutionError(f"MongoDB {query.operation} failed on {self.name}: {e}") from e

    def _run_operation(self, coll, query: MongoQuery) -> List[Dict[str, Any]]:
        if query.operation == "find":
            cursor = coll.find(query.filter, **query.options)
            if query.sort:
                cursor = cursor.sort(list(query.sort.items()))
            if query.skip:
                cursor = cursor.skip(query.skip)
            if query.limit:
                cursor = cursor.limit(query.limit)
            return list(cursor)
        if query.operation == "aggregate":
            return list(coll.aggregate(query.pipeline, **query.options))
        if query.operation == "distinct":
            return [{"value": value} for value in coll.distinct(query.field_name, query.filter)]
        return [{"count": coll.count_documents(query.filter, **query.options)}]
