"""Shared fixtures: in-process fake drivers for every backend."""

import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from dbintrospect.config import BackendKind, ConnectionConfig, DatabricksOptions

Result = Tuple[List[str], List[tuple]]


class FakeCursor:
    """DB-API cursor answering from the driver's scripted handlers."""

    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.description = None
        self._rows: List[tuple] = []
        self.closed = False

    def execute(self, query: str, params: Any = None) -> None:
        self.connection.executed.append((query, params))
        columns, rows = self.connection.driver.respond(query, params)
        if columns:
            self.description = [(name, None, None, None, None, None, None) for name in columns]
        else:
            self.description = None
        self._rows = list(rows)

    def fetchall(self) -> List[tuple]:
        return list(self._rows)

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, driver: "FakeDBAPIDriver"):
        self.driver = driver
        self.executed: List[Tuple[str, Any]] = []
        self.autocommit = False
        self.closed = False
        self.cursors: List[FakeCursor] = []

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def close(self) -> None:
        self.closed = True


class FakeDBAPIDriver:
    """Stands in for a DB-API driver module.

    Queries are answered by the first handler whose fragment occurs in the
    SQL text. A handler is either fixed columns/rows, an exception to raise,
    or a callable taking (query, params) and returning (columns, rows).
    """

    def __init__(self):
        self.handlers: List[tuple] = []
        self.connections: List[FakeConnection] = []
        self.connect_kwargs: List[Dict[str, Any]] = []
        self.connect_error: Optional[BaseException] = None

    def on(
        self,
        fragment: str,
        columns: Optional[List[str]] = None,
        rows: Optional[List[tuple]] = None,
        error: Optional[BaseException] = None,
        handler: Optional[Callable[[str, Any], Result]] = None,
    ) -> "FakeDBAPIDriver":
        self.handlers.append((fragment, columns or [], rows or [], error, handler))
        return self

    def reset(self) -> None:
        self.handlers = []

    def respond(self, query: str, params: Any) -> Result:
        for fragment, columns, rows, error, handler in self.handlers:
            if fragment in query:
                if error is not None:
                    raise error
                if handler is not None:
                    return handler(query, params)
                return columns, rows
        return [], []

    def connect(self, **kwargs) -> FakeConnection:
        self.connect_kwargs.append(kwargs)
        if self.connect_error is not None:
            raise self.connect_error
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection


class FakeFindCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self.docs = docs

    def sort(self, keys: List[Tuple[str, int]]) -> "FakeFindCursor":
        for key, direction in reversed(keys):
            self.docs = sorted(self.docs, key=lambda doc: doc[key], reverse=direction < 0)
        return self

    def skip(self, count: int) -> "FakeFindCursor":
        self.docs = self.docs[count:]
        return self

    def limit(self, count: int) -> "FakeFindCursor":
        self.docs = self.docs[:count]
        return self

    def __iter__(self):
        return iter(self.docs)


def _matches(doc: Dict[str, Any], query_filter: Dict[str, Any]) -> bool:
    return all(doc.get(key) == value for key, value in query_filter.items())


class FakeCollection:
    def __init__(
        self,
        docs: Optional[List[Dict[str, Any]]] = None,
        indexes: Optional[List[Dict[str, Any]]] = None,
        error: Optional[BaseException] = None,
        count_error: Optional[BaseException] = None,
    ):
        self.docs = list(docs or [])
        self.indexes = list(indexes or [{"v": 2, "key": {"_id": 1}, "name": "_id_"}])
        self.error = error
        self.count_error = count_error
        self.pipelines: List[List[Dict[str, Any]]] = []
        self.options: List[Dict[str, Any]] = []

    def aggregate(self, pipeline: List[Dict[str, Any]], **options):
        self.pipelines.append(pipeline)
        self.options.append(options)
        if self.error is not None:
            raise self.error
        if pipeline and "$sample" in pipeline[0]:
            return iter(self.docs[: pipeline[0]["$sample"]["size"]])
        docs = self.docs
        for stage in pipeline:
            if "$match" in stage:
                docs = [doc for doc in docs if _matches(doc, stage["$match"])]
        return iter(docs)

    def list_indexes(self):
        return iter(self.indexes)

    def estimated_document_count(self) -> int:
        if self.count_error is not None:
            raise self.count_error
        return len(self.docs)

    def find(self, query_filter: Dict[str, Any], **options) -> FakeFindCursor:
        self.options.append(options)
        return FakeFindCursor([doc for doc in self.docs if _matches(doc, query_filter)])

    def distinct(self, field_name: str, query_filter: Dict[str, Any]) -> List[Any]:
        values = []
        for doc in self.docs:
            if _matches(doc, query_filter) and doc.get(field_name) not in values:
                values.append(doc.get(field_name))
        return values

    def count_documents(self, query_filter: Dict[str, Any], **options) -> int:
        self.options.append(options)
        return len([doc for doc in self.docs if _matches(doc, query_filter)])


class FakeMongoDatabase:
    def __init__(self, name: str, collections: Dict[str, FakeCollection]):
        self.name = name
        self.collections = collections

    def list_collection_names(self) -> List[str]:
        return list(self.collections)

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


class FakeMongoClient:
    def __init__(self, databases: Dict[str, FakeMongoDatabase], default: Optional[str] = None):
        self.databases = databases
        self.default = default
        self.closed = False

    def __getitem__(self, name: str) -> FakeMongoDatabase:
        return self.databases.setdefault(name, FakeMongoDatabase(name, {}))

    def get_default_database(self) -> FakeMongoDatabase:
        return self[self.default]

    def close(self) -> None:
        self.closed = True


class FakeMongoDriver:
    """Stands in for the pymongo module."""

    def __init__(self, client: FakeMongoClient):
        self.client = client
        self.uris: List[str] = []

    def MongoClient(self, uri: str) -> FakeMongoClient:
        self.uris.append(uri)
        return self.client


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class CountingSessionFactory:
    """Blocking warehouse session factory that counts connect attempts."""

    def __init__(self, delay: float = 0.0, error: Optional[BaseException] = None):
        self.driver = FakeDBAPIDriver()
        self.delay = delay
        self.error = error
        self.calls = 0

    def __call__(self, config: ConnectionConfig) -> FakeConnection:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.driver.connect(server_hostname=config.host)


@pytest.fixture
def fake_driver():
    """Scriptable DB-API driver."""
    return FakeDBAPIDriver()


@pytest.fixture
def mysql_config():
    return ConnectionConfig(
        backend=BackendKind.MYSQL,
        host="mysql.local",
        user="reader",
        password="secret",
        database="shop",
        name="shop_mysql",
    )


@pytest.fixture
def postgres_config():
    return ConnectionConfig(
        backend=BackendKind.POSTGRES,
        host="pg.local",
        user="reader",
        password="secret",
        database="shop",
        name="shop_pg",
    )


@pytest.fixture
def mongo_config():
    return ConnectionConfig(
        backend=BackendKind.MONGODB,
        host="mongo.local",
        user="app",
        password="secret",
        database="shop",
        name="shop_mongo",
    )


@pytest.fixture
def databricks_config():
    return ConnectionConfig(
        backend=BackendKind.DATABRICKS,
        host="adb-123.azuredatabricks.net",
        user="token",
        password="dapi-secret",
        database="main",
        name="lake",
        databricks_options=DatabricksOptions(http_path="/sql/1.0/warehouses/abc123"),
    )


@pytest.fixture
def clock():
    return FakeClock()
