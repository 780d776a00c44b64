"""Data source connectors."""

from .base import DataSource, DataSourceCapability, DBAPIDataSource
from .databricks import DatabricksDataSource
from .mongodb import MongoDBDataSource, MongoQuery
from .mysql import MySQLDataSource
from .postgresql import PostgreSQLDataSource
from .registry import BackendRegistry, default_registry

__all__ = [
    "DataSource",
    "DataSourceCapability",
    "DBAPIDataSource",
    "DatabricksDataSource",
    "MongoDBDataSource",
    "MongoQuery",
    "MySQLDataSource",
    "PostgreSQLDataSource",
    "BackendRegistry",
    "default_registry",
]
