"""Configuration management for metadata introspection."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional
from urllib.parse import quote, urlencode
import yaml
from pathlib import Path

from ..errors import ConfigurationError


class BackendKind(str, Enum):
    """Backend discriminator."""

    MYSQL = "mysql"
    POSTGRES = "postgres"
    MONGODB = "mongodb"
    DATABRICKS = "databricks"

    @classmethod
    def parse(cls, value: Any) -> "BackendKind":
        """Convert a discriminator value to a BackendKind.

        Raises:
            ConfigurationError: If the value names no known backend
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            known = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(
                f"Unknown backend kind '{value}' (expected one of: {known})"
            ) from None

    @property
    def is_relational(self) -> bool:
        return self in (BackendKind.MYSQL, BackendKind.POSTGRES)

    @property
    def default_port(self) -> int:
        return _DEFAULT_PORTS[self]


_DEFAULT_PORTS = {
    BackendKind.MYSQL: 3306,
    BackendKind.POSTGRES: 5432,
    BackendKind.MONGODB: 27017,
    BackendKind.DATABRICKS: 443,
}


@dataclass
class MongoOptions:
    """Connection-string options for the document backend."""

    auth_source: Optional[str] = None
    ssl: bool = False
    replica_set: Optional[str] = None
    read_preference: Optional[str] = None
    max_pool_size: Optional[int] = None
    min_pool_size: Optional[int] = None
    server_selection_timeout_ms: Optional[int] = None
    socket_timeout_ms: Optional[int] = None
    connect_timeout_ms: Optional[int] = None

    def to_query_params(self) -> Dict[str, str]:
        """Return the options as connection-string query parameters."""
        pairs = [
            ("authSource", self.auth_source),
            ("ssl", "true" if self.ssl else None),
            ("replicaSet", self.replica_set),
            ("readPreference", self.read_preference),
            ("maxPoolSize", self.max_pool_size),
            ("minPoolSize", self.min_pool_size),
            ("serverSelectionTimeoutMS", self.server_selection_timeout_ms),
            ("socketTimeoutMS", self.socket_timeout_ms),
            ("connectTimeoutMS", self.connect_timeout_ms),
        ]
        params = {}
        for name, value in pairs:
            if value:
                params[name] = str(value)
        return params


@dataclass
class DatabricksOptions:
    """Options for the warehouse backend."""

    http_path: str = ""  # /sql/1.0/warehouses/<warehouse-id>
    schema: Optional[str] = None
    timeout: Optional[int] = None  # query timeout in ms


@dataclass
class ConnectionConfig:
    """Resolved connection configuration for one backend.

    For the warehouse backend `database` is the catalog name and `password`
    holds the access token.
    """

    backend: BackendKind
    host: str = ""
    user: str = ""
    password: str = ""
    database: str = ""
    port: Optional[int] = None
    name: str = "default"
    url: Optional[str] = None
    disable_ssl: bool = False
    mongo_options: Optional[MongoOptions] = None
    databricks_options: Optional[DatabricksOptions] = None

    def __post_init__(self):
        self.backend = BackendKind.parse(self.backend)

    @property
    def effective_port(self) -> int:
        return self.port or self.backend.default_port

    def validate(self) -> None:
        """Check backend-specific required fields.

        Raises:
            ConfigurationError: If a required field is missing
        """
        if not self.host and not self.url:
            raise ConfigurationError(f"Connection '{self.name}' has no host")
        if self.backend == BackendKind.DATABRICKS:
            if not self.databricks_options or not self.databricks_options.http_path:
                raise ConfigurationError(
                    f"Connection '{self.name}' is missing databricks http_path"
                )
        elif self.backend != BackendKind.MONGODB and not self.database:
            raise ConfigurationError(f"Connection '{self.name}' has no database")


@dataclass
class LoaderConfig:
    """Configuration for metadata loaders."""

    sample_size: int = 100
    max_sample_values: int = 10
    array_recursion_limit: int = 3
    size_batch_size: int = 10


@dataclass
class PoolConfig:
    """Configuration for the warehouse connection pool."""

    connect_timeout: float = 30.0
    idle_timeout: float = 300.0
    sweep_interval: float = 60.0


@dataclass
class LoggingConfig:
    """Configuration for logging setup."""

    level: str = "INFO"
    structured: bool = False
    log_file: Optional[str] = None


@dataclass
class Config:
    """Main configuration class."""

    connections: Dict[str, ConnectionConfig] = field(default_factory=dict)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def build_mongo_connection_string(config: ConnectionConfig) -> str:
    """Build a mongodb:// URI from a connection config.

    A full `url` on the config is returned unchanged.
    """
    if config.url:
        return config.url

    uri = "mongodb://"
    if config.user and config.password:
        uri += f"{quote(config.user, safe='')}:{quote(config.password, safe='')}@"
    uri += f"{config.host}:{config.effective_port}/{config.database}"

    if config.mongo_options:
        params = config.mongo_options.to_query_params()
        if params:
            uri += f"?{urlencode(params)}"
    return uri


def parse_connection(name: str, data: Dict[str, Any]) -> ConnectionConfig:
    """Build a ConnectionConfig from one mapping of a YAML document."""
    data = dict(data)
    if "type" not in data:
        raise ConfigurationError(f"Connection '{name}' has no type")
    backend = BackendKind.parse(data.pop("type"))

    mongo_data = data.pop("mongo_options", None)
    databricks_data = data.pop("databricks_options", None)

    try:
        config = ConnectionConfig(backend=backend, name=name, **data)
    except TypeError as e:
        raise ConfigurationError(f"Invalid options for connection '{name}': {e}") from e

    if mongo_data is not None:
        config.mongo_options = MongoOptions(**mongo_data)
    if databricks_data is not None:
        config.databricks_options = DatabricksOptions(**databricks_data)
    return config


def load_config(config_path: str) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Parsed configuration

    Example YAML format:
        connections:
          orders_pg:
            type: postgres
            host: localhost
            port: 5432
            database: shop
            user: reader
            password: secret

          lake:
            type: databricks
            host: adb-123.azuredatabricks.net
            database: main
            password: dapi-token
            databricks_options:
              http_path: /sql/1.0/warehouses/abc123

        loader:
          sample_size: 100
          size_batch_size: 10

        pool:
          connect_timeout: 30
          idle_timeout: 300

        logging:
          level: DEBUG
          structured: true
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    connections = {}
    for name, conn_data in data.get("connections", {}).items():
        connections[name] = parse_connection(name, conn_data)

    loader = LoaderConfig(**data.get("loader", {}))
    pool = PoolConfig(**data.get("pool", {}))
    logging_config = LoggingConfig(**data.get("logging", {}))

    return Config(
        connections=connections, loader=loader, pool=pool, logging=logging_config
    )
