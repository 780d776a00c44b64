"""Registry mapping backend kinds to data source implementations."""

import logging
from typing import Any, Dict, List, Optional, Type

from ..config import BackendKind, ConnectionConfig, LoaderConfig
from ..errors import ConfigurationError, DriverUnavailableError
from .base import DataSource
from .databricks import DatabricksDataSource
from .mongodb import MongoDBDataSource
from .mysql import MySQLDataSource
from .postgresql import PostgreSQLDataSource

logger = logging.getLogger(__name__)


class BackendRegistry:
    """Backend kind -> data source class, with driver availability checked on registration."""

    def __init__(self):
        self._backends: Dict[BackendKind, Type[DataSource]] = {}
        self._unavailable: Dict[BackendKind, DriverUnavailableError] = {}
        self._drivers: Dict[BackendKind, Any] = {}

    def register(
        self,
        source_cls: Type[DataSource],
        driver: Any = None,
        check_driver: bool = True,
    ) -> bool:
        """Register a data source class for its backend kind.

        Args:
            source_cls: Data source implementation
            driver: Driver module to hand to every instance instead of importing one
            check_driver: Import the driver now and record it as unavailable if missing

        Returns:
            True if the backend is usable
        """
        kind = source_cls.kind
        self._backends[kind] = source_cls
        self._unavailable.pop(kind, None)
        self._drivers.pop(kind, None)

        if driver is not None:
            self._drivers[kind] = driver
        elif check_driver:
            try:
                source_cls.load_driver()
            except DriverUnavailableError as e:
                logger.warning(str(e))
                self._unavailable[kind] = e
                return False
        return True

    def resolve(self, backend) -> Type[DataSource]:
        """Return the data source class for a backend kind.

        Raises:
            ConfigurationError: If the kind is unknown or not registered
            DriverUnavailableError: If the backend's driver is missing
        """
        kind = BackendKind.parse(backend)
        if kind in self._unavailable:
            raise self._unavailable[kind]
        if kind not in self._backends:
            raise ConfigurationError(f"No data source registered for backend '{kind.value}'")
        return self._backends[kind]

    def create(
        self,
        config: ConnectionConfig,
        loader_config: Optional[LoaderConfig] = None,
    ) -> DataSource:
        """Build an unconnected data source for a configuration."""
        config.validate()
        source_cls = self.resolve(config.backend)
        return source_cls(
            config,
            loader_config=loader_config,
            driver=self._drivers.get(source_cls.kind),
        )

    def available(self) -> List[BackendKind]:
        """Backend kinds whose drivers are installed."""
        return [kind for kind in self._backends if kind not in self._unavailable]

    def unavailable(self) -> Dict[BackendKind, DriverUnavailableError]:
        return dict(self._unavailable)

    def __contains__(self, backend) -> bool:
        return BackendKind.parse(backend) in self._backends

    def __repr__(self) -> str:
        names = ", ".join(kind.value for kind in self.available())
        return f"BackendRegistry(available=[{names}])"


_default_registry: Optional[BackendRegistry] = None


def default_registry() -> BackendRegistry:
    """Registry with the four built-in backends, created on first use."""
    global _default_registry
    if _default_registry is None:
        registry = BackendRegistry()
        for source_cls in (
            MySQLDataSource,
            PostgreSQLDataSource,
            MongoDBDataSource,
            DatabricksDataSource,
        ):
            registry.register(source_cls)
        _default_registry = registry
    return _default_registry
