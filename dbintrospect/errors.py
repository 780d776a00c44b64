"""Error taxonomy for metadata introspection."""

from typing import Optional


class IntrospectionError(Exception):
    """Base class for all errors raised by dbintrospect."""


class ConfigurationError(IntrospectionError):
    """Invalid or incomplete connection configuration."""


class DriverUnavailableError(IntrospectionError):
    """The driver for a backend kind is not installed."""

    def __init__(self, backend: str, dependency: str, cause: Optional[BaseException] = None):
        self.backend = backend
        self.dependency = dependency
        self.cause = cause
        super().__init__(
            f"Driver for backend '{backend}' is not available. "
            f"Install it with: pip install {dependency}"
        )


class PartialSchemaError(IntrospectionError):
    """One schema or collection failed to load; the rest were kept."""

    def __init__(self, entity: str, cause: BaseException):
        self.entity = entity
        self.cause = cause
        super().__init__(f"Failed to load '{entity}': {cause}")


class BackendConnectionError(IntrospectionError, ConnectionError):
    """Opening a connection to a backend failed."""


class ConnectionTimeoutError(BackendConnectionError):
    """Opening a pooled warehouse connection exceeded the connect timeout."""


class QueryExecutionError(IntrospectionError):
    """A catalog or user query failed on the backend."""
