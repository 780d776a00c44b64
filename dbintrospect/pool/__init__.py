"""Warehouse connection pooling."""

from .manager import (
    ConnectionHandle,
    ConnectionLifecycleManager,
    config_key,
    get_default_manager,
)

__all__ = [
    "ConnectionHandle",
    "ConnectionLifecycleManager",
    "config_key",
    "get_default_manager",
]
