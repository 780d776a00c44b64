"""Shared utilities."""

from .logging import (
    ConnectionLogAdapter,
    CredentialFilter,
    StandardFormatter,
    StructuredFormatter,
    configure_logging,
    connection_logger,
    redact_credentials,
    setup_logging,
)

__all__ = [
    "ConnectionLogAdapter",
    "CredentialFilter",
    "StandardFormatter",
    "StructuredFormatter",
    "configure_logging",
    "connection_logger",
    "redact_credentials",
    "setup_logging",
]
