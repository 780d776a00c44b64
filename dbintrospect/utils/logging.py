"""Logging setup for introspection runs.

Log lines can carry the backend and database they concern, either as a
message prefix or as JSON fields, and connection URLs that end up in
driver error messages have their passwords masked before they are written.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import ConnectionConfig, LoggingConfig

# Driver loggers that log every round trip at INFO
DRIVER_LOGGERS = ("pymysql", "psycopg2", "pymongo", "databricks.sql", "thrift_backend", "urllib3")

URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)(?P<user>[^:/@\s]+):[^@/\s]+@", re.I)


def redact_credentials(text: str) -> str:
    """Mask the password in any `scheme://user:password@` URL in text."""
    return URL_CREDENTIALS.sub(r"\g<scheme>\g<user>:***@", text)


class CredentialFilter(logging.Filter):
    """Rewrite records so no connection password reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_credentials(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with connection context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(getattr(record, "connection", {}))

        if record.exc_info:
            log_data["exception"] = redact_credentials(self.formatException(record.exc_info))

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Standard human-readable formatter."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def _build_handlers(formatter: logging.Formatter, log_file: Optional[str]) -> List[logging.Handler]:
    # stderr keeps stdout free for callers that print query results
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(CredentialFilter())
    return handlers


def setup_logging(
    level: str = "INFO",
    structured: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        structured: Use structured JSON logging if True
        log_file: Optional log file path

    Driver loggers are held at WARNING unless `level` is DEBUG.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = StructuredFormatter() if structured else StandardFormatter()

    logging.basicConfig(
        level=log_level,
        handlers=_build_handlers(formatter, log_file),
        force=True,
    )

    driver_level = logging.DEBUG if log_level <= logging.DEBUG else logging.WARNING
    for name in DRIVER_LOGGERS:
        logging.getLogger(name).setLevel(driver_level)


def configure_logging(config: LoggingConfig) -> None:
    """Set up logging from the `logging` section of a config file."""
    setup_logging(level=config.level, structured=config.structured, log_file=config.log_file)


class ConnectionLogAdapter(logging.LoggerAdapter):
    """Logger adapter that tags records with the connection they concern."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs.setdefault("extra", {})["connection"] = self.extra

        context = " ".join(f"{key}={value}" for key, value in self.extra.items() if value)
        if context:
            msg = f"[{context}] {msg}"
        return msg, kwargs


def connection_logger(name: str, config: ConnectionConfig) -> ConnectionLogAdapter:
    """Get a logger tagged with a connection's backend, host and database.

    Credentials are never part of the context.

    Example:
        >>> log = connection_logger(__name__, config)
        >>> log.info("Loading metadata")  # "[backend=postgres host=db.local database=shop] Loading metadata"
    """
    context = {
        "backend": config.backend.value,
        "host": config.host,
        "database": config.database,
    }
    return ConnectionLogAdapter(logging.getLogger(name), context)
