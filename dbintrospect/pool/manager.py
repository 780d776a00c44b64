"""Pooled connections for the warehouse backend.

One long-lived connection is kept per target (host, port, user, catalog).
Concurrent requests for the same target share a single connect attempt, a
connection that failed a query is replaced on next use, and connections left
idle past `PoolConfig.idle_timeout` are closed by a background sweep.
The process-wide default pool also closes itself on SIGINT and SIGTERM.
"""

import asyncio
import logging
import signal
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from ..config import BackendKind, ConnectionConfig, PoolConfig
from ..datasources.base import run_statement
from ..datasources.registry import default_registry
from ..errors import (
    BackendConnectionError,
    ConfigurationError,
    ConnectionTimeoutError,
    DriverUnavailableError,
    QueryExecutionError,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ConnectionConfig], Any]

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass
class ConnectionHandle:
    """A pooled warehouse connection."""

    session: Any
    config_key: str
    is_connected: bool = True
    last_used_at: float = 0.0

    def touch(self, now: float) -> None:
        self.last_used_at = now


def config_key(config: ConnectionConfig) -> str:
    """Pool key of a configuration: host:port:user:database."""
    return f"{config.host}:{config.effective_port}:{config.user}:{config.database}"


def _open_warehouse_session(config: ConnectionConfig) -> Any:
    source = default_registry().create(config)
    return source.open_session()


class ConnectionLifecycleManager:
    """Pool of warehouse connections keyed by target.

    Example:
        >>> manager = ConnectionLifecycleManager()
        >>> rows = await manager.execute_query("SELECT 1 AS one", config)
        >>> await manager.close_all()
    """

    def __init__(
        self,
        pool_config: Optional[PoolConfig] = None,
        session_factory: Optional[SessionFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        handle_signals: bool = False,
    ):
        """Initialize the pool.

        Args:
            pool_config: Timeouts and sweep interval
            session_factory: Blocking callable opening a driver connection for a config
            clock: Monotonic time source in seconds
            handle_signals: Install SIGINT/SIGTERM handlers once the pool
                starts its sweep on the main thread
        """
        self.pool_config = pool_config or PoolConfig()
        self._session_factory = session_factory or _open_warehouse_session
        self._clock = clock
        self._connections: Dict[str, ConnectionHandle] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Future] = set()
        self.handle_signals = handle_signals
        self._signal_loop: Optional[asyncio.AbstractEventLoop] = None
        self._closing = False

    def pooled_keys(self) -> List[str]:
        return sorted(self._connections)

    async def get_connection(self, config: ConnectionConfig) -> ConnectionHandle:
        """Return the live handle for a target, connecting if needed.

        Raises:
            ConfigurationError: If the config is not a valid warehouse config
            DriverUnavailableError: If the warehouse driver is not installed
            ConnectionTimeoutError: If connecting exceeds the connect timeout
            BackendConnectionError: If connecting fails
        """
        if config.backend != BackendKind.DATABRICKS:
            raise ConfigurationError(
                f"Pooled connections are only used for databricks, not {config.backend.value}"
            )
        config.validate()
        key = config_key(config)

        stale = None
        async with self._lock:
            handle = self._connections.get(key)
            if handle is not None and handle.is_connected:
                handle.touch(self._clock())
                return handle
            if handle is not None:
                stale = self._connections.pop(key)

            pending = self._pending.get(key)
            if pending is None:
                pending = asyncio.ensure_future(self._open(config, key))
                self._pending[key] = pending
                pending.add_done_callback(lambda fut, key=key: self._clear_pending(key, fut))
            else:
                logger.debug(f"Joining in-flight connect for {key}")

        if stale is not None:
            logger.info(f"Replacing stale warehouse connection {key}")
            await self._close_handle(stale)

        return await asyncio.shield(pending)

    def _clear_pending(self, key: str, future: asyncio.Future) -> None:
        if self._pending.get(key) is future:
            del self._pending[key]

    async def _open(self, config: ConnectionConfig, key: str) -> ConnectionHandle:
        timeout = self.pool_config.connect_timeout
        connect = asyncio.ensure_future(asyncio.to_thread(self._session_factory, config))
        done, _ = await asyncio.wait({connect}, timeout=timeout)

        if not done:
            connect.add_done_callback(self._discard_late_session)
            logger.error(f"Connecting to warehouse {key} timed out after {timeout}s")
            raise ConnectionTimeoutError(
                f"Connection to {config.host} timed out after {timeout} seconds"
            )

        try:
            session = connect.result()
        except (DriverUnavailableError, ConfigurationError):
            raise
        except Exception as e:
            logger.error(f"Failed to connect to warehouse {key}: {e}")
            raise BackendConnectionError(f"Warehouse connection failed: {e}") from e

        handle = ConnectionHandle(session=session, config_key=key, last_used_at=self._clock())
        async with self._lock:
            self._connections[key] = handle
        self.start_idle_sweep()
        logger.info(f"Connected to warehouse {key}")
        return handle

    def _discard_late_session(self, future: asyncio.Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        logger.warning("Closing warehouse session that connected after its timeout")
        self._spawn(asyncio.to_thread(future.result().close))

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def execute_query(
        self, sql: str, config: ConnectionConfig, params: Optional[Any] = None
    ) -> List[Dict[str, Any]]:
        """Run a statement on the pooled connection of a target.

        A failing statement marks the handle stale, so the next call for
        the same target connects again.

        Raises:
            QueryExecutionError: If the statement fails
        """
        handle = await self.get_connection(config)
        try:
            rows = await asyncio.to_thread(run_statement, handle.session, sql, params)
        except Exception as e:
            handle.is_connected = False
            logger.warning(f"Query failed on {handle.config_key}, marking connection stale: {e}")
            raise QueryExecutionError(f"Warehouse query failed: {e}") from e
        handle.touch(self._clock())
        return rows

    async def sweep_idle(self) -> List[str]:
        """Close and drop handles idle for longer than the idle timeout.

        Returns:
            Keys of the evicted handles
        """
        now = self._clock()
        expired = []
        async with self._lock:
            for key, handle in list(self._connections.items()):
                if now - handle.last_used_at > self.pool_config.idle_timeout:
                    expired.append(self._connections.pop(key))

        for handle in expired:
            logger.info(f"Closing idle warehouse connection {handle.config_key}")
            await self._close_handle(handle)
        return [handle.config_key for handle in expired]

    def start_idle_sweep(self) -> None:
        """Start the periodic idle sweep if it is not running."""
        if self._closing:
            return
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.ensure_future(self._sweep_loop())
        if self.handle_signals:
            self._ensure_signal_handlers()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.pool_config.sweep_interval)
            try:
                await self.sweep_idle()
            except Exception as e:
                logger.error(f"Idle sweep failed: {e}", exc_info=True)

    async def _stop_sweep(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _close_handle(self, handle: ConnectionHandle) -> None:
        handle.is_connected = False
        try:
            await asyncio.to_thread(handle.session.close)
        except Exception as e:
            logger.warning(f"Error closing warehouse connection {handle.config_key}: {e}")

    async def close_all(self) -> None:
        """Stop the idle sweep and close every pooled connection.

        Connects still in flight are awaited first and their connections
        closed as well. The pool can be used again afterwards.
        """
        self._closing = True
        try:
            await self._stop_sweep()

            pending = list(self._pending.values())
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            async with self._lock:
                handles = list(self._connections.values())
                self._connections.clear()

            for handle in handles:
                await self._close_handle(handle)
            current = asyncio.current_task()
            background = [task for task in self._background if task is not current]
            if background:
                await asyncio.gather(*background, return_exceptions=True)
        finally:
            self._closing = False
        logger.info(f"Closed {len(handles)} warehouse connections")

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Close the pool when the process receives SIGINT or SIGTERM.

        Once the pool is closed the handlers are removed and the signal is
        raised again, so the process terminates as it would have.
        """
        loop = loop or asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self._on_signal, sig)
        self._signal_loop = loop
        logger.debug("Installed warehouse pool signal handlers")

    def _ensure_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        if self._signal_loop is loop:
            return
        if threading.current_thread() is not threading.main_thread():
            return
        try:
            self.install_signal_handlers(loop)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            logger.debug(f"Signal handlers not installed: {e}")

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, closing warehouse connections")
        self._spawn(self._shutdown(sig))

    async def _shutdown(self, sig: signal.Signals) -> None:
        try:
            await self.close_all()
        finally:
            loop, self._signal_loop = self._signal_loop, None
            if loop is not None:
                for handled in SHUTDOWN_SIGNALS:
                    loop.remove_signal_handler(handled)
            signal.raise_signal(sig)

    def __repr__(self) -> str:
        return (
            f"ConnectionLifecycleManager(connections={len(self._connections)}, "
            f"pending={len(self._pending)})"
        )


_default_manager: Optional[ConnectionLifecycleManager] = None


def get_default_manager() -> ConnectionLifecycleManager:
    """Process-wide pool used when callers don't pass their own.

    It installs SIGINT/SIGTERM handlers on first use from the main thread.
    """
    global _default_manager
    if _default_manager is None:
        _default_manager = ConnectionLifecycleManager(handle_signals=True)
    return _default_manager
