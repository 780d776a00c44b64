"""Tests for the warehouse connection pool."""

import asyncio
import signal

import pytest

from conftest import CountingSessionFactory

from dbintrospect.config import ConnectionConfig, PoolConfig
from dbintrospect.errors import (
    BackendConnectionError,
    ConfigurationError,
    ConnectionTimeoutError,
    QueryExecutionError,
)
from dbintrospect.pool import ConnectionLifecycleManager, config_key, get_default_manager


def test_config_key_uses_default_port(databricks_config):
    assert config_key(databricks_config) == "adb-123.azuredatabricks.net:443:token:main"
    databricks_config.port = 8443
    assert config_key(databricks_config) == "adb-123.azuredatabricks.net:8443:token:main"


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_connect(databricks_config, clock):
    """Two concurrent requests for one target make exactly one connect attempt."""
    factory = CountingSessionFactory(delay=0.05)
    manager = ConnectionLifecycleManager(session_factory=factory, clock=clock)

    first, second = await asyncio.gather(
        manager.get_connection(databricks_config),
        manager.get_connection(databricks_config),
    )

    assert first is second
    assert factory.calls == 1
    assert manager.pooled_keys() == [config_key(databricks_config)]
    await manager.close_all()


@pytest.mark.asyncio
async def test_live_handle_reused_and_touched(databricks_config, clock):
    factory = CountingSessionFactory()
    manager = ConnectionLifecycleManager(session_factory=factory, clock=clock)

    handle = await manager.get_connection(databricks_config)
    clock.advance(30)
    again = await manager.get_connection(databricks_config)

    assert again is handle
    assert handle.last_used_at == clock.now
    assert factory.calls == 1
    await manager.close_all()


@pytest.mark.asyncio
async def test_idle_handles_evicted_on_sweep(databricks_config, clock):
    """A handle idle past the threshold is closed; one used just before survives."""
    factory = CountingSessionFactory()
    manager = ConnectionLifecycleManager(
        pool_config=PoolConfig(idle_timeout=300), session_factory=factory, clock=clock
    )
    idle = await manager.get_connection(databricks_config)

    busy_config = ConnectionConfig(
        backend="databricks",
        host="adb-456.azuredatabricks.net",
        user="token",
        password="dapi-other",
        database="main",
        databricks_options=databricks_config.databricks_options,
    )
    busy = await manager.get_connection(busy_config)

    clock.advance(301)
    await manager.get_connection(busy_config)

    evicted = await manager.sweep_idle()

    assert evicted == [idle.config_key]
    assert manager.pooled_keys() == [busy.config_key]
    assert idle.session.closed is True
    assert idle.is_connected is False
    assert busy.session.closed is False
    await manager.close_all()


@pytest.mark.asyncio
async def test_failed_query_marks_handle_stale(databricks_config, clock):
    """A failing query flips the handle; the next request reconnects."""
    factory = CountingSessionFactory()
    factory.driver.on("SELECT boom", error=RuntimeError("INVALID_SESSION_HANDLE"))
    manager = ConnectionLifecycleManager(session_factory=factory, clock=clock)

    first = await manager.get_connection(databricks_config)
    with pytest.raises(QueryExecutionError, match="INVALID_SESSION_HANDLE"):
        await manager.execute_query("SELECT boom", databricks_config)

    assert first.is_connected is False

    second = await manager.get_connection(databricks_config)

    assert second is not first
    assert second.is_connected is True
    assert factory.calls == 2
    assert first.session.closed is True
    await manager.close_all()


@pytest.mark.asyncio
async def test_execute_query_returns_rows(databricks_config, clock):
    factory = CountingSessionFactory()
    factory.driver.on("SELECT id, name", ["id", "name"], [(1, "a"), (2, "b")])
    manager = ConnectionLifecycleManager(session_factory=factory, clock=clock)

    rows = await manager.execute_query("SELECT id, name FROM main.sales.orders", databricks_config)

    assert rows == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]
    session = factory.driver.connections[0]
    assert session.closed is False
    await manager.close_all()
    assert session.closed is True


@pytest.mark.asyncio
async def test_connect_timeout(databricks_config, clock):
    """A connect slower than the timeout fails and leaves nothing pooled."""
    factory = CountingSessionFactory(delay=0.3)
    manager = ConnectionLifecycleManager(
        pool_config=PoolConfig(connect_timeout=0.05), session_factory=factory, clock=clock
    )

    with pytest.raises(ConnectionTimeoutError, match="timed out"):
        await manager.get_connection(databricks_config)

    assert manager.pooled_keys() == []

    # the late session is closed once it arrives
    await asyncio.sleep(0.5)
    await manager.close_all()
    assert factory.driver.connections[0].closed is True


@pytest.mark.asyncio
async def test_connect_failure_not_cached(databricks_config, clock):
    factory = CountingSessionFactory(error=OSError("Name or service not known"))
    manager = ConnectionLifecycleManager(session_factory=factory, clock=clock)

    with pytest.raises(BackendConnectionError, match="Name or service not known"):
        await manager.get_connection(databricks_config)
    with pytest.raises(BackendConnectionError):
        await manager.get_connection(databricks_config)

    assert factory.calls == 2
    assert manager.pooled_keys() == []


@pytest.mark.asyncio
async def test_pool_rejects_non_warehouse_config(mysql_config, databricks_config, clock):
    manager = ConnectionLifecycleManager(session_factory=CountingSessionFactory(), clock=clock)

    with pytest.raises(ConfigurationError, match="only used for databricks"):
        await manager.get_connection(mysql_config)

    databricks_config.databricks_options = None
    with pytest.raises(ConfigurationError, match="http_path"):
        await manager.get_connection(databricks_config)


@pytest.mark.asyncio
async def test_close_all_closes_every_handle(databricks_config, clock):
    factory = CountingSessionFactory()
    manager = ConnectionLifecycleManager(session_factory=factory, clock=clock)

    handle = await manager.get_connection(databricks_config)
    await manager.close_all()

    assert manager.pooled_keys() == []
    assert handle.session.closed is True
    assert handle.is_connected is False


@pytest.mark.asyncio
async def test_background_sweep_runs_on_interval(databricks_config, clock):
    factory = CountingSessionFactory()
    manager = ConnectionLifecycleManager(
        pool_config=PoolConfig(idle_timeout=300, sweep_interval=0.01),
        session_factory=factory,
        clock=clock,
    )

    handle = await manager.get_connection(databricks_config)
    clock.advance(600)
    await asyncio.sleep(0.1)

    assert manager.pooled_keys() == []
    assert handle.session.closed is True
    await manager.close_all()


@pytest.mark.asyncio
async def test_close_all_while_connecting_stops_sweep(databricks_config, clock):
    """A connect finishing during close_all neither restarts the sweep nor stays pooled."""
    factory = CountingSessionFactory(delay=0.1)
    manager = ConnectionLifecycleManager(session_factory=factory, clock=clock)
    await manager.get_connection(databricks_config)

    other_config = ConnectionConfig(
        backend="databricks",
        host="adb-456.azuredatabricks.net",
        user="token",
        password="dapi-other",
        database="main",
        databricks_options=databricks_config.databricks_options,
    )
    connecting = asyncio.ensure_future(manager.get_connection(other_config))
    await asyncio.sleep(0.02)

    await manager.close_all()
    late = await connecting

    assert manager._sweep_task is None
    assert manager.pooled_keys() == []
    assert late.session.closed is True
    assert all(conn.closed for conn in factory.driver.connections)


@pytest.mark.asyncio
async def test_shutdown_signal_closes_pool(databricks_config, clock, monkeypatch):
    loop = asyncio.get_running_loop()
    installed = {}
    raised = []
    monkeypatch.setattr(
        loop, "add_signal_handler", lambda sig, callback, *args: installed.update({sig: (callback, args)})
    )
    monkeypatch.setattr(loop, "remove_signal_handler", lambda sig: installed.pop(sig, None) is not None)
    monkeypatch.setattr(signal, "raise_signal", raised.append)

    manager = ConnectionLifecycleManager(
        session_factory=CountingSessionFactory(), clock=clock, handle_signals=True
    )
    handle = await manager.get_connection(databricks_config)

    assert set(installed) == {signal.SIGINT, signal.SIGTERM}

    callback, args = installed[signal.SIGTERM]
    callback(*args)
    await asyncio.gather(*list(manager._background))

    assert manager.pooled_keys() == []
    assert handle.session.closed is True
    assert manager._sweep_task is None
    assert installed == {}
    assert raised == [signal.SIGTERM]


@pytest.mark.asyncio
async def test_signal_handlers_are_opt_in(databricks_config, clock, monkeypatch):
    loop = asyncio.get_running_loop()
    installed = []
    monkeypatch.setattr(loop, "add_signal_handler", lambda sig, *args: installed.append(sig))
    manager = ConnectionLifecycleManager(session_factory=CountingSessionFactory(), clock=clock)

    await manager.get_connection(databricks_config)
    await manager.close_all()

    assert installed == []


def test_default_manager_handles_signals():
    manager = get_default_manager()

    assert manager.handle_signals is True
    assert get_default_manager() is manager
