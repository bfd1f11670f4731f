import asyncio

import pytest

from pagesense.browser.connection_pool import ConnectionPool
from pagesense.config.pagesense_config import PoolConfig
from pagesense.errors import PoolConnectionError


class FakeBrowser:
    def __init__(self, name):
        self.name = name
        self.contexts = []
        self.closed = False
        self.connected = True
        self.listeners = {}

    def is_connected(self):
        return self.connected

    def on(self, event, f):
        self.listeners.setdefault(event, []).append(f)

    def remove_listener(self, event, f):
        self.listeners.get(event, []).remove(f)

    def emit(self, event):
        for callback in list(self.listeners.get(event, [])):
            callback(self)

    async def close(self):
        self.closed = True


class FakeConnector:
    def __init__(self, failures=0, ping_error=None, delay=0.0):
        self.failures = failures
        self.ping_error = ping_error
        self.delay = delay
        self.connects = []
        self.stopped = False

    async def connect(self, endpoint, session_id):
        self.connects.append((endpoint, session_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError("refused")
        return FakeBrowser(f"{endpoint}#{len(self.connects)}")

    async def ping(self, browser):
        if self.ping_error is not None:
            raise self.ping_error
        return "1.0"

    async def stop(self):
        self.stopped = True


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _pool(connector, clock=None, **overrides):
    values = dict(connect_attempts=3, retry_delay=0.0, connect_timeout=1.0, idle_ttl=60.0)
    values.update(overrides)
    return ConnectionPool(connector, config=PoolConfig(**values), clock=clock or Clock())


@pytest.mark.asyncio
async def test_acquire_reuses_live_handle():
    connector = FakeConnector()
    pool = _pool(connector)

    first = await pool.acquire("http://localhost:9222", "alpha")
    second = await pool.acquire("http://localhost:9222", "alpha")

    assert first is second
    assert len(connector.connects) == 1
    await pool.close()


@pytest.mark.asyncio
async def test_sessions_get_separate_handles():
    connector = FakeConnector()
    pool = _pool(connector)

    alpha = await pool.acquire("http://localhost:9222", "alpha")
    beta = await pool.acquire("http://localhost:9222", "beta")

    assert alpha is not beta
    assert len(await pool.list_handles()) == 2
    await pool.close()


@pytest.mark.asyncio
async def test_concurrent_acquire_connects_once():
    connector = FakeConnector(delay=0.01)
    pool = _pool(connector)

    handles = await asyncio.gather(*[pool.acquire("http://localhost:9222", "alpha") for _ in range(5)])

    assert len({id(handle) for handle in handles}) == 1
    assert len(connector.connects) == 1
    await pool.close()


@pytest.mark.asyncio
async def test_connect_retries_then_succeeds():
    connector = FakeConnector(failures=2)
    pool = _pool(connector)

    handle = await pool.acquire("http://localhost:9222", "alpha")

    assert handle.connected
    assert len(connector.connects) == 3
    await pool.close()


@pytest.mark.asyncio
async def test_connect_gives_up_after_attempts():
    connector = FakeConnector(failures=10)
    pool = _pool(connector)

    with pytest.raises(PoolConnectionError) as excinfo:
        await pool.acquire("http://localhost:9222", "alpha")

    assert excinfo.value.details["endpoint"] == "http://localhost:9222"
    assert len(connector.connects) == 3
    assert await pool.list_handles() == []


@pytest.mark.asyncio
async def test_disconnected_handle_is_replaced():
    connector = FakeConnector()
    pool = _pool(connector)

    first = await pool.acquire("http://localhost:9222", "alpha")
    first.browser.emit("disconnected")
    second = await pool.acquire("http://localhost:9222", "alpha")

    assert second is not first
    assert first.browser.closed
    assert first.browser.listeners["disconnected"] == []
    await pool.close()


@pytest.mark.asyncio
async def test_failed_ping_evicts_handle():
    connector = FakeConnector()
    pool = _pool(connector)

    first = await pool.acquire("http://localhost:9222", "alpha")
    connector.ping_error = RuntimeError("Target closed")
    second = await pool.acquire("http://localhost:9222", "alpha")

    assert second is not first
    assert first.browser.closed
    await pool.close()


@pytest.mark.asyncio
async def test_sweep_closes_idle_handles():
    clock = Clock()
    connector = FakeConnector()
    pool = _pool(connector, clock=clock, idle_ttl=60.0)

    idle = await pool.acquire("http://localhost:9222", "idle")
    clock.now += 30
    busy = await pool.acquire("http://localhost:9222", "busy")
    clock.now += 45

    removed = await pool.sweep()

    assert removed == 1
    assert idle.browser.closed
    assert not busy.browser.closed
    await pool.close()


@pytest.mark.asyncio
async def test_close_session_only_touches_that_session():
    connector = FakeConnector()
    pool = _pool(connector)

    a = await pool.acquire("http://host-a:9222", "alpha")
    b = await pool.acquire("http://host-b:9222", "alpha")
    c = await pool.acquire("http://host-a:9222", "beta")

    assert await pool.close_session("alpha") == 2
    assert a.browser.closed and b.browser.closed
    assert not c.browser.closed
    await pool.close()


@pytest.mark.asyncio
async def test_closed_pool_rejects_acquire_and_stops_connector():
    connector = FakeConnector()
    pool = _pool(connector)
    handle = await pool.acquire("http://localhost:9222", "alpha")

    await pool.close()

    assert handle.browser.closed
    assert connector.stopped
    with pytest.raises(PoolConnectionError):
        await pool.acquire("http://localhost:9222", "alpha")


@pytest.mark.asyncio
async def test_blank_endpoint_is_rejected():
    pool = _pool(FakeConnector())
    with pytest.raises(ValueError):
        await pool.acquire("  ", "alpha")
    await pool.close()


@pytest.mark.asyncio
async def test_closed_sessions_leave_no_key_locks():
    pool = _pool(FakeConnector())

    for number in range(50):
        await pool.acquire("http://localhost:9222", f"session-{number}")
        await pool.close_session(f"session-{number}")

    assert await pool.list_handles() == []
    assert pool._key_locks == {}
    assert pool._key_users == {}
    await pool.close()


@pytest.mark.asyncio
async def test_failed_connect_and_sweep_leave_no_key_locks():
    clock = Clock()
    connector = FakeConnector(failures=3)
    pool = _pool(connector, clock=clock, idle_ttl=60.0)

    with pytest.raises(PoolConnectionError):
        await pool.acquire("http://localhost:9222", "broken")
    assert pool._key_locks == {}

    await pool.acquire("http://localhost:9222", "idle")
    assert len(pool._key_locks) == 1
    clock.now += 120
    assert await pool.sweep() == 1
    assert pool._key_locks == {}
    await pool.close()


@pytest.mark.asyncio
async def test_waiting_acquires_share_one_key_lock():
    connector = FakeConnector(delay=0.01)
    pool = _pool(connector)

    handles = await asyncio.gather(*[pool.acquire("http://localhost:9222", "alpha") for _ in range(3)])

    assert len({id(handle) for handle in handles}) == 1
    assert len(connector.connects) == 1
    assert list(pool._key_locks) == [("http://localhost:9222", "alpha")]
    assert pool._key_users == {}
    await pool.close()
