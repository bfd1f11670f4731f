"""Pool of long-lived remote browser connections keyed by endpoint and session."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from pagesense.config.pagesense_config import PoolConfig
from pagesense.errors import PoolConnectionError, StaleConnection

from .logging_utils import _log_browser_event
from .runtime_common import BrowserConnector, RemoteBrowser

logger = logging.getLogger(__name__)

PoolKey = Tuple[str, str]


def _default_connector(config: PoolConfig) -> BrowserConnector:
    from .playwright_connector import PlaywrightConnector

    return PlaywrightConnector(config)


@dataclass
class ConnectionHandle:
    endpoint: str
    session_id: str
    browser: RemoteBrowser
    connected: bool = True
    created_at: float = field(default_factory=time.time)
    last_used_at: float = field(default_factory=time.time)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    _on_disconnect: Optional[Callable[..., None]] = field(default=None, repr=False)

    @property
    def key(self) -> PoolKey:
        return (self.endpoint, self.session_id)

    def touch(self) -> None:
        self.last_used_at = time.time()


class ConnectionPool:
    """
    Owner of every pooled ``ConnectionHandle``.

    Callers borrow handles through ``acquire``; only the pool closes them.
    The map is guarded by one manager lock while per-key locks serialize
    connect/evict work for the same key without blocking unrelated keys.
    """

    def __init__(
        self,
        connector: Optional[BrowserConnector] = None,
        *,
        config: Optional[PoolConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or PoolConfig()
        self._connector = connector or _default_connector(self._config)
        self._clock = clock
        self._handles: Dict[PoolKey, ConnectionHandle] = {}
        self._key_locks: Dict[PoolKey, asyncio.Lock] = {}
        self._key_users: Dict[PoolKey, int] = {}
        self._manager_lock = asyncio.Lock()
        self._sweeper: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def config(self) -> PoolConfig:
        return self._config

    async def _key_lock(self, key: PoolKey) -> asyncio.Lock:
        async with self._manager_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._key_locks[key] = lock
            self._key_users[key] = self._key_users.get(key, 0) + 1
            return lock

    async def _release_key_lock(self, key: PoolKey) -> None:
        async with self._manager_lock:
            users = self._key_users.get(key, 1) - 1
            if users > 0:
                self._key_users[key] = users
                return
            self._key_users.pop(key, None)
            self._forget_key_lock(key)

    def _forget_key_lock(self, key: PoolKey) -> None:
        # Caller holds the manager lock.
        if key in self._handles or self._key_users.get(key):
            return
        lock = self._key_locks.get(key)
        if lock is not None and not lock.locked():
            self._key_locks.pop(key, None)

    async def acquire(self, endpoint: str, session_id: str) -> ConnectionHandle:
        if self._closed:
            raise PoolConnectionError("Connection pool is closed", details={"endpoint": endpoint})
        clean_endpoint = str(endpoint or "").strip()
        if not clean_endpoint:
            raise ValueError("endpoint is required")
        key: PoolKey = (clean_endpoint, str(session_id or "").strip() or "default")

        lock = await self._key_lock(key)
        try:
            async with lock:
                return await self._acquire_locked(key)
        finally:
            await self._release_key_lock(key)

    async def _acquire_locked(self, key: PoolKey) -> ConnectionHandle:
        async with self._manager_lock:
            current = self._handles.get(key)
        if current is not None:
            try:
                await self._check_alive(current)
            except StaleConnection as exc:
                _log_browser_event(
                    logger,
                    level=logging.INFO,
                    event="pool_evict_stale",
                    endpoint=key[0],
                    session=key[1],
                    reason=exc.message,
                )
                await self._evict(current)
            else:
                current.last_used_at = self._clock()
                return current

        browser = await self._connect_with_retries(*key)
        handle = ConnectionHandle(
            endpoint=key[0],
            session_id=key[1],
            browser=browser,
            created_at=self._clock(),
            last_used_at=self._clock(),
        )
        self._watch_disconnect(handle)
        async with self._manager_lock:
            self._handles[key] = handle
        _log_browser_event(
            logger,
            level=logging.INFO,
            event="pool_connected",
            endpoint=key[0],
            session=key[1],
        )
        return handle

    async def _check_alive(self, handle: ConnectionHandle) -> None:
        if not handle.connected:
            raise StaleConnection("handle marked disconnected")
        try:
            is_connected = handle.browser.is_connected()
        except Exception:
            is_connected = True
        if not is_connected:
            raise StaleConnection("browser reports disconnected")
        try:
            await asyncio.wait_for(
                self._connector.ping(handle.browser),
                timeout=self._config.connect_timeout,
            )
        except Exception as exc:
            raise StaleConnection(f"liveness check failed: {exc}") from exc

    async def _connect_with_retries(self, endpoint: str, session_id: str) -> RemoteBrowser:
        attempts = max(1, int(self._config.connect_attempts))
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._connector.connect(endpoint, session_id),
                    timeout=self._config.connect_timeout,
                )
            except asyncio.TimeoutError as exc:
                last_error = exc
                reason = f"connect timed out after {self._config.connect_timeout}s"
            except Exception as exc:
                last_error = exc
                reason = str(exc) or type(exc).__name__
            _log_browser_event(
                logger,
                level=logging.WARNING,
                event="pool_connect_failed",
                endpoint=endpoint,
                session=session_id,
                attempt=attempt,
                attempts=attempts,
                reason=reason,
            )
            if attempt < attempts:
                await asyncio.sleep(self._config.retry_delay)
        raise PoolConnectionError(
            f"Unable to connect to {endpoint} after {attempts} attempts",
            details={"endpoint": endpoint, "session_id": session_id},
        ) from last_error

    def _watch_disconnect(self, handle: ConnectionHandle) -> None:
        def _mark_disconnected(*_args: Any) -> None:
            # The handle stays in the map; acquire or the sweep removes it.
            handle.connected = False
            _log_browser_event(
                logger,
                level=logging.INFO,
                event="pool_disconnected",
                endpoint=handle.endpoint,
                session=handle.session_id,
            )

        handle._on_disconnect = _mark_disconnected
        try:
            handle.browser.on("disconnected", _mark_disconnected)
        except Exception:
            logger.debug("Browser does not support disconnect listeners", exc_info=True)

    def _unwatch_disconnect(self, handle: ConnectionHandle) -> None:
        callback = handle._on_disconnect
        handle._on_disconnect = None
        if callback is None:
            return
        try:
            handle.browser.remove_listener("disconnected", callback)
        except Exception:
            logger.debug("Failed to remove disconnect listener", exc_info=True)

    async def _evict(self, handle: ConnectionHandle) -> None:
        async with self._manager_lock:
            if self._handles.get(handle.key) is handle:
                self._handles.pop(handle.key, None)
            self._forget_key_lock(handle.key)
        await self._close_handle(handle)

    async def _close_handle(self, handle: ConnectionHandle) -> None:
        self._unwatch_disconnect(handle)
        handle.connected = False
        try:
            await handle.browser.close()
        except Exception as exc:
            _log_browser_event(
                logger,
                level=logging.DEBUG,
                event="pool_close_failed",
                endpoint=handle.endpoint,
                session=handle.session_id,
                reason=str(exc),
            )

    async def sweep(self) -> int:
        """Close handles idle beyond the TTL. Returns how many were removed."""
        now = self._clock()
        expired: List[ConnectionHandle] = []
        async with self._manager_lock:
            for key, handle in list(self._handles.items()):
                key_lock = self._key_locks.get(key)
                if handle.lock.locked() or (key_lock is not None and key_lock.locked()):
                    continue
                if now - float(handle.last_used_at) >= float(self._config.idle_ttl):
                    self._handles.pop(key, None)
                    expired.append(handle)
                    self._forget_key_lock(key)
        for handle in expired:
            _log_browser_event(
                logger,
                level=logging.INFO,
                event="pool_sweep_closed",
                endpoint=handle.endpoint,
                session=handle.session_id,
                idle_secs=round(now - handle.last_used_at, 1),
            )
            await self._close_handle(handle)
        return len(expired)

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._config.sweep_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Connection pool sweep failed")

    def start(self) -> None:
        """Start the periodic idle sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def close_session(self, session_id: str) -> int:
        clean_session = str(session_id or "").strip() or "default"
        async with self._manager_lock:
            doomed = [handle for key, handle in self._handles.items() if key[1] == clean_session]
            for handle in doomed:
                self._handles.pop(handle.key, None)
                self._forget_key_lock(handle.key)
        for handle in doomed:
            await self._close_handle(handle)
        if doomed:
            _log_browser_event(
                logger,
                level=logging.INFO,
                event="pool_session_closed",
                session=clean_session,
                handles=len(doomed),
            )
        return len(doomed)

    release = close_session

    async def close(self) -> None:
        """Stop the sweeper and close every handle. The pool rejects acquires afterwards."""
        self._closed = True
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
        async with self._manager_lock:
            handles = list(self._handles.values())
            self._handles.clear()
            self._key_locks.clear()
            self._key_users.clear()
        for handle in handles:
            await self._close_handle(handle)
        stop = getattr(self._connector, "stop", None)
        if callable(stop):
            try:
                await stop()
            except Exception:
                logger.debug("Connector stop failed", exc_info=True)

    async def list_handles(self) -> List[Dict[str, Any]]:
        async with self._manager_lock:
            items = list(self._handles.values())
        return [
            {
                "endpoint": handle.endpoint,
                "session_id": handle.session_id,
                "connected": handle.connected,
                "created_at": handle.created_at,
                "last_used_at": handle.last_used_at,
            }
            for handle in items
        ]

    async def __aenter__(self) -> "ConnectionPool":
        self.start()
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()
