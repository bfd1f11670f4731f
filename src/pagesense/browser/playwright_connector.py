"""Playwright-backed connector for remote Chromium endpoints."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse, urlunparse

from pagesense.config.pagesense_config import PoolConfig
from pagesense.errors import PoolConnectionError

from .logging_utils import _log_browser_event

logger = logging.getLogger(__name__)


class PlaywrightConnector:
    """
    Connects to remote browsers over the Chrome DevTools Protocol.

    Endpoints already given as ``ws://``/``wss://`` are used as-is. Hostnames
    matching a container pattern expose only a WebSocket debugger URL, which
    is looked up through ``/json/version`` first. Anything else is handed to
    Playwright as a plain HTTP browser endpoint.
    """

    def __init__(self, config: Optional[PoolConfig] = None) -> None:
        self._config = config or PoolConfig()
        self._patterns = [re.compile(p) for p in self._config.container_host_patterns]
        self._playwright: Any = None

    async def _ensure_playwright(self) -> Any:
        if self._playwright is not None:
            return self._playwright
        try:
            from playwright.async_api import async_playwright
        except ImportError as exc:
            raise RuntimeError(
                "Playwright not installed. Install with `pip install playwright` and run `playwright install`."
            ) from exc
        self._playwright = await async_playwright().start()
        return self._playwright

    def is_container_host(self, endpoint: str) -> bool:
        hostname = urlparse(endpoint).hostname or ""
        return any(pattern.search(hostname) for pattern in self._patterns)

    async def resolve_ws_endpoint(self, endpoint: str) -> str:
        import aiohttp

        parsed = urlparse(endpoint)
        scheme = "https" if parsed.scheme in {"https", "wss"} else "http"
        lookup_url = urlunparse((scheme, parsed.netloc, "/json/version", "", "", ""))
        async with aiohttp.ClientSession() as session:
            timeout = aiohttp.ClientTimeout(total=self._config.lookup_timeout)
            async with session.get(lookup_url, timeout=timeout) as response:
                if response.status >= 400:
                    raise PoolConnectionError(
                        f"Endpoint lookup failed with HTTP {response.status}",
                        details={"endpoint": endpoint, "lookup_url": lookup_url},
                    )
                payload: Dict[str, Any] = await response.json(content_type=None)
        ws_url = str(payload.get("webSocketDebuggerUrl") or "").strip()
        if not ws_url:
            raise PoolConnectionError(
                "Endpoint lookup returned no webSocketDebuggerUrl",
                details={"endpoint": endpoint, "lookup_url": lookup_url},
            )
        # Containers report their internal host; keep the one we can reach.
        ws_parsed = urlparse(ws_url)
        ws_scheme = "wss" if scheme == "https" else "ws"
        return urlunparse((ws_scheme, parsed.netloc, ws_parsed.path, "", ws_parsed.query, ""))

    async def connect(self, endpoint: str, session_id: str) -> Any:
        playwright = await self._ensure_playwright()
        scheme = urlparse(endpoint).scheme.lower()
        if scheme in {"ws", "wss"}:
            target, transport = endpoint, "ws"
        elif self.is_container_host(endpoint):
            target, transport = await self.resolve_ws_endpoint(endpoint), "ws_lookup"
        else:
            target, transport = endpoint, "http"
        _log_browser_event(
            logger,
            level=logging.DEBUG,
            event="connect",
            endpoint=endpoint,
            session=session_id,
            transport=transport,
        )
        return await playwright.chromium.connect_over_cdp(target)

    async def ping(self, browser: Any) -> str:
        """Round-trip ``Browser.getVersion`` over a browser-level CDP session."""
        session = await browser.new_browser_cdp_session()
        try:
            payload = await session.send("Browser.getVersion")
        finally:
            try:
                await session.detach()
            except Exception:
                logger.debug("CDP session detach failed", exc_info=True)
        return str((payload or {}).get("product") or "")

    async def stop(self) -> None:
        playwright, self._playwright = self._playwright, None
        if playwright is not None:
            await playwright.stop()
