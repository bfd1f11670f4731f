"""Resolve the active page of a pooled browser while tabs come and go."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Optional, Tuple

from pagesense.config.pagesense_config import LocatorConfig
from pagesense.errors import IndexOutOfBoundsError, NoPageError

from .connection_pool import ConnectionHandle
from .logging_utils import _log_browser_event
from .runtime_common import RemotePage, _coerce_bool, _is_blank_url, _list_pages

logger = logging.getLogger(__name__)

_HAS_FOCUS_JS = "() => document.hasFocus()"


class PageLocator:
    def __init__(self, config: Optional[LocatorConfig] = None) -> None:
        self._config = config or LocatorConfig()

    @property
    def config(self) -> LocatorConfig:
        return self._config

    def _resolve_config(self, config: Optional[LocatorConfig]) -> LocatorConfig:
        return config or self._config

    @staticmethod
    def _pages(handle: ConnectionHandle) -> List[Any]:
        return _list_pages(handle.browser)

    async def _apply_viewport(self, page: RemotePage, config: LocatorConfig) -> None:
        if not config.apply_viewport:
            return
        try:
            await page.set_viewport_size(
                {"width": int(config.viewport_width), "height": int(config.viewport_height)}
            )
        except Exception as exc:
            _log_browser_event(
                logger,
                level=logging.DEBUG,
                event="viewport_failed",
                reason=str(exc),
            )

    async def _focused_index(self, pages: List[Any]) -> int:
        for index, page in enumerate(pages):
            if _coerce_bool(await page.evaluate(_HAS_FOCUS_JS)):
                return index
        return 0

    async def current(
        self,
        handle: ConnectionHandle,
        config: Optional[LocatorConfig] = None,
    ) -> Tuple[RemotePage, int, int]:
        """Return ``(page, index, total_pages)`` for the focused page, or page 0."""
        cfg = self._resolve_config(config)
        attempts = max(1, int(cfg.attempts))
        last_index = 0
        for attempt in range(1, attempts + 1):
            try:
                pages = self._pages(handle)
                if not pages:
                    raise NoPageError("Browser has no open pages")
                index = await self._focused_index(pages)
                last_index = index
                page = pages[index]
                await self._apply_viewport(page, cfg)
                handle.touch()
                return page, index, len(pages)
            except Exception as exc:
                _log_browser_event(
                    logger,
                    level=logging.DEBUG,
                    event="locate_page_retry",
                    attempt=attempt,
                    attempts=attempts,
                    reason=str(exc),
                )
                if attempt < attempts:
                    await asyncio.sleep(cfg.retry_delay)

        pages = self._pages(handle)
        if not pages:
            raise NoPageError("Browser has no open pages")
        index = min(max(last_index, 0), len(pages) - 1)
        page = pages[index]
        await self._apply_viewport(page, cfg)
        handle.touch()
        return page, index, len(pages)

    async def at_index(
        self,
        handle: ConnectionHandle,
        config: Optional[LocatorConfig],
        index: int,
    ) -> RemotePage:
        cfg = self._resolve_config(config)
        pages = self._pages(handle)
        if index < 0 or index >= len(pages):
            raise IndexOutOfBoundsError(
                "Page index out of bounds",
                details={"index": index, "total_pages": len(pages)},
            )
        page = pages[index]
        await self._apply_viewport(page, cfg)
        handle.touch()
        return page

    async def wait_not_blank(
        self,
        page: RemotePage,
        timeout: Optional[float] = None,
        config: Optional[LocatorConfig] = None,
    ) -> bool:
        """Poll while the page is still on a placeholder URL. Returns False on timeout."""
        cfg = self._resolve_config(config)
        budget = cfg.blank_timeout if timeout is None else float(timeout)
        deadline = time.monotonic() + budget
        while _is_blank_url(page.url):
            if time.monotonic() >= deadline:
                _log_browser_event(
                    logger,
                    level=logging.DEBUG,
                    event="blank_page_timeout",
                    timeout=budget,
                )
                return False
            await asyncio.sleep(cfg.blank_poll_interval)
        return True
