"""
PageSense facade.

Wires the connection pool, page locator, stability detector, scroll settler,
segmenter and generalizer together so callers work with an endpoint and a
session id instead of browser handles.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pagesense.browser.connection_pool import ConnectionHandle, ConnectionPool
from pagesense.browser.page_locator import PageLocator
from pagesense.browser.runtime_common import BrowserConnector, RemotePage
from pagesense.config.pagesense_config import PageSenseConfig
from pagesense.models import RepeatedTemplate, Segment, StabilityOutcome
from pagesense.perception.generalizer import PatternGeneralizer
from pagesense.perception.segmenter import PageSegmentation, Segmenter
from pagesense.stability.detector import StabilityDetector
from pagesense.stability.scroll_settle import ScrollSettler

logger = logging.getLogger(__name__)

SCROLL_DIRECTIONS = ("top", "bottom", "next")


class PageSense:
    def __init__(
        self,
        config: Optional[PageSenseConfig] = None,
        *,
        connector: Optional[BrowserConnector] = None,
    ) -> None:
        self.config = config or PageSenseConfig()
        self.pool = ConnectionPool(connector, config=self.config.pool)
        self.locator = PageLocator(self.config.locator)
        self.detector = StabilityDetector(self.config.stability, locator=self.locator)
        self.settler = ScrollSettler(self.config.scroll)
        self.segmenter = Segmenter(self.config.segmenter)
        self.generalizer = PatternGeneralizer()

    async def __aenter__(self) -> "PageSense":
        self.pool.start()
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.pool.close()

    async def _page(
        self,
        endpoint: str,
        session_id: str,
        page_index: Optional[int] = None,
    ) -> RemotePage:
        handle = await self.pool.acquire(endpoint, session_id)
        if page_index is None:
            page, _, _ = await self.locator.current(handle)
            return page
        return await self.locator.at_index(handle, None, page_index)

    def _resolver(self, handle: ConnectionHandle):
        async def _resolve() -> RemotePage:
            page, _, _ = await self.locator.current(handle)
            return page

        return _resolve

    async def pages(self, endpoint: str, session_id: str) -> Dict[str, Any]:
        handle = await self.pool.acquire(endpoint, session_id)
        page, index, total = await self.locator.current(handle)
        return {"url": page.url, "index": index, "totalPages": total}

    async def wait_until_stable(
        self,
        endpoint: str,
        session_id: str,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StabilityOutcome:
        handle = await self.pool.acquire(endpoint, session_id)
        page, _, _ = await self.locator.current(handle)
        return await self.detector.wait_until_stable(
            page,
            page_resolver=self._resolver(handle),
            cancel_event=cancel_event,
        )

    async def scroll(
        self,
        endpoint: str,
        session_id: str,
        direction: str,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StabilityOutcome:
        if direction not in SCROLL_DIRECTIONS:
            raise ValueError(f"Unknown scroll direction: {direction}")
        page = await self._page(endpoint, session_id)
        settle = getattr(self.settler, f"scroll_{direction}")
        return await settle(page, cancel_event=cancel_event)

    async def segment(
        self,
        endpoint: str,
        session_id: str,
        *,
        full_page: bool = False,
        wait_loaded: bool = True,
        page_index: Optional[int] = None,
    ) -> PageSegmentation:
        page = await self._page(endpoint, session_id, page_index)
        if full_page:
            return await self.segmenter.segment_full_page(page, wait_loaded=wait_loaded)
        region = await self.segmenter.viewport_region(page)
        if wait_loaded:
            return await self.segmenter.segment_when_loaded(page, region)
        return await self.segmenter.segment_page(page, region)

    async def generalize(
        self,
        endpoint: str,
        session_id: str,
        points: Sequence[Any],
        *,
        properties: Optional[Sequence[str]] = None,
        strategy: Optional[str] = None,
    ) -> List[List[Segment]]:
        page = await self._page(endpoint, session_id)
        return await self.generalizer.generalize(page, points, properties=properties, strategy=strategy)

    async def extract(
        self,
        endpoint: str,
        session_id: str,
        points: Sequence[Any],
        *,
        properties: Optional[Sequence[str]] = None,
        strategy: Optional[str] = None,
    ) -> Tuple[Optional[RepeatedTemplate], List[List[Segment]]]:
        page = await self._page(endpoint, session_id)
        return await self.generalizer.extract(page, points, properties=properties, strategy=strategy)
