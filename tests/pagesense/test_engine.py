import pytest

from pagesense.config.pagesense_config import PageSenseConfig, SegmenterConfig
from pagesense.engine import PageSense
from pagesense.errors import IndexOutOfBoundsError
from pagesense.perception.segmenter_script import (
    FULL_PAGE_REGION_JS,
    PREPARE_FULL_PAGE_JS,
    SEGMENT_PAGE_JS,
    VIEWPORT_REGION_JS,
)
from pagesense.stability.scroll_script import SCROLL_METRICS_JS


class FakePage:
    def __init__(self, url, focused=False):
        self.url = url
        self.focused = focused
        self.viewport_size = {"width": 1280, "height": 720}
        self.viewports = []

    async def evaluate(self, expression, arg=None):
        if expression == VIEWPORT_REGION_JS:
            return {"x": 0, "y": 0, "width": 1280, "height": 720}
        if expression == PREPARE_FULL_PAGE_JS:
            return {"width": 1280, "height": 720, "scrollHeight": 3000, "scrollX": 0, "scrollY": 0, "overflow": ""}
        if expression == FULL_PAGE_REGION_JS:
            return {"x": 0, "y": 0, "width": 1280, "height": 3000}
        if expression == SEGMENT_PAGE_JS:
            return {
                "elements": [
                    {"tag": "H1", "text": "Welcome", "hasText": True, "box": {"x": 0, "y": 0, "width": 400, "height": 40}},
                    {"tag": "P", "text": "Below the fold", "hasText": True,
                     "box": {"x": 0, "y": 1500, "width": 400, "height": 40}},
                ],
                "scrollContainers": [],
            }
        if expression == SCROLL_METRICS_JS:
            return {"scrollY": 0, "scrollHeight": 720, "innerHeight": 720}
        return self.focused

    async def set_viewport_size(self, viewport_size):
        self.viewports.append(dict(viewport_size))


class FakeContext:
    def __init__(self, pages):
        self.pages = pages


class FakeBrowser:
    def __init__(self, pages):
        self.contexts = [FakeContext(pages)]
        self.closed = False

    def is_connected(self):
        return True

    def on(self, event, f):
        return None

    def remove_listener(self, event, f):
        return None

    async def close(self):
        self.closed = True


class FakeConnector:
    def __init__(self):
        self.browsers = []

    async def connect(self, endpoint, session_id):
        browser = FakeBrowser([FakePage("https://a.test"), FakePage("https://b.test", focused=True)])
        self.browsers.append(browser)
        return browser

    async def ping(self, browser):
        return "1.0"


@pytest.mark.asyncio
async def test_pages_reports_focused_page():
    connector = FakeConnector()
    async with PageSense(PageSenseConfig(), connector=connector) as engine:
        info = await engine.pages("http://localhost:9222", "alpha")
    assert info == {"url": "https://b.test", "index": 1, "totalPages": 2}
    assert connector.browsers[0].closed


@pytest.mark.asyncio
async def test_segment_viewport_and_full_page():
    connector = FakeConnector()
    config = PageSenseConfig(segmenter=SegmenterConfig(full_page_settle_delay=0.0))
    async with PageSense(config, connector=connector) as engine:
        viewport = await engine.segment("http://localhost:9222", "alpha", wait_loaded=False)
        full = await engine.segment("http://localhost:9222", "alpha", full_page=True, wait_loaded=False)

    page = connector.browsers[0].contexts[0].pages[1]
    assert [segment.text for segment in viewport.segments] == ["Welcome"]
    assert [segment.index for segment in full.segments] == [0, 1]
    assert page.viewports[-2:] == [{"width": 1280, "height": 3000}, {"width": 1280, "height": 720}]


@pytest.mark.asyncio
async def test_segment_page_index_out_of_range():
    async with PageSense(connector=FakeConnector()) as engine:
        with pytest.raises(IndexOutOfBoundsError):
            await engine.segment("http://localhost:9222", "alpha", page_index=5)


@pytest.mark.asyncio
async def test_scroll_direction_is_validated_and_dispatched():
    async with PageSense(connector=FakeConnector()) as engine:
        with pytest.raises(ValueError):
            await engine.scroll("http://localhost:9222", "alpha", "sideways")
        outcome = await engine.scroll("http://localhost:9222", "alpha", "bottom")

    assert outcome.settled is True
    assert outcome.to_result()["reason"] == "reached_bottom"
