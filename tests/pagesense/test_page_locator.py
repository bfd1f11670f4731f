import pytest

from pagesense.browser.connection_pool import ConnectionHandle
from pagesense.browser.page_locator import PageLocator
from pagesense.config.pagesense_config import LocatorConfig
from pagesense.errors import IndexOutOfBoundsError, NoPageError


class FakePage:
    def __init__(self, url, focused=False, fail_focus=False):
        self.url = url
        self.focused = focused
        self.fail_focus = fail_focus
        self.viewports = []

    async def evaluate(self, expression, arg=None):
        if self.fail_focus:
            raise RuntimeError("Target closed")
        return self.focused

    async def set_viewport_size(self, viewport_size):
        self.viewports.append(viewport_size)


class FakeContext:
    def __init__(self, pages):
        self.pages = pages


class FakeBrowser:
    def __init__(self, *contexts):
        self.contexts = list(contexts)


def _handle(*pages):
    return ConnectionHandle(endpoint="http://localhost:9222", session_id="s", browser=FakeBrowser(FakeContext(list(pages))))


def _locator(**overrides):
    values = dict(attempts=2, retry_delay=0.0, blank_timeout=0.05, blank_poll_interval=0.001)
    values.update(overrides)
    return PageLocator(LocatorConfig(**values))


@pytest.mark.asyncio
async def test_current_returns_focused_page_and_applies_viewport():
    pages = [FakePage("https://a.test"), FakePage("https://b.test", focused=True)]
    page, index, total = await _locator().current(_handle(*pages))

    assert page is pages[1]
    assert (index, total) == (1, 2)
    assert pages[1].viewports == [{"width": 1280, "height": 720}]


@pytest.mark.asyncio
async def test_current_defaults_to_first_page_without_focus():
    pages = [FakePage("https://a.test"), FakePage("https://b.test")]
    page, index, total = await _locator().current(_handle(*pages))

    assert page is pages[0]
    assert index == 0


@pytest.mark.asyncio
async def test_current_spans_contexts():
    first = FakePage("https://a.test")
    second = FakePage("https://b.test", focused=True)
    handle = ConnectionHandle(
        endpoint="http://localhost:9222",
        session_id="s",
        browser=FakeBrowser(FakeContext([first]), FakeContext([second])),
    )
    page, index, total = await _locator().current(handle)

    assert page is second
    assert (index, total) == (1, 2)


@pytest.mark.asyncio
async def test_current_falls_back_when_focus_lookup_keeps_failing():
    pages = [FakePage("https://a.test", fail_focus=True), FakePage("https://b.test")]
    page, index, total = await _locator().current(_handle(*pages))

    assert page is pages[0]
    assert total == 2


@pytest.mark.asyncio
async def test_current_without_pages_raises():
    with pytest.raises(NoPageError):
        await _locator().current(_handle())


@pytest.mark.asyncio
async def test_viewport_can_be_disabled():
    page = FakePage("https://a.test", focused=True)
    await _locator(apply_viewport=False).current(_handle(page))
    assert page.viewports == []


@pytest.mark.asyncio
async def test_at_index_bounds():
    pages = [FakePage("https://a.test"), FakePage("https://b.test")]
    handle = _handle(*pages)
    locator = _locator()

    assert await locator.at_index(handle, None, 1) is pages[1]
    with pytest.raises(IndexOutOfBoundsError) as excinfo:
        await locator.at_index(handle, None, 2)
    assert excinfo.value.details == {"index": 2, "total_pages": 2}
    with pytest.raises(IndexOutOfBoundsError):
        await locator.at_index(handle, None, -1)


@pytest.mark.asyncio
async def test_wait_not_blank():
    assert await _locator().wait_not_blank(FakePage("https://a.test")) is True
    assert await _locator().wait_not_blank(FakePage("about:blank")) is False
