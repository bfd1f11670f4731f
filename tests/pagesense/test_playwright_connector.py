import pytest

from pagesense.browser.playwright_connector import PlaywrightConnector


class FakeChromium:
    def __init__(self):
        self.targets = []

    async def connect_over_cdp(self, target):
        self.targets.append(target)
        return {"target": target}


class FakePlaywright:
    def __init__(self):
        self.chromium = FakeChromium()
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeCDPSession:
    def __init__(self):
        self.detached = False

    async def send(self, method):
        assert method == "Browser.getVersion"
        return {"product": "HeadlessChrome/120.0"}

    async def detach(self):
        self.detached = True


class FakeBrowser:
    def __init__(self):
        self.session = FakeCDPSession()

    async def new_browser_cdp_session(self):
        return self.session


def _connector():
    connector = PlaywrightConnector()
    connector._playwright = FakePlaywright()
    return connector


def test_container_hosts_match_patterns():
    connector = PlaywrightConnector()
    assert connector.is_container_host("http://browser-17:9222")
    assert connector.is_container_host("http://node.browsers.internal:9222")
    assert not connector.is_container_host("http://localhost:9222")


@pytest.mark.asyncio
async def test_connect_routes_by_endpoint_kind(monkeypatch):
    connector = _connector()

    async def _lookup(endpoint):
        return "ws://browser-17:9222/devtools/browser/abc"

    monkeypatch.setattr(connector, "resolve_ws_endpoint", _lookup)

    await connector.connect("ws://remote:9222/devtools/browser/xyz", "s")
    await connector.connect("http://browser-17:9222", "s")
    await connector.connect("http://localhost:9222", "s")

    assert connector._playwright.chromium.targets == [
        "ws://remote:9222/devtools/browser/xyz",
        "ws://browser-17:9222/devtools/browser/abc",
        "http://localhost:9222",
    ]


@pytest.mark.asyncio
async def test_ping_reports_product_and_detaches():
    browser = FakeBrowser()
    assert await _connector().ping(browser) == "HeadlessChrome/120.0"
    assert browser.session.detached


@pytest.mark.asyncio
async def test_stop_releases_playwright():
    connector = _connector()
    playwright = connector._playwright
    await connector.stop()
    await connector.stop()
    assert playwright.stopped
