"""Shared constants, protocols, and helpers for the remote browser boundary."""

from __future__ import annotations

import os
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence


DEFAULT_VIEWPORT_WIDTH = 1280
DEFAULT_VIEWPORT_HEIGHT = 720
DEFAULT_CONNECT_TIMEOUT_SECS = 10.0
DEFAULT_CONNECT_ATTEMPTS = 3
DEFAULT_CONNECT_RETRY_DELAY_SECS = 1.0
DEFAULT_IDLE_TTL_SECS = 30 * 60
DEFAULT_SWEEP_INTERVAL_SECS = 5 * 60
BLANK_PAGE_URLS = frozenset({"", "about:blank", "chrome://newtab/", "about:newtab"})


class RemoteMouse(Protocol):
    async def move(self, x: float, y: float, *, steps: int = 1) -> None: ...

    async def wheel(self, delta_x: float, delta_y: float) -> None: ...


class RemotePage(Protocol):
    """The page capabilities the core consumes; a Playwright ``Page`` fits."""

    url: str
    mouse: RemoteMouse
    viewport_size: Optional[Dict[str, int]]

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def screenshot(self, **kwargs: Any) -> bytes: ...

    async def set_viewport_size(self, viewport_size: Dict[str, int]) -> None: ...


class RemoteBrowser(Protocol):
    """The browser capabilities the core consumes; a Playwright ``Browser`` fits."""

    contexts: Sequence[Any]

    def is_connected(self) -> bool: ...

    def on(self, event: str, f: Callable[..., Any]) -> None: ...

    def remove_listener(self, event: str, f: Callable[..., Any]) -> None: ...

    async def close(self) -> None: ...


class BrowserConnector(Protocol):
    async def connect(self, endpoint: str, session_id: str) -> RemoteBrowser: ...

    async def ping(self, browser: RemoteBrowser) -> str: ...


PageResolver = Callable[[], Awaitable[RemotePage]]


def _safe_text(value: Any) -> str:
    try:
        return str(value) if value is not None else ""
    except Exception:
        return ""


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = _safe_text(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off", ""}:
        return False
    return bool(value)


def _coerce_float(value: Any, default: float = 0.0) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if parsed != parsed:  # NaN guard
        return default
    return parsed


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    text = raw.strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int_env(name: str, default: int, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return max(minimum, int(default))
    try:
        parsed = int(raw.strip())
    except Exception:
        return max(minimum, int(default))
    return max(minimum, parsed)


def _parse_float_env(name: str, default: float, minimum: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return max(minimum, float(default))
    try:
        parsed = float(raw.strip())
    except Exception:
        return max(minimum, float(default))
    return max(minimum, parsed)


def _list_pages(browser: Any) -> List[Any]:
    pages: List[Any] = []
    for context in list(getattr(browser, "contexts", None) or []):
        pages.extend(list(getattr(context, "pages", None) or []))
    return pages


def _is_blank_url(url: Any) -> bool:
    return _safe_text(url).strip().lower() in BLANK_PAGE_URLS
