"""Scroll-based settle variants: scroll to top, to bottom, or one viewport down."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from pagesense.browser.logging_utils import _log_browser_event
from pagesense.browser.runtime_common import RemotePage, _coerce_float
from pagesense.config.pagesense_config import ScrollConfig
from pagesense.errors import DetectionCancelled
from pagesense.models import StabilityOutcome, StabilityReason

from .scroll_script import SCROLL_METRICS_JS, SCROLL_TECHNIQUES_JS

logger = logging.getLogger(__name__)

TECHNIQUES = ("window", "document_element", "body", "mouse_wheel")


@dataclass(frozen=True)
class ScrollMetrics:
    scroll_y: float
    height: float
    inner_height: float

    @property
    def at_bottom(self) -> bool:
        return self.scroll_y + self.inner_height >= self.height - 1


class ScrollSettler:
    def __init__(self, config: Optional[ScrollConfig] = None) -> None:
        self._config = config or ScrollConfig()

    @property
    def config(self) -> ScrollConfig:
        return self._config

    async def metrics(self, page: RemotePage) -> ScrollMetrics:
        raw = await page.evaluate(SCROLL_METRICS_JS) or {}
        return ScrollMetrics(
            scroll_y=_coerce_float(raw.get("scrollY")),
            height=_coerce_float(raw.get("scrollHeight")),
            inner_height=_coerce_float(raw.get("innerHeight")),
        )

    async def _apply(
        self,
        page: RemotePage,
        technique: str,
        before: ScrollMetrics,
        *,
        target: Optional[float],
        delta: Optional[float],
    ) -> None:
        if technique == "mouse_wheel":
            step = delta if delta is not None else float(target or 0) - before.scroll_y
            await page.mouse.move(self._config.wheel_x, self._config.wheel_y)
            await page.mouse.wheel(0, step)
            return
        await page.evaluate(SCROLL_TECHNIQUES_JS[technique], {"target": target, "delta": delta})

    async def _scroll_once(
        self,
        page: RemotePage,
        *,
        target: Optional[float] = None,
        delta: Optional[float] = None,
    ) -> Tuple[Optional[str], ScrollMetrics]:
        """Try each technique in turn until one moves the page."""
        before = await self.metrics(page)
        after = before
        for technique in TECHNIQUES:
            await self._apply(page, technique, before, target=target, delta=delta)
            after = await self.metrics(page)
            if after.scroll_y != before.scroll_y:
                return technique, after
        return None, after

    @staticmethod
    def _check_cancel(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise DetectionCancelled("Scroll settle cancelled")

    async def _pause(self, cancel_event: Optional[asyncio.Event]) -> None:
        self._check_cancel(cancel_event)
        if self._config.settle_delay > 0:
            await asyncio.sleep(self._config.settle_delay)
        self._check_cancel(cancel_event)

    def _outcome(
        self,
        direction: str,
        *,
        settled: bool,
        reason: StabilityReason,
        initial: ScrollMetrics,
        final: ScrollMetrics,
        technique: Optional[str],
        attempts: int,
    ) -> StabilityOutcome:
        info: Dict[str, Any] = {
            "direction": direction,
            "initial_scroll_y": initial.scroll_y,
            "final_scroll_y": final.scroll_y,
            "initial_height": initial.height,
            "final_height": final.height,
            "technique": technique,
            "attempts": attempts,
        }
        _log_browser_event(
            logger,
            level=logging.INFO,
            event="scroll_settle",
            direction=direction,
            settled=settled,
            reason=reason.value,
            technique=technique,
            attempts=attempts,
        )
        return StabilityOutcome(
            settled=settled,
            reason=reason,
            attempts=attempts,
            scroll_info=info,
        )

    async def scroll_top(
        self,
        page: RemotePage,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StabilityOutcome:
        initial = await self.metrics(page)
        if initial.scroll_y <= 0:
            return self._outcome(
                "top", settled=True, reason=StabilityReason.UNCHANGED,
                initial=initial, final=initial, technique=None, attempts=0,
            )
        deadline = time.monotonic() + self._config.timeout
        current = initial
        technique: Optional[str] = None
        attempt = 0
        for attempt in range(1, self._config.attempts + 1):
            if time.monotonic() >= deadline:
                return self._outcome(
                    "top", settled=False, reason=StabilityReason.TIMEOUT,
                    initial=initial, final=current, technique=technique, attempts=attempt - 1,
                )
            used, _ = await self._scroll_once(page, target=0)
            technique = used or technique
            await self._pause(cancel_event)
            current = await self.metrics(page)
            if current.scroll_y <= 0:
                return self._outcome(
                    "top", settled=True, reason=StabilityReason.CHANGED,
                    initial=initial, final=current, technique=technique, attempts=attempt,
                )
        return self._outcome(
            "top", settled=False, reason=StabilityReason.MAX_ATTEMPTS_EXCEEDED,
            initial=initial, final=current, technique=technique, attempts=attempt,
        )

    async def scroll_next(
        self,
        page: RemotePage,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StabilityOutcome:
        initial = await self.metrics(page)
        if initial.at_bottom:
            return self._outcome(
                "next", settled=True, reason=StabilityReason.REACHED_BOTTOM,
                initial=initial, final=initial, technique=None, attempts=0,
            )
        deadline = time.monotonic() + self._config.timeout
        current = initial
        technique: Optional[str] = None
        attempt = 0
        for attempt in range(1, self._config.attempts + 1):
            if time.monotonic() >= deadline:
                return self._outcome(
                    "next", settled=False, reason=StabilityReason.TIMEOUT,
                    initial=initial, final=current, technique=technique, attempts=attempt - 1,
                )
            used, _ = await self._scroll_once(page, delta=max(1.0, initial.inner_height))
            technique = used or technique
            await self._pause(cancel_event)
            current = await self.metrics(page)
            if current.scroll_y > initial.scroll_y:
                return self._outcome(
                    "next", settled=True, reason=StabilityReason.CHANGED,
                    initial=initial, final=current, technique=technique, attempts=attempt,
                )
        reason = StabilityReason.REACHED_BOTTOM if current.at_bottom else StabilityReason.MAX_ATTEMPTS_EXCEEDED
        return self._outcome(
            "next", settled=current.at_bottom, reason=reason,
            initial=initial, final=current, technique=technique, attempts=attempt,
        )

    async def scroll_bottom(
        self,
        page: RemotePage,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StabilityOutcome:
        """
        Scroll until the bottom edge is visible.

        Height that grows by more than ``growth_delta`` on two consecutive
        attempts reports ``height_growing_too_fast``; height that grows on
        every attempt without the bottom ever being reached reports
        ``infinite_scroll_detected``.
        """
        cfg = self._config
        initial = await self.metrics(page)
        if initial.at_bottom:
            return self._outcome(
                "bottom", settled=True, reason=StabilityReason.REACHED_BOTTOM,
                initial=initial, final=initial, technique=None, attempts=0,
            )
        deadline = time.monotonic() + cfg.timeout
        previous = initial
        technique: Optional[str] = None
        fast_growth_streak = 0
        grew_every_attempt = True
        attempt = 0
        for attempt in range(1, cfg.attempts + 1):
            if time.monotonic() >= deadline:
                return self._outcome(
                    "bottom", settled=False, reason=StabilityReason.TIMEOUT,
                    initial=initial, final=previous, technique=technique, attempts=attempt - 1,
                )
            used, _ = await self._scroll_once(page, target=previous.height)
            technique = used or technique
            await self._pause(cancel_event)
            current = await self.metrics(page)
            growth = current.height - previous.height
            fast_growth_streak = fast_growth_streak + 1 if growth > cfg.growth_delta else 0
            if growth <= 0:
                grew_every_attempt = False
            if fast_growth_streak >= 2:
                return self._outcome(
                    "bottom", settled=False, reason=StabilityReason.HEIGHT_GROWING_TOO_FAST,
                    initial=initial, final=current, technique=technique, attempts=attempt,
                )
            if current.at_bottom:
                return self._outcome(
                    "bottom", settled=True, reason=StabilityReason.REACHED_BOTTOM,
                    initial=initial, final=current, technique=technique, attempts=attempt,
                )
            previous = current
        reason = (
            StabilityReason.INFINITE_SCROLL_DETECTED
            if grew_every_attempt
            else StabilityReason.MAX_ATTEMPTS_EXCEEDED
        )
        return self._outcome(
            "bottom", settled=False, reason=reason,
            initial=initial, final=previous, technique=technique, attempts=attempt,
        )
