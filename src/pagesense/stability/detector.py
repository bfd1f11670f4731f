"""
Visual stability detection by iterative screenshot diffing.

A page is considered settled once several consecutive screenshot pairs differ
by less than a small share of pixels. Browser load events are not consulted;
pages that keep rendering after ``load`` fire are the common case.

Animated regions that would never settle (carousels, videos, large images and
background images) are masked with opaque canvases before sampling. The masks
are removed on every way out of ``wait_until_stable``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image

from pagesense.browser.logging_utils import _log_browser_event
from pagesense.browser.page_locator import PageLocator
from pagesense.browser.runtime_common import PageResolver, RemotePage
from pagesense.config.pagesense_config import StabilityConfig
from pagesense.errors import CaptureTimeout, DetectionCancelled, NavigationRace, is_navigation_race
from pagesense.models import StabilityOutcome, StabilityReason

from .imaging import blank_frame, decode_frame, diff_percent, white_percentage
from .overlay_script import BANNED_CLASSES, INSTALL_OVERLAYS_JS, OVERLAY_CLASS, REMOVE_OVERLAYS_JS

logger = logging.getLogger(__name__)

MIN_OVERLAY_IMAGE_WIDTH = 50


@dataclass
class _Attempt:
    """Mutable state of one pass through the detector."""

    page: RemotePage
    factor: float
    overlay_page: Optional[RemotePage] = None


class StabilityDetector:
    def __init__(
        self,
        config: Optional[StabilityConfig] = None,
        *,
        locator: Optional[PageLocator] = None,
    ) -> None:
        self._config = config or StabilityConfig()
        self._locator = locator or PageLocator()

    @property
    def config(self) -> StabilityConfig:
        return self._config

    async def capture(self, page: RemotePage, *, factor: float = 0.0, can_fail: bool = True) -> Image.Image:
        """
        Take a compressed, downscaled screenshot raced against the capture timeout.

        A timed-out capture is replaced by a black frame unless ``can_fail`` is
        False, in which case ``CaptureTimeout`` is raised.
        """
        cfg = self._config
        timeout = cfg.capture_timeout * (1.0 + factor)
        try:
            raw = await asyncio.wait_for(
                page.screenshot(type="jpeg", quality=int(cfg.screenshot_quality)),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            _log_browser_event(
                logger,
                level=logging.DEBUG,
                event="capture_timeout",
                timeout=timeout,
                can_fail=can_fail,
            )
            if not can_fail:
                raise CaptureTimeout(
                    f"Screenshot did not complete within {timeout:.2f}s",
                    details={"timeout": timeout},
                )
            return blank_frame()
        return decode_frame(raw, cfg.resize_ratio)

    async def install_overlays(self, page: RemotePage) -> int:
        count = await page.evaluate(
            INSTALL_OVERLAYS_JS,
            {
                "classes": list(BANNED_CLASSES),
                "overlayClass": OVERLAY_CLASS,
                "minImageWidth": MIN_OVERLAY_IMAGE_WIDTH,
            },
        )
        return int(count or 0)

    async def remove_overlays(self, page: RemotePage) -> None:
        try:
            await page.evaluate(REMOVE_OVERLAYS_JS, OVERLAY_CLASS)
        except Exception as exc:
            # The document the overlays lived in may already be gone.
            _log_browser_event(
                logger,
                level=logging.DEBUG,
                event="overlay_remove_failed",
                reason=str(exc),
            )

    @staticmethod
    def _check_cancel(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise DetectionCancelled("Stability detection cancelled")

    async def _sleep(self, seconds: float, cancel_event: Optional[asyncio.Event]) -> None:
        self._check_cancel(cancel_event)
        if seconds > 0:
            await asyncio.sleep(seconds)
        self._check_cancel(cancel_event)

    async def _baseline(
        self,
        state: _Attempt,
        page_resolver: Optional[PageResolver],
        cancel_event: Optional[asyncio.Event],
    ) -> Image.Image:
        cfg = self._config
        baseline = await self.capture(state.page, factor=state.factor, can_fail=False)
        remaining = int(cfg.white_attempts)
        while True:
            remaining -= 1
            white = white_percentage(baseline)
            if white <= cfg.white_threshold or remaining <= 0:
                return baseline
            _log_browser_event(
                logger,
                level=logging.DEBUG,
                event="baseline_white",
                white_percent=white,
                remaining=remaining,
            )
            await self._sleep(cfg.white_retry_delay, cancel_event)
            if page_resolver is not None:
                state.page = await page_resolver()
            baseline = await self.capture(state.page, factor=state.factor)

    async def _diff_loop(
        self,
        state: _Attempt,
        baseline: Image.Image,
        cancel_event: Optional[asyncio.Event],
    ) -> StabilityOutcome:
        cfg = self._config
        budget = float(cfg.timeout)
        failed_rounds = 0
        comparisons_total = 0
        last = baseline
        exhausted_by = StabilityReason.MAX_ATTEMPTS_EXCEEDED
        settled = False

        while True:
            if budget <= 0:
                exhausted_by = StabilityReason.TIMEOUT
                break
            previous = await self.capture(state.page, factor=state.factor)
            await self._sleep(cfg.pull_duration, cancel_event)
            quiet = 0
            comparisons = 0
            while True:
                current = await self.capture(state.page, factor=state.factor)
                await self._sleep(cfg.pull_duration, cancel_event)
                change = diff_percent(previous, current, cfg.pixel_threshold)
                comparisons += 1
                comparisons_total += 1
                previous = current
                last = current
                if change <= cfg.change_threshold:
                    quiet += 1
                    if quiet >= cfg.stable_samples:
                        settled = True
                        break
                else:
                    quiet = 0
                budget -= cfg.pull_duration
                if comparisons >= cfg.max_comparisons or budget <= 0:
                    break
            if settled:
                break
            failed_rounds += 1
            _log_browser_event(
                logger,
                level=logging.DEBUG,
                event="still_changing",
                round=failed_rounds,
                budget=budget,
            )
            if failed_rounds >= cfg.outer_attempts:
                break

        net_change = diff_percent(baseline, last, cfg.pixel_threshold)
        reason = StabilityReason.CHANGED if net_change > cfg.change_threshold else StabilityReason.UNCHANGED
        outcome = StabilityOutcome(
            settled=settled,
            reason=reason,
            sample_diff_percent=net_change,
            attempts=comparisons_total,
        )
        if not settled:
            outcome.exhausted_by = exhausted_by
        return outcome

    async def wait_until_stable(
        self,
        page: RemotePage,
        *,
        page_resolver: Optional[PageResolver] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StabilityOutcome:
        """
        Block until the page stops changing visually or the budgets run out.

        Args:
            page: The page to watch.
            page_resolver: Re-resolves the page while the baseline is still a
                blank white render (the tab may have been replaced).
            cancel_event: When set, the detector removes its overlays and
                raises ``DetectionCancelled`` at the next poll.

        Returns:
            StabilityOutcome with ``settled`` and ``changed``/``unchanged``.

        Raises:
            NavigationRace: The page navigated away on every attempt.
        """
        cfg = self._config
        attempts = max(1, int(cfg.navigation_attempts))
        factor = 0.0
        current_page = page
        for attempt in range(1, attempts + 1):
            state = _Attempt(page=current_page, factor=factor)
            try:
                self._check_cancel(cancel_event)
                await self._locator.wait_not_blank(state.page)
                if cfg.use_overlays:
                    state.overlay_page = state.page
                    await self.install_overlays(state.page)
                baseline = await self._baseline(state, page_resolver, cancel_event)
                outcome = await self._diff_loop(state, baseline, cancel_event)
                _log_browser_event(
                    logger,
                    level=logging.INFO,
                    event="stability_result",
                    settled=outcome.settled,
                    reason=outcome.reason.value,
                    diff=outcome.sample_diff_percent,
                    attempt=attempt,
                )
                return outcome
            except CaptureTimeout as exc:
                last_error: BaseException = exc
            except Exception as exc:
                if not is_navigation_race(exc):
                    raise
                last_error = exc
            finally:
                if state.overlay_page is not None:
                    await self.remove_overlays(state.overlay_page)
                current_page = state.page

            factor += cfg.factor_step
            _log_browser_event(
                logger,
                level=logging.WARNING,
                event="stability_retry",
                attempt=attempt,
                attempts=attempts,
                factor=factor,
                reason=str(last_error),
            )
            if attempt < attempts:
                await self._sleep(cfg.navigation_retry_delay, cancel_event)

        if isinstance(last_error, CaptureTimeout):
            return StabilityOutcome(
                settled=False,
                reason=StabilityReason.TIMEOUT,
                attempts=attempts,
                exhausted_by=StabilityReason.TIMEOUT,
            )
        raise NavigationRace(
            "Execution context was destroyed, most likely because of a navigation.",
            details={"attempts": attempts},
        ) from last_error
