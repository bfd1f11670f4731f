"""
Viewport segmentation into labelled leaf elements.

The traversal runs in the page (see ``segmenter_script``) and returns one
fact record per captured element. Everything else happens here:
classification, text normalization, the region filter and identity paths
for look-alike elements.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pagesense.browser.logging_utils import _log_browser_event
from pagesense.browser.runtime_common import RemotePage, _coerce_bool, _safe_text
from pagesense.config.pagesense_config import SegmenterConfig
from pagesense.errors import CaptureTimeout, ClassificationError, DetectionCancelled
from pagesense.models import BoundingBox, ScrollContainer, Segment
from pagesense.perception.labels import classify, is_button

from .segmenter_script import (
    FULL_PAGE_REGION_JS,
    PREPARE_FULL_PAGE_JS,
    RESTORE_FULL_PAGE_JS,
    SCROLL_TO_ORIGIN_JS,
    SEGMENT_PAGE_JS,
    VIEWPORT_REGION_JS,
    segment_args,
)

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_COMPACT_PREFIXES = ("https://www.", "https://")


def collapse_text(text: Any) -> str:
    return _WHITESPACE_RE.sub(" ", _safe_text(text)).strip()


def strip_scheme(url: Optional[str]) -> Optional[str]:
    """``https://www.host/x`` and ``https://host/x`` both become ``host/x``."""
    if url is None:
        return None
    text = str(url)
    for prefix in _COMPACT_PREFIXES:
        if text.startswith(prefix):
            return text[len(prefix):]
    return text


def describe(facts: Mapping[str, Any]) -> str:
    for key in ("ariaLabel", "alt", "role"):
        value = _safe_text(facts.get(key)).strip()
        if value:
            return value
    return ""


def _classify(facts: Mapping[str, Any]):
    try:
        return classify(facts)
    except Exception as exc:
        raise ClassificationError(
            f"Could not classify <{_safe_text(facts.get('tag')).lower()}>",
            details={"reason": str(exc)},
        ) from exc


def _default_segment(index: int, facts: Mapping[str, Any]) -> Segment:
    try:
        box = BoundingBox.from_dict(facts.get("box"))
    except (TypeError, ValueError, AttributeError):
        box = BoundingBox()
    return Segment(index=index, tag=_safe_text(facts.get("tag")).upper(), label="", box=box)


def build_segment(index: int, facts: Mapping[str, Any]) -> Segment:
    """Turn one in-page fact record into a ``Segment``; broken records get defaults."""
    if facts.get("error"):
        _log_browser_event(
            logger,
            level=logging.DEBUG,
            event="facts_error",
            index=index,
            reason=facts.get("error"),
        )
        return _default_segment(index, facts)
    try:
        label = _classify(facts)
    except ClassificationError as exc:
        _log_browser_event(
            logger,
            level=logging.DEBUG,
            event="classification_failed",
            index=index,
            reason=exc.details.get("reason"),
        )
        return _default_segment(index, facts)

    tag = _safe_text(facts.get("tag")).upper()
    input_type = _safe_text(facts.get("type")) if tag == "INPUT" else ""
    text = collapse_text(facts.get("text"))
    if not text and tag == "INPUT" and input_type.lower() == "submit":
        text = collapse_text(facts.get("value"))

    href = facts.get("href") if tag == "A" and facts.get("href") else None
    src = None
    if tag == "IMG" or (tag == "INPUT" and facts.get("src")):
        src = facts.get("src")

    offset = facts.get("iframeOffset") or {}
    container = facts.get("scrollContainer")
    return Segment(
        index=index,
        tag="BUTTON" if is_button(facts) else tag,
        label=label,
        box=BoundingBox.from_dict(facts.get("box")),
        text=text,
        description=describe(facts),
        clickable=_coerce_bool(facts.get("clickable")),
        triggerable=_coerce_bool(facts.get("triggerable")),
        input_type=input_type,
        href=strip_scheme(href),
        src=strip_scheme(src),
        select_options=list(facts.get("options") or []) if tag == "SELECT" else None,
        placeholder=facts.get("placeholder") if tag == "INPUT" else None,
        value=facts.get("value") if tag in {"INPUT", "TEXTAREA"} else None,
        is_in_iframe=_coerce_bool(facts.get("inIframe")),
        iframe_offset=(float(offset.get("x") or 0), float(offset.get("y") or 0)),
        scroll_container=int(container) if container is not None else None,
        element_id=_safe_text(facts.get("id")),
        class_name=_safe_text(facts.get("className")),
    )


def _dotted(class_name: str) -> str:
    return ".".join(class_name.split())


def identity_key(facts: Mapping[str, Any]) -> Tuple[str, ...]:
    identity = facts.get("identity") or {}
    return tuple(
        _safe_text(identity.get(name))
        for name in ("id", "text", "image", "link", "className", "tag")
    )


def identity_path(facts: Mapping[str, Any]) -> Tuple[str, str]:
    """Id and class paths ``grandparent_parent_self`` for an element."""
    ids: List[str] = []
    classes: List[str] = []
    for ancestor in facts.get("ancestry") or []:
        tag = _safe_text(ancestor.get("tag")) or "div"
        ids.append(_safe_text(ancestor.get("id")) or tag)
        classes.append(_dotted(_safe_text(ancestor.get("className"))) or tag)
    tag = _safe_text(facts.get("tag")).lower() or "div"
    ids.append(_safe_text(facts.get("id")) or tag)
    classes.append(_dotted(_safe_text(facts.get("className"))) or tag)
    return "_".join(ids), "_".join(classes)


def assign_identity_paths(pairs: Sequence[Tuple[Segment, Mapping[str, Any]]]) -> None:
    groups: Dict[Tuple[str, ...], List[Tuple[Segment, Mapping[str, Any]]]] = {}
    for segment, facts in pairs:
        if facts.get("error"):
            continue
        groups.setdefault(identity_key(facts), []).append((segment, facts))
    for members in groups.values():
        if len(members) < 2:
            continue
        for segment, facts in members:
            segment.identity_path = identity_path(facts)


def build_segments(records: Iterable[Mapping[str, Any]]) -> List[Segment]:
    pairs = [(build_segment(index, facts), facts) for index, facts in enumerate(records)]
    assign_identity_paths(pairs)
    return [segment for segment, _ in pairs]


def filter_to_region(segments: Iterable[Segment], region: Optional[BoundingBox]) -> List[Segment]:
    if region is None:
        return list(segments)
    return [segment for segment in segments if region.contains(segment.box)]


@dataclass
class PageSegmentation:
    segments: List[Segment] = field(default_factory=list)
    scroll_containers: List[ScrollContainer] = field(default_factory=list)
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": [segment.to_dict() for segment in self.segments],
            "scrollContainers": [container.to_dict() for container in self.scroll_containers],
            "truncated": self.truncated,
        }


class Segmenter:
    def __init__(self, config: Optional[SegmenterConfig] = None) -> None:
        self._config = config or SegmenterConfig()

    @property
    def config(self) -> SegmenterConfig:
        return self._config

    async def _evaluate(self, page: RemotePage, script: str, arg: Any = None) -> Any:
        cfg = self._config
        attempts = max(1, int(cfg.evaluate_attempts))
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(page.evaluate(script, arg), timeout=cfg.evaluate_timeout)
            except asyncio.TimeoutError:
                _log_browser_event(
                    logger,
                    level=logging.WARNING,
                    event="segment_evaluate_timeout",
                    attempt=attempt,
                    attempts=attempts,
                    timeout=cfg.evaluate_timeout,
                )
        raise CaptureTimeout(
            f"Page evaluation did not finish within {cfg.evaluate_timeout:.1f}s",
            details={"attempts": attempts},
        )

    async def viewport_region(self, page: RemotePage) -> BoundingBox:
        return BoundingBox.from_dict(await self._evaluate(page, VIEWPORT_REGION_JS))

    async def full_page_region(self, page: RemotePage) -> BoundingBox:
        return BoundingBox.from_dict(await self._evaluate(page, FULL_PAGE_REGION_JS))

    @asynccontextmanager
    async def full_page_viewport(self, page: RemotePage) -> AsyncIterator[Dict[str, int]]:
        """
        Stretch the viewport over the whole page for the duration of the block.

        Hit testing only sees what is on screen, so the page scrollbar is hidden,
        the viewport grows to the document height (capped) and the page is
        scrolled to its origin. The previous viewport, overflow and scroll
        position are restored on exit.
        """
        cfg = self._config
        state = await self._evaluate(page, PREPARE_FULL_PAGE_JS)
        if not isinstance(state, dict):
            state = {}
        saved = getattr(page, "viewport_size", None) or {
            "width": int(state.get("width") or 0),
            "height": int(state.get("height") or 0),
        }
        stretched = {
            "width": int(state.get("width") or saved.get("width") or 0),
            "height": max(1, min(int(state.get("scrollHeight") or 0), int(cfg.full_page_max_height))),
        }
        try:
            await page.set_viewport_size(stretched)
            _log_browser_event(
                logger,
                level=logging.DEBUG,
                event="full_page_viewport",
                width=stretched["width"],
                height=stretched["height"],
                page_height=state.get("scrollHeight"),
            )
            if cfg.full_page_settle_delay > 0:
                await asyncio.sleep(cfg.full_page_settle_delay)
            await self._evaluate(page, SCROLL_TO_ORIGIN_JS)
            yield stretched
        finally:
            try:
                if saved.get("width") and saved.get("height"):
                    await page.set_viewport_size({"width": int(saved["width"]), "height": int(saved["height"])})
                await page.evaluate(RESTORE_FULL_PAGE_JS, state)
            except Exception as exc:
                _log_browser_event(
                    logger,
                    level=logging.WARNING,
                    event="full_page_restore_failed",
                    reason=str(exc),
                )

    async def segment_full_page(self, page: RemotePage, *, wait_loaded: bool = True) -> PageSegmentation:
        """Segment the whole document, not just what the viewport shows."""
        async with self.full_page_viewport(page):
            region = await self.full_page_region(page)
            if wait_loaded:
                return await self.segment_when_loaded(page, region)
            return await self.segment_page(page, region)

    async def segment_page(self, page: RemotePage, region: Optional[BoundingBox] = None) -> PageSegmentation:
        raw = await self._evaluate(page, SEGMENT_PAGE_JS, segment_args(self._config.max_iterations)) or {}
        truncated = _coerce_bool(raw.get("truncated"))
        if truncated:
            _log_browser_event(
                logger,
                level=logging.WARNING,
                event="segment_truncated",
                iterations=raw.get("iterations"),
            )
        segments = filter_to_region(build_segments(raw.get("elements") or []), region)
        containers = [ScrollContainer.from_dict(item) for item in raw.get("scrollContainers") or []]
        _log_browser_event(
            logger,
            level=logging.DEBUG,
            event="segmented",
            captured=len(raw.get("elements") or []),
            kept=len(segments),
            containers=len(containers),
        )
        return PageSegmentation(segments=segments, scroll_containers=containers, truncated=truncated)

    async def segment(self, page: RemotePage, region: Optional[BoundingBox] = None) -> List[Segment]:
        """Return the labelled leaf segments whose boxes lie inside ``region``."""
        return (await self.segment_page(page, region)).segments

    def looks_like_loading(self, segments: Sequence[Segment]) -> bool:
        if len(segments) <= 1:
            return True
        texts = [segment.text.lower() for segment in segments if segment.text]
        if not texts:
            return False
        words = self._config.loading_words
        loading = sum(1 for text in texts if any(word in text for word in words))
        return loading / len(texts) > self._config.loading_ratio

    async def segment_when_loaded(
        self,
        page: RemotePage,
        region: Optional[BoundingBox] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PageSegmentation:
        """Segment, re-segmenting while the page still shows a loading screen."""
        cfg = self._config
        deadline = time.monotonic() + cfg.loading_timeout
        result = await self.segment_page(page, region)
        while self.looks_like_loading(result.segments) and time.monotonic() < deadline:
            if cancel_event is not None and cancel_event.is_set():
                raise DetectionCancelled("Segmentation cancelled")
            _log_browser_event(
                logger,
                level=logging.DEBUG,
                event="loading_screen",
                segments=len(result.segments),
            )
            await asyncio.sleep(cfg.loading_poll_interval)
            result = await self.segment_page(page, region)
        return result
