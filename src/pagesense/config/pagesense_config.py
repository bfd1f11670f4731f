"""
Configuration sections for the connection pool, page locator, stability
detector, scroll settler and segmenter.

Each section is a dataclass with a ``from_dict`` constructor that tolerates
missing or malformed keys, and ``PageSenseConfig.from_env`` layers the
``PAGESENSE_*`` environment variables on top of the defaults.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pagesense.browser.runtime_common import (
    DEFAULT_CONNECT_ATTEMPTS,
    DEFAULT_CONNECT_RETRY_DELAY_SECS,
    DEFAULT_CONNECT_TIMEOUT_SECS,
    DEFAULT_IDLE_TTL_SECS,
    DEFAULT_SWEEP_INTERVAL_SECS,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
    _coerce_bool,
    _parse_bool_env,
    _parse_float_env,
    _parse_int_env,
)
from pagesense.util.file_utils import from_json_or_yaml


def _pick_float(data: Dict[str, Any], key: str, default: float, minimum: float = 0.0) -> float:
    try:
        return max(minimum, float(data.get(key, default)))
    except (TypeError, ValueError):
        return default


def _pick_int(data: Dict[str, Any], key: str, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(data.get(key, default)))
    except (TypeError, ValueError):
        return default


@dataclass
class PoolConfig:
    idle_ttl: float = field(
        default=float(DEFAULT_IDLE_TTL_SECS),
        metadata={"help": "Seconds a pooled connection may stay idle before the sweep closes it."},
    )
    sweep_interval: float = field(
        default=float(DEFAULT_SWEEP_INTERVAL_SECS),
        metadata={"help": "Seconds between background sweeps of idle connections."},
    )
    connect_timeout: float = field(
        default=DEFAULT_CONNECT_TIMEOUT_SECS,
        metadata={"help": "Seconds allowed for one connect attempt."},
    )
    connect_attempts: int = field(
        default=DEFAULT_CONNECT_ATTEMPTS,
        metadata={"help": "Connect attempts before giving up."},
    )
    retry_delay: float = field(
        default=DEFAULT_CONNECT_RETRY_DELAY_SECS,
        metadata={"help": "Fixed delay between connect attempts."},
    )
    container_host_patterns: List[str] = field(
        default_factory=lambda: [r"^browser-[\w-]+$", r"\.browsers\.internal$"],
        metadata={"help": "Hostname regexes served through a WebSocket debugger endpoint."},
    )
    lookup_timeout: float = field(
        default=5.0,
        metadata={"help": "Seconds allowed for the WebSocket endpoint lookup request."},
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolConfig":
        if not isinstance(data, dict):
            return cls()
        defaults = cls()
        patterns = data.get("container_host_patterns")
        return cls(
            idle_ttl=_pick_float(data, "idle_ttl", defaults.idle_ttl, 1.0),
            sweep_interval=_pick_float(data, "sweep_interval", defaults.sweep_interval, 1.0),
            connect_timeout=_pick_float(data, "connect_timeout", defaults.connect_timeout, 0.1),
            connect_attempts=_pick_int(data, "connect_attempts", defaults.connect_attempts, 1),
            retry_delay=_pick_float(data, "retry_delay", defaults.retry_delay),
            container_host_patterns=(
                [str(item) for item in patterns]
                if isinstance(patterns, list)
                else defaults.container_host_patterns
            ),
            lookup_timeout=_pick_float(data, "lookup_timeout", defaults.lookup_timeout, 0.1),
        )


@dataclass
class LocatorConfig:
    viewport_width: int = field(default=DEFAULT_VIEWPORT_WIDTH, metadata={"help": "Viewport width applied to resolved pages."})
    viewport_height: int = field(default=DEFAULT_VIEWPORT_HEIGHT, metadata={"help": "Viewport height applied to resolved pages."})
    apply_viewport: bool = field(default=True, metadata={"help": "Whether resolving a page resizes its viewport."})
    attempts: int = field(default=3, metadata={"help": "Page resolution attempts."})
    retry_delay: float = field(default=0.5, metadata={"help": "Delay between page resolution attempts."})
    blank_timeout: float = field(default=5.0, metadata={"help": "Seconds to wait for a blank page to navigate."})
    blank_poll_interval: float = field(default=0.1, metadata={"help": "Blank page poll interval."})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocatorConfig":
        if not isinstance(data, dict):
            return cls()
        defaults = cls()
        return cls(
            viewport_width=_pick_int(data, "viewport_width", defaults.viewport_width, 1),
            viewport_height=_pick_int(data, "viewport_height", defaults.viewport_height, 1),
            apply_viewport=_coerce_bool(data.get("apply_viewport", defaults.apply_viewport)),
            attempts=_pick_int(data, "attempts", defaults.attempts, 1),
            retry_delay=_pick_float(data, "retry_delay", defaults.retry_delay),
            blank_timeout=_pick_float(data, "blank_timeout", defaults.blank_timeout),
            blank_poll_interval=_pick_float(data, "blank_poll_interval", defaults.blank_poll_interval, 0.001),
        )


@dataclass
class StabilityConfig:
    pull_duration: float = field(default=0.1, metadata={"help": "Seconds between the two screenshots of a comparison."})
    timeout: float = field(default=10.0, metadata={"help": "Overall diff loop budget in seconds."})
    capture_timeout: float = field(default=1.0, metadata={"help": "Base screenshot timeout, scaled by the retry factor."})
    change_threshold: float = field(default=1.0, metadata={"help": "Percent of mismatched pixels counted as a change."})
    pixel_threshold: float = field(default=0.1, metadata={"help": "Per-pixel colour distance tolerance (0..1)."})
    stable_samples: int = field(default=3, metadata={"help": "Consecutive quiet comparisons that end the inner loop."})
    max_comparisons: int = field(default=5, metadata={"help": "Comparisons per inner loop."})
    outer_attempts: int = field(default=2, metadata={"help": "Still-changing outer attempts before giving up."})
    white_threshold: float = field(default=98.0, metadata={"help": "Percent of pure white pixels treated as a blank render."})
    white_attempts: int = field(default=10, metadata={"help": "Baseline retakes while the page is still white."})
    white_retry_delay: float = field(default=1.0, metadata={"help": "Delay between white baseline retakes."})
    navigation_attempts: int = field(default=2, metadata={"help": "Restarts after the page navigated mid-measurement."})
    navigation_retry_delay: float = field(default=0.2, metadata={"help": "Delay before restarting after a navigation."})
    factor_step: float = field(default=0.25, metadata={"help": "Capture timeout factor increment per restart."})
    screenshot_quality: int = field(default=50, metadata={"help": "JPEG quality of comparison screenshots."})
    resize_ratio: float = field(default=0.5, metadata={"help": "Scale applied to comparison screenshots."})
    use_overlays: bool = field(default=True, metadata={"help": "Cover carousels, videos and images before diffing."})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StabilityConfig":
        if not isinstance(data, dict):
            return cls()
        defaults = cls()
        values: Dict[str, Any] = {}
        for name, default in asdict(defaults).items():
            if name not in data:
                continue
            if isinstance(default, bool):
                values[name] = _coerce_bool(data[name])
            elif isinstance(default, int):
                values[name] = _pick_int(data, name, default, 1)
            else:
                values[name] = _pick_float(data, name, default)
        return cls(**values)


@dataclass
class ScrollConfig:
    attempts: int = field(default=3, metadata={"help": "Scroll attempts before giving up."})
    settle_delay: float = field(default=0.5, metadata={"help": "Seconds to wait after each scroll attempt."})
    growth_delta: int = field(default=1000, metadata={"help": "Height growth in px per attempt that flags a runaway feed."})
    timeout: float = field(default=10.0, metadata={"help": "Overall scroll settle budget in seconds."})
    wheel_x: int = field(default=500, metadata={"help": "Mouse x position used for wheel scrolling."})
    wheel_y: int = field(default=300, metadata={"help": "Mouse y position used for wheel scrolling."})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScrollConfig":
        if not isinstance(data, dict):
            return cls()
        defaults = cls()
        return cls(
            attempts=_pick_int(data, "attempts", defaults.attempts, 1),
            settle_delay=_pick_float(data, "settle_delay", defaults.settle_delay),
            growth_delta=_pick_int(data, "growth_delta", defaults.growth_delta, 1),
            timeout=_pick_float(data, "timeout", defaults.timeout, 0.001),
            wheel_x=_pick_int(data, "wheel_x", defaults.wheel_x),
            wheel_y=_pick_int(data, "wheel_y", defaults.wheel_y),
        )


@dataclass
class SegmenterConfig:
    evaluate_timeout: float = field(default=20.0, metadata={"help": "Seconds allowed for one in-page traversal."})
    evaluate_attempts: int = field(default=3, metadata={"help": "Traversal attempts when the page times out."})
    loading_timeout: float = field(default=30.0, metadata={"help": "Seconds to keep re-segmenting a loading screen."})
    loading_poll_interval: float = field(default=1.0, metadata={"help": "Delay between loading screen re-segmentations."})
    loading_ratio: float = field(default=0.25, metadata={"help": "Share of loading texts that marks a loading screen."})
    loading_words: List[str] = field(
        default_factory=lambda: [
            "loading",
            "please wait",
            "just a moment",
            "one moment",
            "checking your browser",
            "redirecting",
        ],
        metadata={"help": "Words that mark a segment as a loading placeholder."},
    )
    max_iterations: int = field(default=100_000, metadata={"help": "Traversal node cap."})
    full_page_max_height: int = field(
        default=16384, metadata={"help": "Tallest viewport used to bring a whole page on screen."}
    )
    full_page_settle_delay: float = field(
        default=0.5, metadata={"help": "Seconds to wait after resizing the viewport for a full page pass."}
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SegmenterConfig":
        if not isinstance(data, dict):
            return cls()
        defaults = cls()
        words = data.get("loading_words")
        return cls(
            evaluate_timeout=_pick_float(data, "evaluate_timeout", defaults.evaluate_timeout, 0.1),
            evaluate_attempts=_pick_int(data, "evaluate_attempts", defaults.evaluate_attempts, 1),
            loading_timeout=_pick_float(data, "loading_timeout", defaults.loading_timeout),
            loading_poll_interval=_pick_float(data, "loading_poll_interval", defaults.loading_poll_interval, 0.001),
            loading_ratio=_pick_float(data, "loading_ratio", defaults.loading_ratio),
            loading_words=(
                [str(item).lower() for item in words]
                if isinstance(words, list)
                else defaults.loading_words
            ),
            max_iterations=_pick_int(data, "max_iterations", defaults.max_iterations, 1),
            full_page_max_height=_pick_int(data, "full_page_max_height", defaults.full_page_max_height, 1),
            full_page_settle_delay=_pick_float(data, "full_page_settle_delay", defaults.full_page_settle_delay),
        )


@dataclass
class PageSenseConfig:
    pool: PoolConfig = field(default_factory=PoolConfig)
    locator: LocatorConfig = field(default_factory=LocatorConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    scroll: ScrollConfig = field(default_factory=ScrollConfig)
    segmenter: SegmenterConfig = field(default_factory=SegmenterConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageSenseConfig":
        if not isinstance(data, dict):
            return cls()
        return cls(
            pool=PoolConfig.from_dict(data.get("pool") or {}),
            locator=LocatorConfig.from_dict(data.get("locator") or {}),
            stability=StabilityConfig.from_dict(data.get("stability") or {}),
            scroll=ScrollConfig.from_dict(data.get("scroll") or {}),
            segmenter=SegmenterConfig.from_dict(data.get("segmenter") or {}),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PageSenseConfig":
        data = from_json_or_yaml(path)
        return cls.from_dict(data.get("pagesense", data))

    @classmethod
    def from_env(cls, base: Optional["PageSenseConfig"] = None) -> "PageSenseConfig":
        config = base or cls()
        pool = config.pool
        pool.idle_ttl = float(_parse_int_env("PAGESENSE_POOL_IDLE_SECS", int(pool.idle_ttl), 1))
        pool.sweep_interval = float(_parse_int_env("PAGESENSE_POOL_SWEEP_SECS", int(pool.sweep_interval), 1))
        pool.connect_timeout = _parse_float_env("PAGESENSE_CONNECT_TIMEOUT_SECS", pool.connect_timeout, 0.1)
        pool.connect_attempts = _parse_int_env("PAGESENSE_CONNECT_ATTEMPTS", pool.connect_attempts, 1)
        locator = config.locator
        locator.viewport_width = _parse_int_env("PAGESENSE_VIEWPORT_WIDTH", locator.viewport_width, 1)
        locator.viewport_height = _parse_int_env("PAGESENSE_VIEWPORT_HEIGHT", locator.viewport_height, 1)
        locator.apply_viewport = _parse_bool_env("PAGESENSE_APPLY_VIEWPORT", locator.apply_viewport)
        stability = config.stability
        stability.timeout = _parse_float_env("PAGESENSE_STABILITY_TIMEOUT_SECS", stability.timeout, 0.001)
        stability.use_overlays = _parse_bool_env("PAGESENSE_STABILITY_OVERLAYS", stability.use_overlays)
        config.segmenter.evaluate_timeout = _parse_float_env(
            "PAGESENSE_SEGMENT_TIMEOUT_SECS", config.segmenter.evaluate_timeout, 0.1
        )
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
