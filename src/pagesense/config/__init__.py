from pagesense.config.pagesense_config import (
    LocatorConfig,
    PageSenseConfig,
    PoolConfig,
    ScrollConfig,
    SegmenterConfig,
    StabilityConfig,
)

__all__ = [
    "LocatorConfig",
    "PageSenseConfig",
    "PoolConfig",
    "ScrollConfig",
    "SegmenterConfig",
    "StabilityConfig",
]
