from pagesense.stability.detector import StabilityDetector
from pagesense.stability.scroll_settle import ScrollMetrics, ScrollSettler

__all__ = ["StabilityDetector", "ScrollMetrics", "ScrollSettler"]
