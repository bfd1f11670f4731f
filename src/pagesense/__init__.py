"""PageSense: page perception and visual stability for remote Chromium sessions."""

from pagesense.errors import PageSenseError
from pagesense.config.pagesense_config import PageSenseConfig
from pagesense.models import BoundingBox, Segment, StabilityOutcome, StabilityReason
from pagesense.perception.labels import Label
from pagesense.engine import PageSense

__version__ = "0.1.0"

__all__ = [
    "BoundingBox",
    "Label",
    "PageSense",
    "PageSenseConfig",
    "PageSenseError",
    "Segment",
    "StabilityOutcome",
    "StabilityReason",
]
