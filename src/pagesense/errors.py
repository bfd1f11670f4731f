"""Error taxonomy shared by the perception and stability modules."""

from __future__ import annotations

from typing import Any, Dict, Optional


class PageSenseError(Exception):
    """Base class for every error raised by pagesense."""

    code = "pagesense_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class PoolConnectionError(PageSenseError, ConnectionError):
    """Remote endpoint unreachable after the connect retry budget."""

    code = "connection_error"


class StaleConnection(PageSenseError):
    """A pooled handle failed its liveness check and was evicted."""

    code = "stale_connection"


class NavigationRace(PageSenseError):
    """The page navigated away while it was being measured."""

    code = "navigation_race"


class NoPageError(PageSenseError):
    code = "no_page"


class IndexOutOfBoundsError(PageSenseError, IndexError):
    code = "index_out_of_bounds"


class CaptureTimeout(PageSenseError):
    """Screenshot capture did not finish within its timeout."""

    code = "capture_timeout"


class ClassificationError(PageSenseError):
    code = "classification_error"


class TemplateGeneralizationFailure(PageSenseError):
    code = "template_generalization_failure"


class DetectionCancelled(PageSenseError):
    """A polling loop was aborted through its cancellation event."""

    code = "detection_cancelled"


_NAVIGATION_MARKERS = (
    "execution context was destroyed",
    "most likely because of a navigation",
    "cannot find context with specified id",
    "frame was detached",
)


def is_navigation_race(exc: BaseException) -> bool:
    if isinstance(exc, NavigationRace):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _NAVIGATION_MARKERS)
