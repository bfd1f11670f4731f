"""Value types produced by the perception and stability modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pagesense.browser.runtime_common import _coerce_float
from pagesense.perception.labels import Label, label_value


@dataclass(frozen=True)
class BoundingBox:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError("BoundingBox width and height must be non-negative")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "BoundingBox":
        data = data or {}
        return cls(
            x=_coerce_float(data.get("x")),
            y=_coerce_float(data.get("y")),
            width=max(0.0, _coerce_float(data.get("width"))),
            height=max(0.0, _coerce_float(data.get("height"))),
        )

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, other: "BoundingBox") -> bool:
        # Touching the edge counts as inside.
        return not (
            other.x < self.x
            or other.right > self.right
            or other.y < self.y
            or other.bottom > self.bottom
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class ScrollContainer:
    index: int
    box: BoundingBox
    scroll_top: float = 0.0
    scroll_left: float = 0.0
    vertical_scrollable: float = 0.0
    horizontal_scrollable: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScrollContainer":
        return cls(
            index=int(data.get("index", 0)),
            box=BoundingBox.from_dict(data.get("box")),
            scroll_top=_coerce_float(data.get("scrollTop")),
            scroll_left=_coerce_float(data.get("scrollLeft")),
            vertical_scrollable=_coerce_float(data.get("verticalScrollable")),
            horizontal_scrollable=_coerce_float(data.get("horizontalScrollable")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            **self.box.to_dict(),
            "scrollTop": self.scroll_top,
            "scrollLeft": self.scroll_left,
            "hasYScroll": self.vertical_scrollable > 0,
            "hasXScroll": self.horizontal_scrollable > 0,
            "verticalScrollableAmount": self.vertical_scrollable,
            "horizontalScrollableAmount": self.horizontal_scrollable,
        }


@dataclass
class Segment:
    index: int
    tag: str
    label: Union[Label, str]
    box: BoundingBox
    text: str = ""
    description: str = ""
    clickable: bool = False
    triggerable: bool = False
    input_type: str = ""
    href: Optional[str] = None
    src: Optional[str] = None
    select_options: Optional[List[Dict[str, str]]] = None
    placeholder: Optional[str] = None
    value: Optional[str] = None
    is_in_iframe: bool = False
    iframe_offset: Tuple[float, float] = (0.0, 0.0)
    scroll_container: Optional[int] = None
    identity_path: Optional[Tuple[str, str]] = None
    element_id: str = ""
    class_name: str = ""
    xpath: Optional[str] = None

    @classmethod
    def placeholder_record(cls) -> "Segment":
        """Empty record standing in for a row whose field could not be located."""
        return cls(index=-1, tag="", label="", box=BoundingBox(), xpath="")

    @property
    def is_placeholder(self) -> bool:
        return self.tag == "" and self.xpath == ""

    def to_dict(self) -> Dict[str, Any]:
        element_id, class_name = self.identity_path or (self.element_id, self.class_name)
        data: Dict[str, Any] = {
            "id": element_id,
            "class": class_name,
            "index": self.index,
            "tagName": self.tag,
            "label": label_value(self.label),
            "x": self.box.x,
            "y": self.box.y,
            "width": self.box.width,
            "height": self.box.height,
            "text": self.text,
            "description": self.description,
            "interactivity": [
                "clickable" if self.clickable else "non-clickable",
                "trigger" if self.triggerable else "non-trigger",
            ],
            "inputType": self.input_type,
            "isIframe": self.is_in_iframe,
            "iframePosition": {"x": self.iframe_offset[0], "y": self.iframe_offset[1]},
        }
        if self.href is not None:
            data["href"] = self.href
        if self.src is not None:
            data["src"] = self.src
        if self.select_options is not None:
            data["options"] = self.select_options
        if self.placeholder is not None:
            data["placeholder"] = self.placeholder
        if self.value is not None:
            data["value"] = self.value
        if self.scroll_container is not None:
            data["scrollContainer"] = self.scroll_container
        if self.xpath is not None:
            data["xpath"] = self.xpath
        return data


class StabilityReason(str, Enum):
    REACHED_BOTTOM = "reached_bottom"
    INFINITE_SCROLL_DETECTED = "infinite_scroll_detected"
    HEIGHT_GROWING_TOO_FAST = "height_growing_too_fast"
    TIMEOUT = "timeout"
    MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass
class StabilityOutcome:
    settled: bool
    reason: StabilityReason
    sample_diff_percent: float = 0.0
    attempts: int = 0
    scroll_info: Optional[Dict[str, Any]] = None
    exhausted_by: Optional[StabilityReason] = None

    def to_result(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.settled,
            "reason": self.reason.value,
            "sampleDiffPercent": round(self.sample_diff_percent, 4),
        }
        if self.exhausted_by is not None:
            result["exhaustedBy"] = self.exhausted_by.value
        if self.scroll_info is not None:
            result["scrollInfo"] = dict(self.scroll_info)
        return result


@dataclass
class RepeatedTemplate:
    strategy: str
    tag: str
    xpath_template: Optional[str] = None
    selector: Optional[str] = None
    common_properties: Dict[str, Any] = field(default_factory=dict)
    relative_paths: Dict[int, str] = field(default_factory=dict)
    instance_paths: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "tag": self.tag,
            "xpathTemplate": self.xpath_template,
            "selector": self.selector,
            "commonProperties": dict(self.common_properties),
            "relativePaths": {str(k): v for k, v in self.relative_paths.items()},
            "instances": len(self.instance_paths),
        }
