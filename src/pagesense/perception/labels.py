"""
Semantic labels and the ordered classification chain.

The chain is evaluated top to bottom and the first matching predicate wins.
Moving a predicate changes which label overlapping elements receive (an
``<a class="btn">`` is a Button only because Button is tested before Link),
so new predicates are appended before the tag-name fallback, never
interleaved.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, List, Mapping, Tuple, Union


class Label(str, Enum):
    TEXT = "Text"
    CODE = "Code"
    LINK = "Link"
    IMAGE = "Image"
    VIDEO = "Video"
    AUDIO = "Audio"
    BUTTON = "Button"
    INPUT = "Input"
    FORM = "Form"
    QUOTE = "Quote"
    CUSTOM = "Custom"
    ICON = "Icon"
    HEADER = "Header"
    FOOTER = "Footer"
    NAV = "Nav"
    LIST = "List"
    SELECT = "Select"


MIN_IMAGE_AREA = 800
HEADING_TAGS = frozenset({"H1", "H2", "H3", "H4", "H5", "H6"})
TEXT_TAGS = frozenset({"P", "SPAN", "ABBR", "LABEL", "DIV", "LI"})
INLINE_LINK_TAGS = frozenset({"P", "SPAN", "ABBR", "ADDRESS"})
INPUT_TAGS = frozenset({"INPUT", "SELECT", "OPTION", "TEXTAREA"})
LIST_TAGS = frozenset({"TABLE", "UL", "OL", "DL"})
IMAGE_EXTENSIONS = frozenset({"jpg", "png", "gif", "jpeg", "webp"})
BUTTON_CLASSES = frozenset({"btn", "button"})
TAG_NAME_LABELS = {
    "VIDEO": Label.VIDEO,
    "AUDIO": Label.AUDIO,
    "FORM": Label.FORM,
    "NAV": Label.NAV,
    "FOOTER": Label.FOOTER,
}

ElementFacts = Mapping[str, Any]
LabelValue = Union[Label, str]


def _tag(facts: ElementFacts) -> str:
    return str(facts.get("tag") or "").upper()


def _classes(facts: ElementFacts) -> List[str]:
    raw = facts.get("classes")
    if isinstance(raw, (list, tuple)):
        return [str(item) for item in raw]
    return str(facts.get("className") or "").split()


def _area(facts: ElementFacts) -> float:
    box = facts.get("box") or {}
    try:
        return float(box.get("width", 0)) * float(box.get("height", 0))
    except (TypeError, ValueError):
        return 0.0


def background_image_url(facts: ElementFacts) -> str:
    raw = str(facts.get("backgroundImage") or "")
    if not raw.startswith("url"):
        return ""
    return raw[4:-1].replace('"', "").replace("'", "")


def background_extension(facts: ElementFacts) -> str:
    url = background_image_url(facts)
    if not url:
        return ""
    return url.split(".")[-1].lower()


def is_button(facts: ElementFacts) -> bool:
    tag = _tag(facts)
    role = str(facts.get("role") or "").lower()
    input_type = str(facts.get("type") or "").lower()
    if tag == "BUTTON" or role == "button":
        return True
    if tag == "INPUT" and input_type in {"button", "submit"}:
        return True
    if tag == "A" and BUTTON_CLASSES.intersection(_classes(facts)):
        return True
    return bool(facts.get("hasClickListener"))


def is_header(facts: ElementFacts) -> bool:
    if not facts.get("hasText"):
        return False
    parent_tag = str(facts.get("parentTag") or "").upper()
    return _tag(facts) in HEADING_TAGS or parent_tag in HEADING_TAGS


def is_code(facts: ElementFacts) -> bool:
    return _tag(facts) in {"PRE", "CODE"}


def is_quote(facts: ElementFacts) -> bool:
    return _tag(facts) == "BLOCKQUOTE"


def is_list(facts: ElementFacts) -> bool:
    return _tag(facts) in LIST_TAGS


def is_link(facts: ElementFacts) -> bool:
    tag = _tag(facts)
    parent_tag = str(facts.get("parentTag") or "").upper()
    if tag == "A" and not BUTTON_CLASSES.intersection(_classes(facts)):
        return True
    if parent_tag == "A" and tag in INLINE_LINK_TAGS:
        return True
    return tag == "CITE"


def is_input(facts: ElementFacts) -> bool:
    return _tag(facts) in INPUT_TAGS


def is_text(facts: ElementFacts) -> bool:
    return bool(facts.get("hasText")) and _tag(facts) in TEXT_TAGS


def is_image(facts: ElementFacts) -> bool:
    tag = _tag(facts)
    if tag == "IMG" or (tag == "SVG" and _area(facts) > MIN_IMAGE_AREA):
        return True
    return background_extension(facts) in IMAGE_EXTENSIONS


def is_icon(facts: ElementFacts) -> bool:
    tag = _tag(facts)
    if tag == "KBD" or (tag == "SVG" and _area(facts) < MIN_IMAGE_AREA):
        return True
    extension = background_extension(facts)
    return extension == "svg" or extension.startswith("data")


def is_custom(facts: ElementFacts) -> bool:
    return bool(facts.get("isCustomElement"))


CLASSIFIERS: Tuple[Tuple[Label, Callable[[ElementFacts], bool]], ...] = (
    (Label.SELECT, lambda facts: _tag(facts) == "SELECT"),
    (Label.HEADER, is_header),
    (Label.CODE, is_code),
    (Label.QUOTE, is_quote),
    (Label.LIST, is_list),
    (Label.BUTTON, is_button),
    (Label.LINK, is_link),
    (Label.INPUT, is_input),
    (Label.TEXT, is_text),
    (Label.IMAGE, is_image),
    (Label.ICON, is_icon),
    (Label.CUSTOM, is_custom),
)


def classify(facts: ElementFacts) -> LabelValue:
    """Return the first label whose predicate accepts ``facts``, else the raw tag name."""
    for label, predicate in CLASSIFIERS:
        if predicate(facts):
            return label
    tag = _tag(facts)
    if tag in TAG_NAME_LABELS:
        return TAG_NAME_LABELS[tag]
    return tag.lower()


def label_value(label: LabelValue) -> str:
    return label.value if isinstance(label, Label) else str(label)
