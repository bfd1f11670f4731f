"""
Repeated-pattern generalization from a handful of example points.

Two example points of the same kind (two rows of a listing) define the
template; every other element matching it is a row. Each further point
names a field inside its row and is reached from every row through the
same relative path. The result is column-major: one list per example
field, one record per row.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from pagesense.browser.logging_utils import _log_browser_event
from pagesense.browser.runtime_common import RemotePage, _safe_text
from pagesense.errors import TemplateGeneralizationFailure
from pagesense.models import RepeatedTemplate, Segment
from pagesense.perception.segmenter import build_segment

from .generalizer_script import DESCRIBE_XPATHS_JS, LIST_BY_TAG_JS, QUERY_SELECTOR_JS, RESOLVE_POINTS_JS

logger = logging.getLogger(__name__)

MIN_MATCHES = 3
STRATEGY_PATH = "path"
STRATEGY_ATTRIBUTES = "attributes"
SEED_PROPERTIES = (
    "tagName",
    "parent",
    "className",
    "backgroundColor",
    "color",
    "fontSize",
    "fontWeight",
    "x",
    "y",
    "width",
    "height",
    "src",
    "href",
)


class ExamplePoint(BaseModel):
    x: float = Field(..., description="Horizontal page coordinate of the example.")
    y: float = Field(..., description="Vertical page coordinate of the example.")
    tag: str = Field(..., min_length=1, description="Tag name of the element the point stands for.")


class GeneralizeRequest(BaseModel):
    points: List[ExamplePoint] = Field(..., min_length=2)
    properties: Optional[List[str]] = Field(default=None, description="Properties the template must share.")
    strategy: Optional[str] = Field(default=None, pattern=r"^(path|attributes)$")


# Path helpers operate on absolute paths of the form /html[1]/body[1]/div[3].


def split_path(path: str) -> List[str]:
    return [step for step in path.split("/") if step]


def _step_tag(step: str) -> str:
    return step.split("[", 1)[0]


def xpath_template(first: str, second: str) -> str:
    steps: List[str] = []
    for left, right in zip(split_path(first), split_path(second)):
        if left == right:
            steps.append(left)
        elif _step_tag(left) == _step_tag(right):
            steps.append(f"{_step_tag(left)}[x]")
        else:
            break
    return "/" + "/".join(steps) if steps else ""


def matches_template(path: str, template: str) -> bool:
    steps = split_path(path)
    pattern = split_path(template)
    if not pattern or len(steps) != len(pattern):
        return False
    for step, expected in zip(steps, pattern):
        if expected.endswith("[x]"):
            if _step_tag(step) != _step_tag(expected):
                return False
        elif step != expected:
            return False
    return True


def prune_unique_class(candidates: Sequence[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Drop the single element whose class appears nowhere else, if there is exactly one."""
    counts = Counter(_safe_text(item.get("className")) for item in candidates)
    if len(counts) < 2:
        return list(candidates)
    unique = [name for name, count in counts.items() if count == 1]
    if len(unique) != 1:
        return list(candidates)
    return [item for item in candidates if _safe_text(item.get("className")) != unique[0]]


def _common_prefix(a: Sequence[str], b: Sequence[str]) -> int:
    size = 0
    for left, right in zip(a, b):
        if left != right:
            break
        size += 1
    return size


def levels_to_common_ancestor(source: str, target: str) -> int:
    steps = split_path(source)
    return len(steps) - _common_prefix(steps, split_path(target))


def relative_path(source: str, target: str) -> str:
    """Path leading from ``source`` to ``target``, e.g. ``../../td[3]``."""
    start = split_path(source)
    end = split_path(target)
    shared = _common_prefix(start, end)
    parts = [".."] * (len(start) - shared) + end[shared:]
    return "/".join(parts) or "."


def apply_relative_path(source: str, relative: str) -> Optional[str]:
    steps = split_path(source)
    for part in split_path(relative):
        if part == ".":
            continue
        if part == "..":
            if not steps:
                return None
            steps.pop()
        else:
            steps.append(part)
    return "/" + "/".join(steps) if steps else None


_CSS_IDENT_RE = re.compile(r"([^A-Za-z0-9_-])")


def _css_ident(value: str) -> str:
    return _CSS_IDENT_RE.sub(r"\\\1", value)


def _css_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def build_selector(tag: str, common: Mapping[str, Any]) -> str:
    selector = tag.lower() or "*"
    class_name = _safe_text(common.get("className"))
    if class_name.strip():
        selector += "".join(f".{_css_ident(name)}" for name in class_name.split())
    for attribute in ("src", "href"):
        value = common.get(attribute)
        if value:
            selector += f"[{attribute}={_css_string(str(value))}]"
    return selector


def common_properties(
    first: Mapping[str, Any],
    second: Mapping[str, Any],
    wanted: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    names = [name for name in (wanted or SEED_PROPERTIES) if name != "text"]
    return {
        name: first.get(name)
        for name in names
        if name in first and first.get(name) == second.get(name)
    }


class PatternGeneralizer:
    async def _resolve(self, page: RemotePage, points: Sequence[ExamplePoint]) -> List[Optional[Dict[str, Any]]]:
        payload = [{"x": point.x, "y": point.y, "tag": point.tag} for point in points]
        return list(await page.evaluate(RESOLVE_POINTS_JS, {"points": payload}) or [])

    async def _describe(self, page: RemotePage, xpaths: Sequence[Optional[str]]) -> List[Optional[Dict[str, Any]]]:
        wanted = [path for path in xpaths if path]
        described = list(await page.evaluate(DESCRIBE_XPATHS_JS, {"xpaths": wanted}) or []) if wanted else []
        by_path = dict(zip(wanted, described))
        return [by_path.get(path) if path else None for path in xpaths]

    async def _structural_template(
        self,
        page: RemotePage,
        first: Mapping[str, Any],
        second: Mapping[str, Any],
    ) -> RepeatedTemplate:
        template = xpath_template(first["xpath"], second["xpath"])
        tag = _safe_text(first["properties"].get("tagName")).lower()
        candidates = await page.evaluate(LIST_BY_TAG_JS, {"tag": tag}) or []
        matches = [item for item in candidates if matches_template(item.get("xpath", ""), template)]
        if len(matches) > 2:
            matches = prune_unique_class(matches)
        return RepeatedTemplate(
            strategy=STRATEGY_PATH,
            tag=tag,
            xpath_template=template,
            instance_paths=[item["xpath"] for item in matches],
        )

    async def _attribute_template(
        self,
        page: RemotePage,
        first: Mapping[str, Any],
        second: Mapping[str, Any],
        properties: Optional[Sequence[str]],
    ) -> RepeatedTemplate:
        common = common_properties(first["properties"], second["properties"], properties)
        tag = _safe_text(first["properties"].get("tagName")).lower()
        selector = build_selector(tag, common)
        candidates = await page.evaluate(QUERY_SELECTOR_JS, {"selector": selector}) or []
        matches = [
            item
            for item in candidates
            if all((item.get("properties") or {}).get(key) == value for key, value in common.items())
        ]
        return RepeatedTemplate(
            strategy=STRATEGY_ATTRIBUTES,
            tag=tag,
            selector=selector,
            common_properties=common,
            instance_paths=[item["xpath"] for item in matches],
        )

    def _closest_instance(self, instances: Sequence[str], target: str) -> str:
        return min(instances, key=lambda path: levels_to_common_ancestor(path, target))

    async def _records(self, page: RemotePage, xpaths: Sequence[Optional[str]]) -> List[Segment]:
        described = await self._describe(page, xpaths)
        records: List[Segment] = []
        for row, facts in enumerate(described):
            if not facts:
                records.append(Segment.placeholder_record())
                continue
            record = build_segment(row, facts)
            record.xpath = facts.get("xpath") or ""
            records.append(record)
        return records

    async def build_template(
        self,
        page: RemotePage,
        request: GeneralizeRequest,
    ) -> Tuple[Optional[RepeatedTemplate], List[Dict[str, Any]]]:
        resolved = await self._resolve(page, request.points)
        missing = [index for index, item in enumerate(resolved) if not item]
        if missing or len(resolved) != len(request.points):
            raise TemplateGeneralizationFailure(
                "Example points did not resolve to elements",
                details={"unresolved": missing},
            )
        first, second = resolved[0], resolved[1]
        use_attributes = request.strategy == STRATEGY_ATTRIBUTES or (
            request.strategy is None and bool(request.properties)
        )
        if use_attributes:
            template = await self._attribute_template(page, first, second, request.properties)
        else:
            template = await self._structural_template(page, first, second)
        if len(template.instance_paths) < MIN_MATCHES:
            raise TemplateGeneralizationFailure(
                f"Template matched {len(template.instance_paths)} elements",
                details={"strategy": template.strategy, "matches": len(template.instance_paths)},
            )
        for position, field_point in enumerate(resolved[2:], start=2):
            anchor = self._closest_instance(template.instance_paths, field_point["xpath"])
            template.relative_paths[position] = relative_path(anchor, field_point["xpath"])
        return template, resolved

    async def generalize(
        self,
        page: RemotePage,
        points: Sequence[Any],
        *,
        properties: Optional[Sequence[str]] = None,
        strategy: Optional[str] = None,
    ) -> List[List[Segment]]:
        """
        Find every repetition of the pattern the example points describe.

        Args:
            page: The page to search.
            points: At least two ``{x, y, tag}`` examples; the first two are
                instances of the repeated element, any further ones are
                fields inside an instance.
            properties: Property names the attribute strategy must match.
            strategy: ``"path"`` or ``"attributes"``; inferred when omitted.

        Returns:
            One list per column (the instances, then one per field point),
            each holding one record per row. ``[]`` when the pattern cannot
            be generalized.

        Raises:
            ValueError: Fewer than two points or malformed points.
        """
        _, columns = await self.extract(page, points, properties=properties, strategy=strategy)
        return columns

    async def extract(
        self,
        page: RemotePage,
        points: Sequence[Any],
        *,
        properties: Optional[Sequence[str]] = None,
        strategy: Optional[str] = None,
    ) -> Tuple[Optional[RepeatedTemplate], List[List[Segment]]]:
        """Like ``generalize`` but also returns the template; ``(None, [])`` on failure."""
        request = GeneralizeRequest(
            points=[point if isinstance(point, ExamplePoint) else ExamplePoint(**point) for point in points],
            properties=list(properties) if properties is not None else None,
            strategy=strategy,
        )
        try:
            template, _ = await self.build_template(page, request)
        except TemplateGeneralizationFailure as exc:
            _log_browser_event(
                logger,
                level=logging.WARNING,
                event="generalize_failed",
                reason=exc.message,
                **{key: str(value) for key, value in exc.details.items()},
            )
            return None, []

        columns = [await self._records(page, template.instance_paths)]
        for position in sorted(template.relative_paths):
            relative = template.relative_paths[position]
            targets = [apply_relative_path(path, relative) for path in template.instance_paths]
            columns.append(await self._records(page, targets))
        _log_browser_event(
            logger,
            level=logging.INFO,
            event="generalized",
            strategy=template.strategy,
            rows=len(template.instance_paths),
            columns=len(columns),
        )
        return template, columns
