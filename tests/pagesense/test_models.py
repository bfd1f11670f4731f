import pytest

from pagesense.models import BoundingBox, Segment, StabilityOutcome, StabilityReason
from pagesense.perception.labels import Label


def test_contains_counts_touching_boundary_as_inside():
    region = BoundingBox(0, 0, 100, 100)
    assert region.contains(BoundingBox(0, 0, 100, 100))
    assert region.contains(BoundingBox(90, 90, 10, 10))
    assert not region.contains(BoundingBox(90, 90, 11, 10))
    assert not region.contains(BoundingBox(-1, 0, 10, 10))
    assert region.area == 10000
    assert BoundingBox(10, 20, 30, 40).center == (25, 40)


def test_bounding_box_rejects_negative_size_and_clamps_from_dict():
    with pytest.raises(ValueError):
        BoundingBox(0, 0, -1, 5)
    box = BoundingBox.from_dict({"x": "3", "y": None, "width": -4, "height": 7})
    assert box == BoundingBox(3.0, 0.0, 0.0, 7.0)


def test_segment_to_dict_prefers_identity_path():
    segment = Segment(
        index=4,
        tag="A",
        label=Label.LINK,
        box=BoundingBox(1, 2, 3, 4),
        text="Docs",
        clickable=True,
        href="example.com/docs",
        element_id="",
        class_name="nav item",
        identity_path=("main_ul_a", "content_menu_nav.item"),
    )
    data = segment.to_dict()
    assert data["id"] == "main_ul_a"
    assert data["class"] == "content_menu_nav.item"
    assert data["label"] == "Link"
    assert data["interactivity"] == ["clickable", "non-trigger"]
    assert data["href"] == "example.com/docs"
    assert "src" not in data


def test_placeholder_record_is_empty():
    record = Segment.placeholder_record()
    data = record.to_dict()
    assert record.is_placeholder
    assert data["tagName"] == ""
    assert data["xpath"] == ""
    assert data["interactivity"] == ["non-clickable", "non-trigger"]
    assert (data["x"], data["y"], data["width"], data["height"]) == (0, 0, 0, 0)


def test_outcome_result_includes_exhaustion_only_when_unsettled():
    settled = StabilityOutcome(settled=True, reason=StabilityReason.UNCHANGED)
    assert settled.to_result() == {"success": True, "reason": "unchanged", "sampleDiffPercent": 0.0}

    failed = StabilityOutcome(
        settled=False,
        reason=StabilityReason.CHANGED,
        sample_diff_percent=12.345678,
        exhausted_by=StabilityReason.TIMEOUT,
    )
    result = failed.to_result()
    assert result["exhaustedBy"] == "timeout"
    assert result["sampleDiffPercent"] == 12.3457
