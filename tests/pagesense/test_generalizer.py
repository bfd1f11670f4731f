import pytest

from pagesense.perception.generalizer import (
    PatternGeneralizer,
    apply_relative_path,
    build_selector,
    common_properties,
    levels_to_common_ancestor,
    matches_template,
    prune_unique_class,
    relative_path,
    xpath_template,
)
from pagesense.perception.generalizer_script import (
    DESCRIBE_XPATHS_JS,
    LIST_BY_TAG_JS,
    QUERY_SELECTOR_JS,
    RESOLVE_POINTS_JS,
)

TBODY = "/html[1]/body[1]/div[2]/table[1]/tbody[1]"


def row_path(row):
    return f"{TBODY}/tr[{row}]"


class FakeTablePage:
    """A listing of ``rows`` table rows, each 50px tall with three cells."""

    def __init__(self, rows=10, missing_cells=(), extra_rows=None):
        self.url = "https://shop.test/listing"
        self.rows = rows
        self.missing_cells = set(missing_cells)
        self.extra_rows = list(extra_rows or [])
        self.calls = []

    def _row_properties(self, row, class_name="row"):
        return {
            "tagName": "TR",
            "parent": "TBODY",
            "className": class_name,
            "color": "rgb(0, 0, 0)",
            "x": 0,
            "y": 100 + 50 * (row - 1),
            "width": 800,
            "height": 50,
            "text": f"Item {row}",
        }

    def _element(self, path):
        for extra in self.extra_rows:
            if path == extra["xpath"]:
                return {"tag": "TR", "className": extra["className"], "text": "Total", "hasText": True}
        for row in range(1, self.rows + 1):
            if path == row_path(row):
                return {"tag": "TR", "className": "row", "text": f"Item {row}", "hasText": True,
                        "box": {"x": 0, "y": 100 + 50 * (row - 1), "width": 800, "height": 50}}
            if path == f"{row_path(row)}/td[3]" and row not in self.missing_cells:
                return {"tag": "TD", "className": "price", "text": f"${row}.00", "hasText": True,
                        "box": {"x": 600, "y": 100 + 50 * (row - 1), "width": 200, "height": 50}}
        return None

    def _resolve(self, point):
        row = int((point["y"] - 100) // 50) + 1
        if point["y"] < 100 or row > self.rows:
            return None
        if point["tag"].lower() == "tr":
            return {"xpath": row_path(row), "properties": self._row_properties(row)}
        if point["tag"].lower() == "td" and point["x"] >= 600:
            return {"xpath": f"{row_path(row)}/td[3]", "properties": {"tagName": "TD", "className": "price"}}
        return None

    async def evaluate(self, expression, arg=None):
        self.calls.append(expression)
        if expression == RESOLVE_POINTS_JS:
            return [self._resolve(point) for point in arg["points"]]
        if expression == LIST_BY_TAG_JS:
            assert arg["tag"] == "tr"
            header = [{"xpath": "/html[1]/body[1]/div[2]/table[1]/thead[1]/tr[1]", "className": "head"}]
            rows = [{"xpath": row_path(row), "className": "row"} for row in range(1, self.rows + 1)]
            return header + rows + list(self.extra_rows)
        if expression == DESCRIBE_XPATHS_JS:
            described = []
            for path in arg["xpaths"]:
                facts = self._element(path)
                described.append(dict(facts, xpath=path) if facts else None)
            return described
        if expression == QUERY_SELECTOR_JS:
            assert arg["selector"].startswith("tr.row")
            rows = [
                {"xpath": row_path(row), "properties": self._row_properties(row)}
                for row in range(1, self.rows + 1)
            ]
            odd_one = {"xpath": row_path(self.rows + 1), "properties": self._row_properties(1, "row")}
            odd_one["properties"]["color"] = "rgb(255, 0, 0)"
            return rows + [odd_one]
        raise AssertionError("unexpected script")


ROW_1 = {"x": 10, "y": 110, "tag": "tr"}
ROW_2 = {"x": 10, "y": 160, "tag": "tr"}
PRICE_1 = {"x": 650, "y": 110, "tag": "td"}


def test_xpath_template_generalizes_differing_indices():
    assert xpath_template(row_path(1), row_path(2)) == f"{TBODY}/tr[x]"
    assert xpath_template("/html[1]/body[1]/ul[1]/li[2]", "/html[1]/body[1]/ol[1]/li[2]") == "/html[1]/body[1]"


def test_matches_template_requires_same_depth_and_tags():
    template = f"{TBODY}/tr[x]"
    assert matches_template(row_path(7), template)
    assert not matches_template(f"{row_path(7)}/td[1]", template)
    assert not matches_template("/html[1]/body[1]/div[2]/table[1]/thead[1]/tr[1]", template)
    assert not matches_template(row_path(1), "")


def test_prune_unique_class():
    rows = [{"className": "row"}] * 3 + [{"className": "total"}]
    assert prune_unique_class(rows) == [{"className": "row"}] * 3
    mixed = [{"className": "a"}, {"className": "b"}, {"className": "c"}]
    assert prune_unique_class(mixed) == mixed
    assert prune_unique_class([{"className": "row"}] * 2) == [{"className": "row"}] * 2


def test_relative_paths():
    target = f"{row_path(1)}/td[3]"
    assert relative_path(row_path(1), target) == "td[3]"
    assert relative_path(f"{row_path(1)}/td[1]", target) == "../td[3]"
    assert relative_path(row_path(1), row_path(1)) == "."
    assert levels_to_common_ancestor(row_path(1), target) == 0
    assert levels_to_common_ancestor(row_path(2), target) == 1
    assert apply_relative_path(row_path(4), "td[3]") == f"{row_path(4)}/td[3]"
    assert apply_relative_path(f"{row_path(4)}/td[1]", "../td[3]") == f"{row_path(4)}/td[3]"
    assert apply_relative_path("/html[1]", "../../div[1]") is None


def test_selector_and_common_properties():
    first = {"tagName": "A", "className": "card link", "href": "/p/1", "text": "One", "color": "red"}
    second = {"tagName": "A", "className": "card link", "href": "/p/2", "text": "Two", "color": "red"}
    common = common_properties(first, second, ["className", "href", "text", "color"])
    assert common == {"className": "card link", "color": "red"}
    assert build_selector("a", common) == "a.card.link"
    assert build_selector("img", {"src": 'x"y.png'}) == 'img[src="x\\"y.png"]'


@pytest.mark.asyncio
async def test_structural_generalization_extracts_every_row_and_field():
    page = FakeTablePage(rows=10, missing_cells={4}, extra_rows=[{"xpath": row_path(11), "className": "total"}])
    columns = await PatternGeneralizer().generalize(page, [ROW_1, ROW_2, PRICE_1])

    assert len(columns) == 2
    rows, prices = columns
    assert len(rows) == len(prices) == 10
    assert [record.xpath for record in rows] == [row_path(row) for row in range(1, 11)]
    assert [record.index for record in rows] == list(range(10))
    assert prices[0].text == "$1.00"
    assert prices[3].is_placeholder
    assert prices[3].to_dict()["tagName"] == ""
    assert prices[9].xpath == f"{row_path(10)}/td[3]"


@pytest.mark.asyncio
async def test_attribute_generalization_filters_on_common_properties():
    page = FakeTablePage(rows=10)
    columns = await PatternGeneralizer().generalize(page, [ROW_1, ROW_2], properties=["className", "color"])

    assert len(columns) == 1
    assert len(columns[0]) == 10
    assert QUERY_SELECTOR_JS in page.calls
    assert LIST_BY_TAG_JS not in page.calls


@pytest.mark.asyncio
async def test_too_few_matches_yields_nothing():
    page = FakeTablePage(rows=2)
    assert await PatternGeneralizer().generalize(page, [ROW_1, ROW_2]) == []


@pytest.mark.asyncio
async def test_unresolved_point_yields_nothing():
    page = FakeTablePage(rows=10)
    missing = {"x": 10, "y": 10, "tag": "tr"}
    assert await PatternGeneralizer().generalize(page, [ROW_1, missing]) == []
    assert DESCRIBE_XPATHS_JS not in page.calls


@pytest.mark.asyncio
async def test_single_point_is_rejected():
    with pytest.raises(ValueError):
        await PatternGeneralizer().generalize(FakeTablePage(), [ROW_1])


@pytest.mark.asyncio
async def test_unknown_strategy_is_rejected():
    with pytest.raises(ValueError):
        await PatternGeneralizer().generalize(FakeTablePage(), [ROW_1, ROW_2], strategy="fuzzy")


@pytest.mark.asyncio
async def test_extract_returns_template_with_columns():
    page = FakeTablePage(rows=10)
    template, columns = await PatternGeneralizer().extract(page, [ROW_1, ROW_2, PRICE_1])

    assert template.to_dict() == {
        "strategy": "path",
        "tag": "tr",
        "xpathTemplate": f"{TBODY}/tr[x]",
        "selector": None,
        "commonProperties": {},
        "relativePaths": {"2": "td[3]"},
        "instances": 10,
    }
    assert [len(column) for column in columns] == [10, 10]
    assert await PatternGeneralizer().extract(FakeTablePage(rows=2), [ROW_1, ROW_2]) == (None, [])
