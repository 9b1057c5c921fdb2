import asyncio

import pytest

from locatorwatch.errors import DocumentError, ProbeTimeout
from locatorwatch.snapshot_document import SnapshotDocument

PAGE = """
<html><head><title>People</title></head><body>
  <div id="main-app">
    <ul class="zp_list">
      <li class="zp_item zp_first">One</li>
      <li class="zp_item">Two</li>
      <li class="zp_item" hidden>Three</li>
    </ul>
    <button class="zp_qe0Li">Access email</button>
    <div style="display: none"><span class="zp_inner">Hidden</span></div>
    <input type="hidden" name="token" value="x">
  </div>
</body></html>
"""


def test_query_count_and_text() -> None:
    document = SnapshotDocument(PAGE)

    async def scenario() -> None:
        assert await document.count("li.zp_item") == 3
        first = await document.query("li.zp_item")
        assert await document.text(first) == "One"
        assert await document.attribute(first, "class") == "zp_item zp_first"
        assert await document.query("li.missing") is None

    asyncio.run(scenario())


def test_has_text_locators_work_offline() -> None:
    document = SnapshotDocument(PAGE)
    assert asyncio.run(document.count('button:has-text("Access")')) == 1
    assert asyncio.run(document.count('button:has-text("Request")')) == 0


def test_visibility_follows_markup() -> None:
    document = SnapshotDocument(PAGE)

    async def scenario() -> None:
        items = await document.query_all("li.zp_item")
        assert [await document.is_visible(item) for item in items] == [True, True, False]
        assert not await document.is_visible(await document.query("span.zp_inner"))
        assert not await document.is_visible(await document.query('input[name="token"]'))
        assert not await document.is_visible(await document.query("title"))

    asyncio.run(scenario())


def test_wait_for_returns_rendered_match_or_times_out() -> None:
    document = SnapshotDocument(PAGE)
    element = asyncio.run(document.wait_for("li.zp_item", 100))
    assert element.get_text() == "One"

    with pytest.raises(ProbeTimeout):
        asyncio.run(document.wait_for("span.zp_inner", 100))


def test_malformed_locator_raises_document_error() -> None:
    document = SnapshotDocument(PAGE)

    with pytest.raises(DocumentError, match="li\\[class="):
        asyncio.run(document.count("li[class="))
    with pytest.raises(DocumentError):
        asyncio.run(document.wait_for("li[class=", 10))


def test_describe_reports_ancestry_and_sibling_counts() -> None:
    document = SnapshotDocument(PAGE)

    async def scenario() -> None:
        first = await document.query("li.zp_first")
        nodes = await document.describe(first)
        assert [node.tag for node in nodes] == ["li", "ul", "div", "body"]
        assert nodes[0].classes == ("zp_item", "zp_first")
        assert nodes[0].sibling_class_counts == {"zp_item": 2, "zp_first": 0}
        assert nodes[2].attributes == {"id": "main-app"}
        assert len(await document.describe(first, depth=1)) == 1

    asyncio.run(scenario())


def test_goto_switches_between_known_pages() -> None:
    document = SnapshotDocument(
        "<p>start</p>",
        pages={"https://app.test/a": "<p class='a'>A</p>"},
    )

    async def scenario() -> None:
        await document.goto("https://app.test/a", 1000)
        assert document.url == "https://app.test/a"
        assert await document.count("p.a") == 1
        with pytest.raises(ProbeTimeout):
            await document.goto("https://app.test/missing", 1000)

    asyncio.run(scenario())


def test_from_file(tmp_path) -> None:
    path = tmp_path / "people.html"
    path.write_text(PAGE, encoding="utf-8")
    document = SnapshotDocument.from_file(path)
    assert document.url.startswith("file://")
    assert asyncio.run(document.count("#main-app")) == 1
