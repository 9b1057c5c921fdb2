from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from .document import ANCESTRY_DEPTH
from .errors import DocumentError, ProbeTimeout
from .models import ElementNode
from .selector_rules import normalize_classes, normalize_space, to_soupsieve_selector

_HIDDEN_STYLE_PATTERN = re.compile(r"(display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)
_NON_RENDERED_TAGS = {"head", "script", "style", "template", "noscript", "meta", "link", "title"}


class SnapshotDocument:
    """DocumentQuery over static HTML.

    Used to mine or probe a saved copy of the page without a browser. Nothing
    loads asynchronously, so waits resolve immediately or time out at once.
    Visibility follows the markup only: ``hidden``, inline ``display:none`` /
    ``visibility:hidden``, hidden inputs and non-rendered tags.
    """

    def __init__(self, html: str, *, url: str = "about:blank", pages: Mapping[str, str] | None = None) -> None:
        self.url = url
        self._pages = dict(pages or {})
        self._soup = BeautifulSoup(html, "html.parser")

    @classmethod
    def from_file(cls, path: Path) -> SnapshotDocument:
        return cls(path.read_text(encoding="utf-8"), url=path.resolve().as_uri())

    async def goto(self, url: str, timeout_ms: int) -> None:
        if url in self._pages:
            self._soup = BeautifulSoup(self._pages[url], "html.parser")
        elif self._pages:
            raise ProbeTimeout(url, timeout_ms)
        self.url = url

    async def query_all(self, locator: str, scope: Tag | None = None) -> list[Tag]:
        root = scope if scope is not None else self._soup
        try:
            return list(root.select(to_soupsieve_selector(locator)))
        except (SelectorSyntaxError, NotImplementedError) as exc:
            raise DocumentError(locator, str(exc).splitlines()[0]) from exc

    async def query(self, locator: str, scope: Tag | None = None) -> Tag | None:
        matches = await self.query_all(locator, scope)
        return matches[0] if matches else None

    async def count(self, locator: str, scope: Tag | None = None) -> int:
        return len(await self.query_all(locator, scope))

    async def is_visible(self, element: Tag) -> bool:
        return _is_rendered(element)

    async def text(self, element: Tag) -> str:
        return normalize_space(element.get_text(" "), limit=2000)

    async def attribute(self, element: Tag, name: str) -> str | None:
        value = element.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    async def wait_for(self, locator: str, timeout_ms: int, scope: Tag | None = None) -> Tag:
        for element in await self.query_all(locator, scope):
            if _is_rendered(element):
                return element
        raise ProbeTimeout(locator, timeout_ms)

    async def describe(self, element: Tag, depth: int = ANCESTRY_DEPTH) -> list[ElementNode]:
        nodes: list[ElementNode] = []
        node: Tag | None = element
        while isinstance(node, Tag) and node.name != "[document]" and len(nodes) < depth:
            classes = normalize_classes(node.get("class") or [])
            attributes = {
                key: " ".join(value) if isinstance(value, list) else str(value)
                for key, value in node.attrs.items()
                if key != "class"
            }
            siblings = []
            if isinstance(node.parent, Tag):
                siblings = [sib for sib in node.parent.find_all(recursive=False) if sib is not node]
            counts = {
                cls: sum(1 for sib in siblings if cls in (sib.get("class") or []))
                for cls in classes
            }
            nodes.append(
                ElementNode(
                    tag=node.name.lower(),
                    attributes=attributes,
                    classes=tuple(classes),
                    sibling_class_counts=counts,
                )
            )
            node = node.parent
        return nodes


def _is_rendered(element: Tag) -> bool:
    node: Tag | None = element
    while isinstance(node, Tag) and node.name != "[document]":
        if node.name in _NON_RENDERED_TAGS:
            return False
        if node.has_attr("hidden"):
            return False
        if _HIDDEN_STYLE_PATTERN.search(str(node.get("style") or "")):
            return False
        if node.name == "input" and str(node.get("type") or "").lower() == "hidden":
            return False
        node = node.parent
    return True
