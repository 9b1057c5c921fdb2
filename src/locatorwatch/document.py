from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterator, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .errors import DocumentError, ProbeTimeout
from .models import ElementNode
from .selector_rules import normalize_classes, normalize_space

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Page

ANCESTRY_DEPTH = 4

_DESCRIBE_ANCESTRY_JS = """
(el, depth) => {
  const nodes = [];
  let current = el;
  while (current && current.nodeType === Node.ELEMENT_NODE && nodes.length < depth) {
    const attrs = {};
    for (const attr of Array.from(current.attributes || [])) {
      if (attr.name !== 'class') attrs[attr.name] = attr.value;
    }
    const classes = Array.from(current.classList || []);
    const siblings = Array.from(current.parentElement ? current.parentElement.children : []);
    const siblingCounts = {};
    for (const cls of classes) {
      siblingCounts[cls] = siblings.filter((sib) => sib !== current && sib.classList.contains(cls)).length;
    }
    nodes.push({
      tag: (current.tagName || '').toLowerCase(),
      attributes: attrs,
      classes,
      siblingClassCounts: siblingCounts,
    });
    current = current.parentElement;
  }
  return nodes;
}
"""


class DocumentQuery(Protocol):
    """Async document-query capability consumed by miner, validator and monitor.

    Element handles are opaque to callers; they are only passed back into the
    same document as ``scope`` or as the subject of a read.
    """

    async def goto(self, url: str, timeout_ms: int) -> None: ...

    async def query_all(self, locator: str, scope: Any | None = None) -> list[Any]: ...

    async def query(self, locator: str, scope: Any | None = None) -> Any | None: ...

    async def count(self, locator: str, scope: Any | None = None) -> int: ...

    async def is_visible(self, element: Any) -> bool: ...

    async def text(self, element: Any) -> str: ...

    async def attribute(self, element: Any, name: str) -> str | None: ...

    async def wait_for(self, locator: str, timeout_ms: int, scope: Any | None = None) -> Any: ...

    async def describe(self, element: Any, depth: int = ANCESTRY_DEPTH) -> list[ElementNode]: ...


LoginHook = Callable[[DocumentQuery], Awaitable[None]]


def element_nodes_from_payload(payload: Any) -> list[ElementNode]:
    nodes: list[ElementNode] = []
    if not isinstance(payload, list):
        return nodes
    for raw in payload:
        if not isinstance(raw, dict):
            continue
        attributes = {str(key): str(value) for key, value in dict(raw.get("attributes") or {}).items()}
        counts = {str(key): int(value) for key, value in dict(raw.get("siblingClassCounts") or {}).items()}
        nodes.append(
            ElementNode(
                tag=str(raw.get("tag") or "").lower(),
                attributes=attributes,
                classes=tuple(normalize_classes(raw.get("classes") or [])),
                sibling_class_counts=counts,
            )
        )
    return nodes


class PlaywrightDocument:
    """DocumentQuery over a live Playwright page.

    The browser, context and page are owned by the host; this adapter only
    queries them. Playwright timeouts surface as ProbeTimeout and every other
    Playwright error as DocumentError.
    """

    def __init__(self, page: Page) -> None:
        self.page = page

    async def goto(self, url: str, timeout_ms: int) -> None:
        with playwright_errors(url, timeout_ms):
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

    async def query_all(self, locator: str, scope: ElementHandle | None = None) -> list[ElementHandle]:
        root = scope if scope is not None else self.page
        with playwright_errors(locator):
            return await root.query_selector_all(locator)

    async def query(self, locator: str, scope: ElementHandle | None = None) -> ElementHandle | None:
        root = scope if scope is not None else self.page
        with playwright_errors(locator):
            return await root.query_selector(locator)

    async def count(self, locator: str, scope: ElementHandle | None = None) -> int:
        return len(await self.query_all(locator, scope))

    async def is_visible(self, element: ElementHandle) -> bool:
        with playwright_errors("<element>"):
            return await element.is_visible()

    async def text(self, element: ElementHandle) -> str:
        with playwright_errors("<element>"):
            return normalize_space(await element.inner_text(), limit=2000)

    async def attribute(self, element: ElementHandle, name: str) -> str | None:
        with playwright_errors("<element>"):
            return await element.get_attribute(name)

    async def wait_for(self, locator: str, timeout_ms: int, scope: ElementHandle | None = None) -> ElementHandle:
        root = scope if scope is not None else self.page
        with playwright_errors(locator, timeout_ms):
            handle = await root.wait_for_selector(locator, state="visible", timeout=timeout_ms)
        if handle is None:
            raise ProbeTimeout(locator, timeout_ms)
        return handle

    async def describe(self, element: ElementHandle, depth: int = ANCESTRY_DEPTH) -> list[ElementNode]:
        with playwright_errors("<element>"):
            payload = await element.evaluate(_DESCRIBE_ANCESTRY_JS, depth)
        return element_nodes_from_payload(payload)


@contextmanager
def playwright_errors(locator: str, timeout_ms: int = 0) -> Iterator[None]:
    try:
        yield
    except PlaywrightTimeoutError as exc:
        raise ProbeTimeout(locator, timeout_ms) from exc
    except PlaywrightError as exc:
        message = str(exc).strip()
        raise DocumentError(locator, message.splitlines()[0] if message else type(exc).__name__) from exc
