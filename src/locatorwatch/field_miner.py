from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from .document import DocumentQuery
from .errors import CriticalPreconditionTimeout, ProbeTimeout, RowDetectionFailure
from .fields import CELL_LAYOUT, descriptor_for
from .locator_generator import generate_locator
from .models import LocatorSet, MiningResult
from .resolution import Resolution, resolve_first_match
from .selector_rules import DEFAULT_CLASS_PREFIX, mine_row_class
from .settings import MIN_ROW_CELLS, PAGE_LOAD_TIMEOUT_MS

FieldStrategy = Callable[[str, Any], Awaitable[dict[str, str]]]

# Field id -> named mining strategy. Fields not listed use DEFAULT_STRATEGY.
FIELD_STRATEGIES: dict[str, str] = {
    "name": "anchor_nested_text",
    "linkedIn": "profile_link",
    "email": "access_gated",
    "phoneRequestLink": "request_or_visible",
}
DEFAULT_STRATEGY = "leaf_scan"


@dataclass(frozen=True, slots=True)
class MinerProbes:
    """Locators the strategies use to find the element worth describing inside a cell."""

    name_anchor: str = 'a[href*="/contacts/"]'
    name_text: str = "span"
    profile_link: str = 'a[href*="linkedin.com/in"]'
    email_text: str = "span.zp_CaeaN.zp_JTaUA"
    email_access: str = 'button:has-text("Access")'
    phone_request: str = 'a:has-text("Request")'
    phone_text: str = "span.zp_CaeaN"
    leaf: str = "a, button, span.zp_CaeaN, [data-testid]"
    phone_pattern: str = r"\+\d+"


class FieldMiner:
    def __init__(
        self,
        document: DocumentQuery,
        locators: LocatorSet,
        *,
        class_prefix: str = DEFAULT_CLASS_PREFIX,
        probes: MinerProbes | None = None,
        layout: Mapping[int, str] | None = None,
        min_cells: int = MIN_ROW_CELLS,
        ready_timeout_ms: int = PAGE_LOAD_TIMEOUT_MS,
    ) -> None:
        self.document = document
        self.locators = locators
        self.class_prefix = class_prefix
        self.probes = probes or MinerProbes()
        self.layout = dict(layout or CELL_LAYOUT)
        self.min_cells = min_cells
        self.ready_timeout_ms = ready_timeout_ms
        self.logger = logging.getLogger("locatorwatch.miner")
        self._strategies: dict[str, FieldStrategy] = {
            "anchor_nested_text": self._mine_anchor_nested_text,
            "profile_link": self._mine_profile_link,
            "access_gated": self._mine_access_gated,
            "request_or_visible": self._mine_request_or_visible,
            "leaf_scan": self._mine_leaf_scan,
        }

    async def mine(self) -> MiningResult:
        self.logger.info("Mining locators from current table...")
        await self._wait_for_table()

        resolution, row = await self.discover_row()
        result = MiningResult(row_selector=resolution.locator)
        self.logger.info("Using row selector: %s (%s rows found)", resolution.locator, resolution.count)

        result.row_class = await self._mine_row_class(row)
        if result.row_class:
            self.logger.info("Mined row class: %s", result.row_class)

        cells = await self.document.query_all(self.locators.current.cell_selector, scope=row)
        self.logger.info("Found %s cells in row", len(cells))

        unmined: list[str] = []
        for index, field_name in sorted(self.layout.items()):
            if index >= len(cells):
                unmined.append(field_name)
                continue
            strategy_name = FIELD_STRATEGIES.get(field_name, DEFAULT_STRATEGY)
            try:
                mined = await self._strategies[strategy_name](field_name, cells[index])
            except Exception as exc:
                self.logger.debug("Failed to mine %s: %s", field_name, exc)
                mined = {}
            if not mined:
                self.logger.debug("No locator mined for %s", field_name)
                unmined.append(field_name)
                continue
            for key, locator in mined.items():
                result.fields[key] = locator
                self.logger.info("Mined %s: %s", key, locator)

        result.unmined = tuple(unmined)
        return result

    async def discover_row(self) -> tuple[Resolution, Any]:
        candidates = self.locators.row_candidates(include_fallback=True)
        cell_selector = self.locators.current.cell_selector

        async def has_enough_cells(candidate: str) -> bool:
            first = await self.document.query(candidate)
            if first is None:
                return False
            cell_count = await self.document.count(cell_selector, scope=first)
            if cell_count < self.min_cells:
                self.logger.debug(
                    "Row selector %s rejected: %s cells, expected at least %s",
                    candidate,
                    cell_count,
                    self.min_cells,
                )
                return False
            return True

        resolution = await resolve_first_match(self.document, candidates, accept=has_enough_cells)
        if resolution is None:
            self.logger.error("No data rows found with at least %s cells", self.min_cells)
            raise RowDetectionFailure(candidates, MiningResult())
        row = await self.document.query(resolution.locator)
        return resolution, row

    async def _wait_for_table(self) -> None:
        ready = self.locators.current.section("table").get("readySelector")
        if not ready:
            return
        try:
            await self.document.wait_for(str(ready), self.ready_timeout_ms)
        except ProbeTimeout as exc:
            raise CriticalPreconditionTimeout(f"Table never became ready: {exc}") from exc

    async def _mine_row_class(self, row: Any) -> str | None:
        nodes = await self.document.describe(row, depth=1)
        if not nodes:
            return None
        return mine_row_class(nodes[0].tag, nodes[0].classes, self.class_prefix)

    async def _locator_for(self, element: Any) -> str | None:
        return generate_locator(await self.document.describe(element), class_prefix=self.class_prefix)

    async def _mine_anchor_nested_text(self, field_name: str, cell: Any) -> dict[str, str]:
        anchor = await self.document.query(self.probes.name_anchor, scope=cell)
        if anchor is None:
            return {}
        anchor_locator = await self._locator_for(anchor)
        if not anchor_locator:
            return {}

        locator = anchor_locator
        inner = await self.document.query(self.probes.name_text, scope=anchor)
        if inner is not None:
            inner_locator = await self._locator_for(inner)
            if inner_locator and inner_locator != anchor_locator:
                locator = f"{anchor_locator} {inner_locator}"
        return {field_name: locator}

    async def _mine_profile_link(self, field_name: str, cell: Any) -> dict[str, str]:
        if await self.document.query(self.probes.profile_link, scope=cell) is None:
            return {}
        return {field_name: self.probes.profile_link}

    async def _mine_access_gated(self, field_name: str, cell: Any) -> dict[str, str]:
        if await self.document.query(self.probes.email_access, scope=cell) is not None:
            return {_alternate_key(field_name): self.probes.email_access}

        value = await self.document.query(self.probes.email_text, scope=cell)
        if value is None:
            return {}
        locator = await self._locator_for(value)
        return {field_name: locator} if locator else {}

    async def _mine_request_or_visible(self, field_name: str, cell: Any) -> dict[str, str]:
        link = await self.document.query(self.probes.phone_request, scope=cell)
        if link is not None:
            locator = await self._locator_for(link)
            return {field_name: locator} if locator else {}

        value = await self.document.query(self.probes.phone_text, scope=cell)
        if value is None:
            return {}
        if not re.search(self.probes.phone_pattern, await self.document.text(value)):
            return {}
        locator = await self._locator_for(value)
        return {_alternate_key(field_name): locator} if locator else {}

    async def _mine_leaf_scan(self, field_name: str, cell: Any) -> dict[str, str]:
        for element in await self.document.query_all(self.probes.leaf, scope=cell):
            if not await self.document.is_visible(element):
                continue
            locator = await self._locator_for(element)
            if not locator:
                continue
            for match in await self.document.query_all(locator):
                if await self.document.is_visible(match):
                    return {field_name: locator}
        return {}


def _alternate_key(field_name: str) -> str:
    descriptor = descriptor_for(field_name)
    if descriptor is None or not descriptor.alternate_field:
        return field_name
    return descriptor.alternate_field
