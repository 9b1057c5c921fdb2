from __future__ import annotations

import logging
from typing import Any

from .document import DocumentQuery
from .locator_store import LocatorStore
from .models import (
    ChangeEntry,
    LocatorSet,
    MiningResult,
    SelfTestResult,
    UpdateOutcome,
    ValidationReport,
    utc_timestamp,
)
from .validation import ensure_accepted

AUTO_UPDATED_ROW_SLOT = 1
AUTO_UPDATED_MARKER = "rowClassAutoUpdated"


def insert_row_class(row_selectors: list[str], row_class: str, auto_updated: str | None = None) -> list[str]:
    """Place ``row_class`` in the auto-updated slot.

    The first entry is never touched. When the slot still holds the class an
    earlier pass mined (``auto_updated``) it is replaced in place; otherwise
    the slot's entry moves down one position together with the rest of the
    list, so hand-written and legacy entries are never dropped.
    """
    if not row_selectors:
        return [row_class]
    if row_class == row_selectors[0]:
        return list(row_selectors)
    if len(row_selectors) > AUTO_UPDATED_ROW_SLOT and row_selectors[AUTO_UPDATED_ROW_SLOT] == row_class:
        return list(row_selectors)
    rest = [selector for selector in row_selectors[AUTO_UPDATED_ROW_SLOT:] if selector != row_class]
    if auto_updated and rest and rest[0] == auto_updated:
        rest = rest[1:]
    return [row_selectors[0], row_class, *rest]


def merge_field_value(old: Any, mined: str) -> Any:
    if isinstance(old, list):
        return [mined, *[candidate for candidate in old if candidate != mined]]
    return mined


class ConfigUpdater:
    def __init__(self, store: LocatorStore, document: DocumentQuery | None = None) -> None:
        self.store = store
        self.document = document
        self.logger = logging.getLogger("locatorwatch.updater")

    async def apply(
        self,
        locators: LocatorSet,
        mining: MiningResult,
        report: ValidationReport,
    ) -> UpdateOutcome:
        ensure_accepted(report)
        self.logger.info("Updating %s with backup...", self.store.path)

        backup_path = self.store.backup()
        self.logger.info("Created backup at %s", backup_path)

        timestamp = utc_timestamp()
        sections = locators.current.to_dict()
        table: dict[str, Any] = dict(sections.get("table") or {})
        changes = self._row_class_changes(table, mining, timestamp)
        changes.extend(self._field_changes(table, mining, timestamp))

        if not changes:
            self.logger.info("No changes needed; all locators are current")
            return UpdateOutcome(changes=[], backup_path=str(backup_path), written=False)

        sections["table"] = table
        updated = LocatorSet(
            current=locators.current.with_sections(sections),
            fallback=locators.fallback,
            last_updated=timestamp,
            changes=tuple(changes),
        )
        self.store.save(updated)
        self.logger.info("Updated %s locator(s):", len(changes))
        for change in changes:
            self.logger.info("  %s", change.describe())

        self_test = await self.self_test() if self.document is not None else None
        return UpdateOutcome(changes=changes, backup_path=str(backup_path), written=True, self_test=self_test)

    def _row_class_changes(self, table: dict[str, Any], mining: MiningResult, timestamp: str) -> list[ChangeEntry]:
        if not mining.row_class:
            return []
        current = [str(item) for item in table.get("rowSelectors") or []]
        auto_updated = table.get(AUTO_UPDATED_MARKER)
        updated = insert_row_class(current, mining.row_class, auto_updated)
        if updated == current:
            return []
        table["rowSelectors"] = updated
        table[AUTO_UPDATED_MARKER] = mining.row_class
        old = None
        if auto_updated and len(current) > AUTO_UPDATED_ROW_SLOT and current[AUTO_UPDATED_ROW_SLOT] == auto_updated:
            old = auto_updated
        return [ChangeEntry(f"table.rowSelectors[{AUTO_UPDATED_ROW_SLOT}]", old, mining.row_class, timestamp)]

    def _field_changes(self, table: dict[str, Any], mining: MiningResult, timestamp: str) -> list[ChangeEntry]:
        changes: list[ChangeEntry] = []
        for key, value in mining.locator_mapping().items():
            old = table.get(key)
            new = merge_field_value(old, value)
            if new == old:
                continue
            table[key] = new
            changes.append(ChangeEntry(f"table.{key}", old, new, timestamp))
        return changes

    async def self_test(self) -> SelfTestResult:
        """Re-resolve the primary row selector after a write. Advisory only."""
        self.logger.info("Testing updated locators...")
        primary = ""
        try:
            reloaded = self.store.load()
            primary = reloaded.current.row_selectors[0]
            row_count = await self.document.count(primary)
            cell_count = 0
            if row_count > 0:
                first_row = await self.document.query(primary)
                cell_count = await self.document.count(reloaded.current.cell_selector, scope=first_row)
        except Exception as exc:
            self.logger.warning("Self-test of updated locators failed: %s", exc)
            return SelfTestResult(row_selector=primary, row_count=0, cell_count=0, error=str(exc))

        self.logger.info("Rows found with updated selector: %s", row_count)
        self.logger.info("Cells in first row: %s", cell_count)
        return SelfTestResult(row_selector=primary, row_count=row_count, cell_count=cell_count)
