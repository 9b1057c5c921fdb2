import asyncio
import json

import pytest

from locatorwatch import locator_store
from locatorwatch.config_updater import ConfigUpdater, insert_row_class, merge_field_value
from locatorwatch.errors import ConfigWriteFailure, ValidationRejected
from locatorwatch.locator_store import LocatorStore
from locatorwatch.models import FieldValidation, MiningResult, ValidationReport
from locatorwatch.snapshot_document import SnapshotDocument
from synthetic_pages import LONG_ROW_CLASS, locator_payload, table_page, write_locators

ORIGINAL_ROWS = [
    'div[role="row"][aria-rowindex]:not([aria-rowindex="0"])',
    "div.zp_Uiy0R",
    'div[role="row"]:not(:has([role="columnheader"]))',
]


def accepted_report(mining: MiningResult) -> ValidationReport:
    return ValidationReport(
        tuple(FieldValidation(key, value, 1, True) for key, value in mining.locator_mapping().items())
    )


def make_store(tmp_path, **table_overrides) -> LocatorStore:
    path = write_locators(tmp_path / "locators.json", locator_payload(**table_overrides))
    return LocatorStore(path)


def apply(store: LocatorStore, mining: MiningResult, document=None):
    updater = ConfigUpdater(store, document)
    return asyncio.run(updater.apply(store.load(), mining, accepted_report(mining)))


def test_insert_row_class_keeps_first_entry_and_every_legacy_entry() -> None:
    assert insert_row_class(["A", "B", "C"], "X") == ["A", "X", "B", "C"]
    assert insert_row_class(["A", "X", "B"], "X") == ["A", "X", "B"]
    assert insert_row_class(["A", "B", "X"], "X") == ["A", "X", "B"]
    assert insert_row_class(["X", "B"], "X") == ["X", "B"]
    assert insert_row_class(["A"], "X") == ["A", "X"]
    assert insert_row_class([], "X") == ["X"]


def test_insert_row_class_replaces_the_previously_mined_class() -> None:
    assert insert_row_class(["A", "M", "B"], "X", auto_updated="M") == ["A", "X", "B"]
    assert insert_row_class(["A", "M", "X", "B"], "X", auto_updated="M") == ["A", "X", "B"]
    assert insert_row_class(["A", "B"], "X", auto_updated="M") == ["A", "X", "B"]
    assert insert_row_class(["A", "M"], "M", auto_updated="M") == ["A", "M"]


def test_merge_field_value_moves_mined_candidate_to_front() -> None:
    assert merge_field_value(["a", "b", "c"], "b") == ["b", "a", "c"]
    assert merge_field_value(["a"], "z") == ["z", "a"]
    assert merge_field_value("span.old", "span.new") == "span.new"
    assert merge_field_value(None, "span.new") == "span.new"


def test_priority_preserved_after_row_class_update(tmp_path) -> None:
    store = make_store(tmp_path)
    mining = MiningResult(fields={"jobTitle": "span.zp_FEm_X"}, row_class=f"div.{LONG_ROW_CLASS}")

    outcome = apply(store, mining)

    rows = store.load().current.row_selectors
    assert rows[0] == ORIGINAL_ROWS[0]
    assert rows[1] == f"div.{LONG_ROW_CLASS}"
    assert rows[2:] == ORIGINAL_ROWS[1:]
    assert outcome.changes[0].field == "table.rowSelectors[1]"
    assert outcome.changes[0].old is None
    assert store.load().current.value("table", "rowClassAutoUpdated") == f"div.{LONG_ROW_CLASS}"


def test_later_row_class_replaces_earlier_mined_class(tmp_path) -> None:
    store = make_store(tmp_path)
    first_class = f"div.{LONG_ROW_CLASS}"
    second_class = "div.zp_second_rowcls"

    apply(store, MiningResult(fields={"jobTitle": "span.zp_FEm_X"}, row_class=first_class))
    outcome = apply(store, MiningResult(fields={"jobTitle": "span.zp_FEm_X"}, row_class=second_class))

    rows = store.load().current.row_selectors
    assert rows == [ORIGINAL_ROWS[0], second_class, *ORIGINAL_ROWS[1:]]
    assert first_class not in rows
    assert "div.zp_Uiy0R" in rows
    assert outcome.changes[0].old == first_class
    assert outcome.changes[0].new == second_class
    assert store.load().current.value("table", "rowClassAutoUpdated") == second_class


def test_second_identical_apply_changes_nothing(tmp_path) -> None:
    store = make_store(tmp_path, jobTitle="span.zp_stale")
    mining = MiningResult(
        fields={"jobTitle": "span.zp_FEm_X", "rowClass": f"div.{LONG_ROW_CLASS}"},
        row_class=f"div.{LONG_ROW_CLASS}",
    )

    first = apply(store, mining)
    written = store.path.read_text(encoding="utf-8")
    second = apply(store, mining)

    assert len(first.changes) == 2
    assert first.written
    assert second.changes == []
    assert not second.written
    assert store.path.read_text(encoding="utf-8") == written


def test_backup_holds_pre_update_content(tmp_path) -> None:
    store = make_store(tmp_path, jobTitle="span.zp_stale")
    before = store.path.read_text(encoding="utf-8")

    outcome = apply(store, MiningResult(fields={"jobTitle": "span.zp_FEm_X"}))

    assert outcome.backup_path == str(store.backup_path)
    assert store.backup_path.read_text(encoding="utf-8") == before
    saved = json.loads(store.path.read_text(encoding="utf-8"))
    assert saved["current"]["table"]["jobTitle"] == "span.zp_FEm_X"
    assert saved["changes"][0]["old"] == "span.zp_stale"
    assert saved["lastUpdated"]
    assert saved["fallback"] == locator_payload()["fallback"]


def test_list_valued_fields_keep_their_other_candidates(tmp_path) -> None:
    store = make_store(tmp_path, jobTitle=["span.zp_old", "span.zp_FEm_X"])
    apply(store, MiningResult(fields={"jobTitle": "span.zp_FEm_X"}))
    assert store.load().current.value("table", "jobTitle") == ["span.zp_FEm_X", "span.zp_old"]


def test_rejected_report_writes_nothing(tmp_path) -> None:
    store = make_store(tmp_path)
    before = store.path.read_text(encoding="utf-8")
    mining = MiningResult(fields={"jobTitle": "span.zp_FEm_X"})
    rejected = ValidationReport((FieldValidation("jobTitle", "span.zp_FEm_X", 0, False),))

    with pytest.raises(ValidationRejected):
        asyncio.run(ConfigUpdater(store).apply(store.load(), mining, rejected))

    assert store.path.read_text(encoding="utf-8") == before
    assert not store.backup_path.exists()


def test_failed_write_leaves_original_file_intact(tmp_path, monkeypatch) -> None:
    store = make_store(tmp_path, jobTitle="span.zp_stale")
    before = store.path.read_text(encoding="utf-8")

    def refuse_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(locator_store.os, "replace", refuse_replace)

    with pytest.raises(ConfigWriteFailure, match="disk full"):
        apply(store, MiningResult(fields={"jobTitle": "span.zp_FEm_X"}))

    assert store.path.read_text(encoding="utf-8") == before
    assert store.backup_path.read_text(encoding="utf-8") == before
    assert sorted(item.name for item in tmp_path.iterdir()) == ["locators.json", "locators.json.backup"]


def test_self_test_counts_rows_with_updated_selector(tmp_path) -> None:
    store = make_store(tmp_path, jobTitle="span.zp_stale")
    document = SnapshotDocument(table_page(rows=4))

    outcome = apply(store, MiningResult(fields={"jobTitle": "span.zp_FEm_X"}), document)

    assert outcome.self_test is not None
    assert outcome.self_test.row_count == 4
    assert outcome.self_test.cell_count == 13
    assert outcome.self_test.error is None
