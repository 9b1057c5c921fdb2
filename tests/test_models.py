from locatorwatch.models import HealthCategory, HealthReport, LocatorVersion, MiningResult, ProbeResult


def report_with_failures(count: int) -> HealthReport:
    results = [ProbeResult(f"probe {i}", exists=False) for i in range(count)]
    results.append(ProbeResult("healthy", exists=True, count=1))
    return HealthReport("2024-05-01T00:00:00+00:00", [HealthCategory("DATA TABLE", results)])


def test_mining_suggested_only_above_three_failures() -> None:
    assert not report_with_failures(3).mining_suggested
    assert report_with_failures(4).mining_suggested


def test_probe_status() -> None:
    assert ProbeResult("ok", exists=True).status == "pass"
    assert ProbeResult("missing", exists=False).status == "fail"
    assert ProbeResult("modal", exists=True, warning="overlay").status == "warn"
    assert ProbeResult("no modal", exists=False, passed=True).status == "pass"


def test_locator_version_candidates_and_immutability() -> None:
    version = LocatorVersion(
        "current",
        {"table": {"name": "span.a", "rowSelectors": ["div.r1", " ", "div.r2"]}, "modals": [".m1", ".m2"]},
    )

    assert version.candidates("table", "name") == ["span.a"]
    assert version.row_selectors == ["div.r1", "div.r2"]
    assert version.candidates("modals") == [".m1", ".m2"]
    assert version.cell_selector == '[role="cell"]'

    version.section("table")["name"] = "changed"
    assert version.value("table", "name") == "span.a"

    updated = version.with_sections({"table": {"name": "span.b", "rowSelectors": ["div.r1"]}})
    assert updated.version == "current"
    assert updated.value("table", "name") == "span.b"
    assert version.value("table", "name") == "span.a"


def test_mining_result_mapping_excludes_row_class() -> None:
    mining = MiningResult(fields={"name": "span.a", "rowClass": "div.zp_long_row_class", "email": ""})
    assert mining.locator_mapping() == {"name": "span.a"}
    assert len(mining) == 3
