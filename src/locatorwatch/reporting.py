from __future__ import annotations

import json
from pathlib import Path

from .models import HealthReport

_RULE = "-" * 50
_STATUS_MARKS = {"pass": "✅", "warn": "✅", "fail": "❌"}


def render_text_report(report: HealthReport) -> str:
    lines = [
        "=== SELECTOR MONITORING REPORT ===",
        f"Generated: {report.generated_at}",
        "==================================",
        "",
    ]
    for category in report.categories:
        lines.append(f"## {category.name}")
        lines.append(_RULE)
        for result in category.results:
            count_info = f" (Count: {result.count})" if result.count > 0 else ""
            locator_info = f" [Selector: {result.matched_locator}]" if result.exists and result.matched_locator else ""
            lines.append(f"{_STATUS_MARKS[result.status]} {result.description}{count_info}{locator_info}")
            if result.text_preview:
                lines.append(f'   Text: "{result.text_preview}"')
            if result.warning:
                lines.append(f"   ⚠️ Warning: {result.warning}")
            if result.error:
                lines.append(f"   Error: {result.error}")
        lines.append("")

    lines.extend(
        [
            "=== SUMMARY ===",
            f"Total checks: {report.total}",
            f"✅ Passed: {report.passed}",
            f"❌ Failed: {report.failed}",
            f"⚠️ Warnings: {report.warnings}",
            f"Success rate: {report.success_rate * 100:.1f}%",
            f"Mining suggested: {'yes' if report.mining_suggested else 'no'}",
            "",
            "=== RECOMMENDATIONS ===",
            report.recommendation,
        ]
    )
    if report.fatal_error:
        lines.extend(["", "=== MONITORING ERROR ===", report.fatal_error, "Partial results are listed above."])
    return "\n".join(lines) + "\n"


def write_report(report: HealthReport, path: Path) -> tuple[Path, Path]:
    """Write the text report to ``path`` and its JSON form next to it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_text_report(report), encoding="utf-8")
    json_path = path.with_suffix(".json")
    json_path.write_text(json.dumps(report.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return path, json_path
