from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Mapping

VersionTag = Literal["current", "fallback"]
ProbeStatus = Literal["pass", "fail", "warn"]
PassStatus = Literal[
    "updated",
    "unchanged",
    "rejected",
    "row_detection_failed",
    "write_failed",
    "aborted",
]

ROW_CLASS_FIELD = "rowClass"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ExtractionStrategy(str, Enum):
    PLAIN_TEXT = "plain-text"
    ANCHOR_NESTED_TEXT = "anchor-nested-text"
    ALTERNATE_STATE = "alternate-state"
    LINK_ATTRIBUTE = "link-attribute"


@dataclass(frozen=True, slots=True)
class ElementNode:
    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    classes: tuple[str, ...] = ()
    sibling_class_counts: dict[str, int] = field(default_factory=dict)

    def attr(self, key: str) -> str | None:
        raw = self.attributes.get(key)
        if raw is None:
            return None
        value = str(raw).strip()
        return value or None


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    field: str
    cell_index: int
    strategy: ExtractionStrategy
    label: str
    alternate_field: str | None = None


@dataclass(frozen=True, slots=True)
class LocatorVersion:
    version: VersionTag
    sections: Mapping[str, Any]

    def section(self, name: str) -> dict[str, Any]:
        raw = self.sections.get(name)
        if isinstance(raw, Mapping):
            return copy.deepcopy(dict(raw))
        return {}

    def value(self, section: str, key: str) -> Any:
        return copy.deepcopy(self.section(section).get(key))

    def candidates(self, section: str, key: str = "") -> list[str]:
        raw = self.section(section).get(key) if key else self.sections.get(section)
        if raw is None:
            return []
        if isinstance(raw, str):
            return [raw] if raw.strip() else []
        return [str(item) for item in raw if str(item).strip()]

    @property
    def row_selectors(self) -> list[str]:
        return self.candidates("table", "rowSelectors")

    @property
    def cell_selector(self) -> str:
        return str(self.section("table").get("cell") or '[role="cell"]')

    def with_sections(self, sections: Mapping[str, Any]) -> LocatorVersion:
        return LocatorVersion(version=self.version, sections=copy.deepcopy(dict(sections)))

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(dict(self.sections))


@dataclass(frozen=True, slots=True)
class ChangeEntry:
    field: str
    old: Any
    new: Any
    timestamp: str

    def describe(self) -> str:
        if self.old is None:
            return f"Added {self.field}: {self.new!r}"
        return f"{self.field}: {self.old!r} -> {self.new!r}"

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "old": self.old, "new": self.new, "timestamp": self.timestamp}


@dataclass(frozen=True, slots=True)
class LocatorSet:
    current: LocatorVersion
    fallback: LocatorVersion
    last_updated: str | None = None
    changes: tuple[ChangeEntry, ...] = ()

    def row_candidates(self, include_fallback: bool = False) -> list[str]:
        ordered = list(self.current.row_selectors)
        if include_fallback:
            for selector in self.fallback.row_selectors:
                if selector not in ordered:
                    ordered.append(selector)
        return ordered

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastUpdated": self.last_updated,
            "changes": [change.to_dict() for change in self.changes],
            "current": self.current.to_dict(),
            "fallback": self.fallback.to_dict(),
        }


@dataclass(slots=True)
class MiningResult:
    fields: dict[str, str] = field(default_factory=dict)
    row_class: str | None = None
    row_selector: str | None = None
    unmined: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.fields)

    def locator_mapping(self) -> dict[str, str]:
        return {key: value for key, value in self.fields.items() if key != ROW_CLASS_FIELD and value}


@dataclass(frozen=True, slots=True)
class FieldValidation:
    field: str
    locator: str
    match_count: int
    visible: bool
    error: str | None = None

    @property
    def valid(self) -> bool:
        return self.match_count > 0 and self.visible


@dataclass(frozen=True, slots=True)
class ValidationReport:
    fields: tuple[FieldValidation, ...]
    threshold: float = 0.70

    @property
    def attempted(self) -> int:
        return len(self.fields)

    @property
    def valid_count(self) -> int:
        return sum(1 for item in self.fields if item.valid)

    @property
    def validity(self) -> float:
        if not self.fields:
            return 0.0
        return self.valid_count / self.attempted

    @property
    def accepted(self) -> bool:
        # Whole-percent comparison; 7/10 meets a 0.70 threshold.
        if not self.fields:
            return False
        return self.valid_count * 100 >= round(self.threshold * 100) * self.attempted

    def validity_by_field(self) -> dict[str, bool]:
        return {item.field: item.valid for item in self.fields}


@dataclass(frozen=True, slots=True)
class SelfTestResult:
    row_selector: str
    row_count: int
    cell_count: int
    error: str | None = None


@dataclass(slots=True)
class UpdateOutcome:
    changes: list[ChangeEntry]
    backup_path: str | None
    written: bool
    self_test: SelfTestResult | None = None


@dataclass(slots=True)
class ProbeResult:
    description: str
    exists: bool
    count: int = 0
    matched_locator: str | None = None
    text_preview: str | None = None
    warning: str | None = None
    passed: bool | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.passed is None:
            self.passed = self.exists

    @property
    def status(self) -> ProbeStatus:
        if not self.passed:
            return "fail"
        if self.warning:
            return "warn"
        return "pass"

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "status": self.status,
            "exists": self.exists,
            "count": self.count,
            "matchedLocator": self.matched_locator,
            "textPreview": self.text_preview,
            "warning": self.warning,
            "error": self.error,
        }


@dataclass(slots=True)
class HealthCategory:
    name: str
    results: list[ProbeResult] = field(default_factory=list)


MINING_SUGGESTED_FAILURES = 3


@dataclass(slots=True)
class HealthReport:
    generated_at: str
    categories: list[HealthCategory] = field(default_factory=list)
    fatal_error: str | None = None

    def _results(self) -> list[ProbeResult]:
        return [result for category in self.categories for result in category.results]

    @property
    def passed(self) -> int:
        return sum(1 for result in self._results() if result.passed)

    @property
    def failed(self) -> int:
        return sum(1 for result in self._results() if not result.passed)

    @property
    def warnings(self) -> int:
        return sum(1 for result in self._results() if result.status == "warn")

    @property
    def total(self) -> int:
        return self.passed + self.failed

    @property
    def success_rate(self) -> float:
        if not self.total:
            return 0.0
        return self.passed / self.total

    @property
    def mining_suggested(self) -> bool:
        return self.failed > MINING_SUGGESTED_FAILURES

    @property
    def recommendation(self) -> str:
        if self.failed > 0 or self.fatal_error:
            return (
                "Review failed locators immediately; this indicates structural changes. "
                "Run a mining pass to generate new locators and verify the results manually in a browser."
            )
        return "All critical locators are stable."

    def to_dict(self) -> dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "categories": [
                {"name": category.name, "results": [result.to_dict() for result in category.results]}
                for category in self.categories
            ],
            "summary": {
                "total": self.total,
                "passed": self.passed,
                "failed": self.failed,
                "warnings": self.warnings,
                "successRate": round(self.success_rate, 4),
                "miningSuggested": self.mining_suggested,
            },
            "recommendation": self.recommendation,
            "fatalError": self.fatal_error,
        }


@dataclass(slots=True)
class MiningPassOutcome:
    status: PassStatus
    mining: MiningResult
    validation: ValidationReport | None = None
    update: UpdateOutcome | None = None
    error: str | None = None
