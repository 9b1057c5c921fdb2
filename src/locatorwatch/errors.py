from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import MiningResult, ValidationReport


class LocatorWatchError(Exception):
    """Base class for failures surfaced by locatorwatch."""


class LocatorSetInvalid(LocatorWatchError):
    pass


class ProbeTimeout(LocatorWatchError):
    def __init__(self, locator: str, timeout_ms: int) -> None:
        super().__init__(f"Timed out after {timeout_ms}ms waiting for {locator!r}")
        self.locator = locator
        self.timeout_ms = timeout_ms


class CriticalPreconditionTimeout(LocatorWatchError):
    """A page-level precondition never appeared; the whole run is aborted."""


class RowDetectionFailure(LocatorWatchError):
    def __init__(self, candidates: list[str], result: MiningResult) -> None:
        tried = ", ".join(candidates) or "<none>"
        super().__init__(f"No row selector matched a row with enough cells (tried: {tried})")
        self.candidates = candidates
        self.result = result


class ValidationRejected(LocatorWatchError):
    def __init__(self, report: ValidationReport) -> None:
        super().__init__(
            f"Validation rejected: {report.valid_count}/{report.attempted} locators valid "
            f"({report.validity:.0%} < {report.threshold:.0%})"
        )
        self.report = report


class ConfigWriteFailure(LocatorWatchError):
    pass


class DocumentError(LocatorWatchError):
    """The document rejected a query or navigation for a reason other than a timeout."""

    def __init__(self, locator: str, reason: str) -> None:
        super().__init__(f"{reason} ({locator!r})")
        self.locator = locator
        self.reason = reason
