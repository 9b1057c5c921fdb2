import asyncio

from locatorwatch.errors import DocumentError, ProbeTimeout
from locatorwatch.resolution import resolve_first_match


class RecordingDocument:
    def __init__(
        self,
        counts: dict[str, int],
        rendered: set[str] | None = None,
        broken: set[str] | None = None,
    ) -> None:
        self.counts = counts
        self.rendered = rendered if rendered is not None else {key for key, value in counts.items() if value}
        self.broken = broken or set()
        self.count_calls: list[str] = []
        self.wait_calls: list[str] = []

    async def count(self, locator: str, scope=None) -> int:
        self.count_calls.append(locator)
        if locator in self.broken:
            raise DocumentError(locator, "Malformed attribute selector")
        return self.counts.get(locator, 0)

    async def wait_for(self, locator: str, timeout_ms: int, scope=None) -> str:
        self.wait_calls.append(locator)
        if locator not in self.rendered:
            raise ProbeTimeout(locator, timeout_ms)
        return locator


def test_first_match_wins_without_evaluating_later_candidates() -> None:
    document = RecordingDocument({"A": 0, "B": 2, "C": 5})
    resolution = asyncio.run(resolve_first_match(document, ["A", "B", "C"]))

    assert resolution is not None
    assert resolution.locator == "B"
    assert resolution.count == 2
    assert resolution.attempted == ("A", "B")
    assert document.count_calls == ["A", "B"]


def test_accept_check_can_veto_a_matching_candidate() -> None:
    document = RecordingDocument({"A": 3, "B": 2})

    async def accept(candidate: str) -> bool:
        return candidate != "A"

    resolution = asyncio.run(resolve_first_match(document, ["A", "B"], accept=accept))
    assert resolution is not None
    assert resolution.locator == "B"


def test_timeouts_move_on_to_next_candidate() -> None:
    document = RecordingDocument({"A": 1, "B": 4}, rendered={"B"})
    resolution = asyncio.run(resolve_first_match(document, ["A", "B"], timeout_ms=10))

    assert resolution is not None
    assert resolution.locator == "B"
    assert document.wait_calls == ["A", "B"]
    assert document.count_calls == ["B"]


def test_no_candidate_matches() -> None:
    document = RecordingDocument({"A": 0})
    assert asyncio.run(resolve_first_match(document, ["A", "missing"])) is None
    assert asyncio.run(resolve_first_match(document, [])) is None


def test_rejected_candidate_is_skipped() -> None:
    document = RecordingDocument({"div[role=": 3, "B": 2}, broken={"div[role="})
    resolution = asyncio.run(resolve_first_match(document, ["div[role=", "B"]))

    assert resolution is not None
    assert resolution.locator == "B"
    assert resolution.attempted == ("div[role=", "B")


def test_failing_accept_check_counts_as_no_match() -> None:
    document = RecordingDocument({"A": 3, "B": 2})

    async def accept(candidate: str) -> bool:
        if candidate == "A":
            raise DocumentError(candidate, "Element is detached")
        return True

    resolution = asyncio.run(resolve_first_match(document, ["A", "B"], accept=accept))
    assert resolution is not None
    assert resolution.locator == "B"
