from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from .document import DocumentQuery
from .errors import LocatorWatchError, ProbeTimeout

AcceptCheck = Callable[[str], Awaitable[bool]]

logger = logging.getLogger("locatorwatch.resolution")


@dataclass(frozen=True, slots=True)
class Resolution:
    locator: str
    count: int
    attempted: tuple[str, ...]


async def resolve_first_match(
    document: DocumentQuery,
    candidates: Sequence[str],
    *,
    accept: AcceptCheck | None = None,
    timeout_ms: int | None = None,
) -> Resolution | None:
    """Try ``candidates`` in order and return the first one that matches.

    With ``timeout_ms`` each candidate is first awaited for that long; a
    timeout just moves on to the next candidate, and so does a candidate the
    document rejects outright. ``accept`` can veto a candidate that matches
    but is otherwise unusable. Candidates after the winning one are never
    queried.
    """
    attempted: list[str] = []
    for candidate in candidates:
        attempted.append(candidate)
        try:
            if timeout_ms is not None:
                await document.wait_for(candidate, timeout_ms)
            count = await document.count(candidate)
            if count <= 0:
                continue
            if accept is not None and not await accept(candidate):
                continue
        except ProbeTimeout:
            continue
        except LocatorWatchError as exc:
            logger.debug("Skipping candidate %r: %s", candidate, exc)
            continue
        return Resolution(locator=candidate, count=count, attempted=tuple(attempted))
    return None
