from __future__ import annotations

import re
from typing import Iterable, Sequence

DEFAULT_CLASS_PREFIX = "zp_"

# Minimum class lengths (exclusive) for prefix-matched classes.
ELEMENT_CLASS_MIN_LENGTH = 6
ROW_CLASS_MIN_LENGTH = 10

_CSS_SAFE_ID_PATTERN = re.compile(r"^-?[A-Za-z_][A-Za-z0-9_-]*$")

_VOLATILE_ID_PATTERNS = (
    re.compile(r":"),
    re.compile(r"\d{4,}"),
    re.compile(r"[a-f0-9]{10,}", re.IGNORECASE),
    re.compile(r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$", re.IGNORECASE),
)

_PLAYWRIGHT_TEXT_PSEUDO = re.compile(r":has-text\(")


def normalize_space(value: str | None, limit: int = 200) -> str:
    if not value:
        return ""
    compact = re.sub(r"\s+", " ", str(value)).strip()
    return compact[:limit] if compact else ""


def normalize_classes(raw: Sequence[str] | str | None) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, str):
        items = raw.split()
    else:
        items = [item for item in raw if isinstance(item, str)]

    seen: set[str] = set()
    normalized: list[str] = []
    for item in items:
        clean = item.strip()
        if not clean or clean in seen:
            continue
        seen.add(clean)
        normalized.append(clean)
    return normalized


def is_css_safe_id(value: str) -> bool:
    return bool(_CSS_SAFE_ID_PATTERN.fullmatch(value.strip()))


def is_volatile_id(value: str) -> bool:
    text = value.strip()
    if not text:
        return True
    return any(pattern.search(text) for pattern in _VOLATILE_ID_PATTERNS)


def escape_css_attribute_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def escape_css_identifier(value: str) -> str:
    escaped: list[str] = []
    for char in value:
        if char.isalnum() or char in ("-", "_"):
            escaped.append(char)
        else:
            escaped.append(f"\\{ord(char):x} ")
    return "".join(escaped)


def prefixed_classes(classes: Iterable[str], prefix: str, min_length: int = 0) -> list[str]:
    return [cls for cls in classes if cls.startswith(prefix) and len(cls) > min_length]


def longest_class(classes: Sequence[str]) -> str | None:
    if not classes:
        return None
    # sorted() is stable, so equal lengths keep document order.
    return sorted(classes, key=len, reverse=True)[0]


def mine_row_class(tag: str, classes: Sequence[str], prefix: str = DEFAULT_CLASS_PREFIX) -> str | None:
    candidate = longest_class(prefixed_classes(normalize_classes(classes), prefix, ROW_CLASS_MIN_LENGTH))
    if not candidate:
        return None
    return f"{(tag or 'div').lower()}.{escape_css_identifier(candidate)}"


def to_soupsieve_selector(locator: str) -> str:
    return _PLAYWRIGHT_TEXT_PSEUDO.sub(":-soup-contains(", locator)
