from __future__ import annotations

from typing import Callable, Sequence

from .models import ElementNode
from .selector_rules import (
    DEFAULT_CLASS_PREFIX,
    ELEMENT_CLASS_MIN_LENGTH,
    escape_css_attribute_value,
    escape_css_identifier,
    is_css_safe_id,
    is_volatile_id,
    longest_class,
    normalize_classes,
    prefixed_classes,
)

MAX_ANCESTOR_HOPS = 3

Rule = Callable[[ElementNode, str], "str | None"]


def generate_locator(
    ancestry: Sequence[ElementNode],
    *,
    class_prefix: str = DEFAULT_CLASS_PREFIX,
) -> str | None:
    """Propose a locator for the first node of ``ancestry``.

    ``ancestry`` lists the element itself followed by its ancestors, closest
    first. When the element yields nothing, up to three ancestors are tried in
    order. ``None`` means the element is unminable, which callers treat as a
    normal outcome.
    """
    for node in list(ancestry)[: MAX_ANCESTOR_HOPS + 1]:
        locator = locator_for_node(node, class_prefix=class_prefix)
        if locator:
            return locator
    return None


def locator_for_node(node: ElementNode, *, class_prefix: str = DEFAULT_CLASS_PREFIX) -> str | None:
    for rule in _RULES:
        locator = rule(node, class_prefix)
        if locator:
            return locator
    return None


def _tag(node: ElementNode) -> str:
    return (node.tag or "").strip().lower() or "*"


def _test_id_rule(node: ElementNode, _prefix: str) -> str | None:
    value = node.attr("data-testid")
    if not value:
        return None
    return f'{_tag(node)}[data-testid="{escape_css_attribute_value(value)}"]'


def _id_rule(node: ElementNode, _prefix: str) -> str | None:
    value = node.attr("id")
    if not value or is_volatile_id(value) or not is_css_safe_id(value):
        return None
    return f"#{value}"


def _semantic_class_rule(node: ElementNode, prefix: str) -> str | None:
    classes = normalize_classes(node.classes)
    primary = longest_class(prefixed_classes(classes, prefix, ELEMENT_CLASS_MIN_LENGTH))
    if not primary:
        return None

    tag = _tag(node)
    if node.sibling_class_counts.get(primary, 0) == 0:
        return f"{tag}.{escape_css_identifier(primary)}"

    secondary = next((cls for cls in classes if cls.startswith(prefix) and cls != primary), None)
    if secondary:
        return f"{tag}.{escape_css_identifier(primary)}.{escape_css_identifier(secondary)}"
    return None


def _role_rule(node: ElementNode, prefix: str) -> str | None:
    role = node.attr("role")
    if not role:
        return None
    classes = prefixed_classes(normalize_classes(node.classes), prefix)
    if not classes:
        return None
    joined = ".".join(escape_css_identifier(cls) for cls in classes)
    return f'{_tag(node)}[role="{escape_css_attribute_value(role)}"].{joined}'


_RULES: tuple[Rule, ...] = (
    _test_id_rule,
    _id_rule,
    _semantic_class_rule,
    _role_rule,
)
