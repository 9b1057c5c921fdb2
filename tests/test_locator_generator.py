from locatorwatch.locator_generator import generate_locator, locator_for_node
from locatorwatch.models import ElementNode


def test_test_id_takes_precedence_over_id_and_classes() -> None:
    node = ElementNode(
        "a",
        {"data-testid": "contact-name-cell", "id": "contact-link"},
        ("zp_CaeaN",),
    )
    assert generate_locator([node]) == 'a[data-testid="contact-name-cell"]'


def test_stable_id_is_used_when_no_test_id() -> None:
    assert generate_locator([ElementNode("div", {"id": "main-app"})]) == "#main-app"


def test_volatile_ids_fall_through_to_classes() -> None:
    for volatile in ("ember1234", "radix-:r3:", "a1b2c3d4e5f6a7", "0f8fad5b-d9cb-469f-a165-70867728950e"):
        node = ElementNode("span", {"id": volatile}, ("zp_CaeaN",))
        assert generate_locator([node]) == "span.zp_CaeaN"


def test_unique_semantic_class_uses_longest_prefixed_class() -> None:
    node = ElementNode("span", {}, ("text-sm", "zp_ab", "zp_JTaUA_long"))
    assert generate_locator([node]) == "span.zp_JTaUA_long"


def test_shared_class_adds_secondary_prefixed_class() -> None:
    node = ElementNode(
        "span",
        {},
        ("zp_CaeaN", "zp_JTaUA"),
        sibling_class_counts={"zp_CaeaN": 2, "zp_JTaUA": 0},
    )
    assert generate_locator([node]) == "span.zp_CaeaN.zp_JTaUA"


def test_shared_class_without_secondary_is_unminable_by_class_rule() -> None:
    node = ElementNode("span", {}, ("zp_CaeaN",), sibling_class_counts={"zp_CaeaN": 3})
    assert locator_for_node(node) is None


def test_role_with_short_prefixed_classes() -> None:
    node = ElementNode("div", {"role": "row"}, ("zp_ab", "zp_cd", "row"))
    assert generate_locator([node]) == 'div[role="row"].zp_ab.zp_cd'


def test_climbs_to_nearest_minable_ancestor() -> None:
    ancestry = [
        ElementNode("span", {}, ("plain",)),
        ElementNode("div", {}, ()),
        ElementNode("a", {"data-testid": "company-link"}, ()),
        ElementNode("div", {"id": "main-app"}),
    ]
    assert generate_locator(ancestry) == 'a[data-testid="company-link"]'


def test_stops_after_three_ancestors() -> None:
    ancestry = [ElementNode("span") for _ in range(4)] + [ElementNode("div", {"id": "main-app"})]
    assert generate_locator(ancestry) is None
    assert generate_locator(ancestry[1:]) == "#main-app"


def test_custom_class_prefix() -> None:
    node = ElementNode("span", {}, ("zp_CaeaN", "app_titleText"))
    assert generate_locator([node], class_prefix="app_") == "span.app_titleText"


def test_attribute_values_and_identifiers_are_escaped() -> None:
    quoted = ElementNode("button", {"data-testid": 'say "hi"'})
    assert generate_locator([quoted]) == 'button[data-testid="say \\"hi\\""]'

    dotted = ElementNode("span", {}, ("zp_a.b:cdef",))
    assert generate_locator([dotted]) == "span.zp_a\\2e b\\3a cdef"


def test_empty_ancestry_is_unminable() -> None:
    assert generate_locator([]) is None
