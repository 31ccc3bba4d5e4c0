from dataclasses import replace

from tablepos.engine.modifiers import assigned_group_ids, merge_groups, resolve_effective_groups
from tablepos.engine.types import Assignment, AssignmentKind, ModifierGroup
from tests.fixtures_data import (
    ALL_GROUPS,
    BURGER,
    BURGER_ASSIGNMENTS,
    BURGERS_CATEGORY_ID,
    FRIES,
    NO_BUN_GROUP,
    SIZE_GROUP,
    TOPPINGS_GROUP,
)


def test_category_and_product_groups_are_merged_in_display_order():
    resolved = resolve_effective_groups(BURGER, BURGER_ASSIGNMENTS, ALL_GROUPS)

    assert resolved.product_id == BURGER.id
    assert resolved.group_ids == [NO_BUN_GROUP.id, SIZE_GROUP.id, TOPPINGS_GROUP.id]


def test_group_assigned_to_category_and_product_appears_once():
    assignments = [
        *BURGER_ASSIGNMENTS,
        Assignment(group_id=SIZE_GROUP.id, kind=AssignmentKind.PRODUCT, entity_id=BURGER.id),
    ]

    resolved = resolve_effective_groups(BURGER, assignments, ALL_GROUPS)

    assert resolved.group_ids.count(SIZE_GROUP.id) == 1
    assert len(resolved) == 3


def test_assignments_for_other_products_and_categories_are_ignored():
    assignments = [
        Assignment(group_id=SIZE_GROUP.id, kind=AssignmentKind.CATEGORY, entity_id=99),
        Assignment(group_id=TOPPINGS_GROUP.id, kind=AssignmentKind.PRODUCT, entity_id=FRIES.id),
    ]

    resolved = resolve_effective_groups(BURGER, assignments, ALL_GROUPS)

    assert resolved.group_ids == []


def test_product_without_category_only_gets_product_groups():
    assignments = [
        Assignment(group_id=SIZE_GROUP.id, kind=AssignmentKind.CATEGORY, entity_id=BURGERS_CATEGORY_ID),
        Assignment(group_id=TOPPINGS_GROUP.id, kind=AssignmentKind.PRODUCT, entity_id=FRIES.id),
    ]

    from_category, from_product = assigned_group_ids(FRIES, assignments)

    assert from_category == set()
    assert from_product == {TOPPINGS_GROUP.id}


def test_inactive_groups_and_options_are_dropped():
    toppings = replace(
        TOPPINGS_GROUP,
        options=tuple(
            replace(option, active=option.name != "Cheese") for option in TOPPINGS_GROUP.options
        ),
    )
    groups = [replace(SIZE_GROUP, active=False), toppings, NO_BUN_GROUP]

    resolved = resolve_effective_groups(BURGER, BURGER_ASSIGNMENTS, groups)

    assert SIZE_GROUP.id not in resolved.group_ids
    assert [option.name for option in resolved.group(TOPPINGS_GROUP.id).options] == ["Bacon", "Onion"]


def test_inactive_or_missing_product_resolves_to_empty_set():
    assert len(resolve_effective_groups(replace(BURGER, active=False), BURGER_ASSIGNMENTS, ALL_GROUPS)) == 0
    assert len(resolve_effective_groups(None, BURGER_ASSIGNMENTS, ALL_GROUPS)) == 0


def test_ties_in_display_order_fall_back_to_group_id():
    first = ModifierGroup(id=7, name="Sauce", display_order=5)
    second = ModifierGroup(id=3, name="Side", display_order=5)

    merged = merge_groups([first], [second])

    assert [group.id for group in merged] == [3, 7]


def test_resolution_is_deterministic_regardless_of_input_order():
    forward = resolve_effective_groups(BURGER, BURGER_ASSIGNMENTS, ALL_GROUPS)
    backward = resolve_effective_groups(BURGER, list(reversed(BURGER_ASSIGNMENTS)), list(reversed(ALL_GROUPS)))

    assert forward == backward
