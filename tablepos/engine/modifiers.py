from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from tablepos.engine.types import (
    Assignment,
    AssignmentKind,
    EffectiveGroupSet,
    ModifierGroup,
    ModifierOption,
    Product,
)


def _option_sort_key(option: ModifierOption) -> tuple[int, int]:
    return (option.display_order, option.id)


def _group_sort_key(group: ModifierGroup) -> tuple[int, int]:
    return (group.display_order, group.id)


def assigned_group_ids(product: Product, assignments: Iterable[Assignment]) -> tuple[set[int], set[int]]:
    """Split assignments into (category-scoped, product-scoped) group ids for ``product``."""
    from_category: set[int] = set()
    from_product: set[int] = set()
    for assignment in assignments:
        if assignment.kind == AssignmentKind.PRODUCT and assignment.entity_id == product.id:
            from_product.add(assignment.group_id)
        elif (
            assignment.kind == AssignmentKind.CATEGORY
            and product.category_id is not None
            and assignment.entity_id == product.category_id
        ):
            from_category.add(assignment.group_id)
    return from_category, from_product


def merge_groups(
    category_groups: Iterable[ModifierGroup],
    product_groups: Iterable[ModifierGroup],
) -> list[ModifierGroup]:
    """Union by group id; a group reachable both ways is kept once."""
    merged: dict[int, ModifierGroup] = {}
    for group in (*category_groups, *product_groups):
        merged.setdefault(group.id, group)
    return sorted(merged.values(), key=_group_sort_key)


def _with_active_options(group: ModifierGroup) -> ModifierGroup:
    options = sorted((option for option in group.options if option.active), key=_option_sort_key)
    return replace(group, options=tuple(options))


def resolve_effective_groups(
    product: Optional[Product],
    assignments: Iterable[Assignment],
    groups: Iterable[ModifierGroup],
) -> EffectiveGroupSet:
    """Effective modifier groups for ``product``.

    Active groups assigned to the product's category and to the product itself
    are merged by id, each carrying only its active options. Groups and options
    are ordered by (display order, id). Inactive products resolve to an empty set.
    """
    if product is None:
        return EffectiveGroupSet(product_id=0)
    if not product.active:
        return EffectiveGroupSet(product_id=product.id)

    from_category, from_product = assigned_group_ids(product, assignments)
    active_groups = {group.id: group for group in groups if group.active}

    category_groups = [active_groups[gid] for gid in from_category if gid in active_groups]
    product_groups = [active_groups[gid] for gid in from_product if gid in active_groups]

    resolved = [_with_active_options(group) for group in merge_groups(category_groups, product_groups)]
    return EffectiveGroupSet(product_id=product.id, groups=tuple(resolved))
