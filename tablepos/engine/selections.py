from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from tablepos.engine.errors import SelectionError, SelectionErrorKind
from tablepos.engine.types import EffectiveGroupSet, ModifierGroup, RawSelections, SelectionKind

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    """Outcome of checking raw selections against an effective group set.

    ``selections`` only holds groups with at least one legal choice, in the
    order of the effective group set. ``warnings`` never block an order.
    """

    selections: dict[int, tuple[int, ...]] = field(default_factory=dict)
    errors: list[SelectionError] = field(default_factory=list)
    warnings: list[SelectionError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _dedupe(option_ids: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    unique: list[int] = []
    for option_id in option_ids:
        if option_id in seen:
            continue
        seen.add(option_id)
        unique.append(option_id)
    return unique


def _check_group(group: ModifierGroup, chosen: list[int]) -> tuple[list[int], list[SelectionError]]:
    errors: list[SelectionError] = []
    known: list[int] = []
    for option_id in chosen:
        if group.option(option_id) is None:
            errors.append(
                SelectionError(
                    SelectionErrorKind.UNKNOWN_OPTION,
                    group_id=group.id,
                    option_id=option_id,
                    detail=f"option {option_id} is not available in '{group.name}'",
                )
            )
        else:
            known.append(option_id)

    count = len(known)
    effective_max = group.effective_max
    if group.selection_kind == SelectionKind.SINGLE and count > 1:
        errors.append(
            SelectionError(
                SelectionErrorKind.TOO_MANY_CHOICES,
                group_id=group.id,
                detail=f"'{group.name}' accepts a single choice",
            )
        )
    elif effective_max is not None and count > effective_max:
        errors.append(
            SelectionError(
                SelectionErrorKind.TOO_MANY_CHOICES,
                group_id=group.id,
                detail=f"'{group.name}' accepts at most {effective_max} choices",
            )
        )
    if count < group.min_choices:
        errors.append(
            SelectionError(
                SelectionErrorKind.REQUIRED_CHOICES_MISSING,
                group_id=group.id,
                detail=f"'{group.name}' requires at least {group.min_choices} choices",
            )
        )
    return known, errors


def validate_selections(groups: EffectiveGroupSet, raw: Optional[RawSelections]) -> SelectionResult:
    raw = raw or {}
    result = SelectionResult()

    effective_ids = set(groups.group_ids)
    for group_id in raw:
        if group_id not in effective_ids:
            result.warnings.append(
                SelectionError(
                    SelectionErrorKind.UNASSIGNED_GROUP,
                    group_id=group_id,
                    detail=f"group {group_id} does not apply to product {groups.product_id}; ignored",
                )
            )
            logger.warning(
                "Ignoring selection for unassigned group product_id=%s group_id=%s",
                groups.product_id,
                group_id,
            )

    for group in groups:
        chosen = _dedupe(raw.get(group.id) or ())
        known, errors = _check_group(group, chosen)
        if errors:
            result.errors.extend(errors)
            continue
        if known:
            result.selections[group.id] = tuple(known)

    return result
