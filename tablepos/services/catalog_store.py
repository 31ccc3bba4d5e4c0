from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from tablepos.core.config import DEFAULT_TAX_RATE
from tablepos.core.money import ZERO, to_decimal
from tablepos.engine.errors import CatalogNotFoundError
from tablepos.engine.types import (
    Assignment,
    AssignmentKind,
    ModifierGroup,
    ModifierOption,
    Product,
    SelectionKind,
)
from tablepos.models.modifier_assignment import ModifierAssignment
from tablepos.models.modifier_group import ModifierGroup as ModifierGroupRow
from tablepos.models.modifier_option import ModifierOption as ModifierOptionRow
from tablepos.models.product import Product as ProductRow
from tablepos.models.setting import Setting

logger = logging.getLogger(__name__)

COUPON_SETTING_PREFIX = "coupon."
TAX_RATE_SETTING = "tax.rate"


class CatalogStore(ABC):
    """Read-only catalog access used by the ordering engine."""

    @abstractmethod
    def get_product(self, product_id: int) -> Product:
        """Active product by id; raises CatalogNotFoundError otherwise."""

    @abstractmethod
    def get_effective_assignments(self, category_id: Optional[int], product_id: int) -> list[Assignment]:
        """Assignments targeting the product or its category."""

    @abstractmethod
    def get_groups_with_options(self, group_ids: Iterable[int]) -> list[ModifierGroup]:
        """Groups by id, each carrying its active options."""

    @abstractmethod
    def get_coupon_definitions(self) -> dict[str, str]:
        """Raw coupon definitions keyed by code."""

    @abstractmethod
    def get_tax_rate(self) -> Decimal:
        """Tax rate as a percentage (6 means 6 %)."""


def _selection_kind(raw: Optional[str], group_id: int) -> SelectionKind:
    try:
        return SelectionKind((raw or SelectionKind.SINGLE.value).strip().lower())
    except ValueError:
        logger.warning("Unknown selection_type=%r for modifier group %s; treating as single", raw, group_id)
        return SelectionKind.SINGLE


class SqlCatalogStore(CatalogStore):
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_product(self, product_id: int) -> Product:
        row = (
            self.db.query(ProductRow)
            .filter(ProductRow.id == product_id, ProductRow.active.is_(True))
            .first()
        )
        if not row:
            raise CatalogNotFoundError("product", product_id)
        return Product(
            id=row.id,
            name=row.name,
            code=row.code or "",
            base_price=to_decimal(row.price),
            category_id=row.category_id,
            active=bool(row.active),
        )

    def get_effective_assignments(self, category_id: Optional[int], product_id: int) -> list[Assignment]:
        conditions = [
            and_(
                ModifierAssignment.entity_type == AssignmentKind.PRODUCT.value,
                ModifierAssignment.entity_id == product_id,
            )
        ]
        if category_id is not None:
            conditions.append(
                and_(
                    ModifierAssignment.entity_type == AssignmentKind.CATEGORY.value,
                    ModifierAssignment.entity_id == category_id,
                )
            )
        rows = (
            self.db.query(ModifierAssignment)
            .filter(or_(*conditions))
            .order_by(ModifierAssignment.id.asc())
            .all()
        )
        return [
            Assignment(group_id=row.group_id, kind=AssignmentKind(row.entity_type), entity_id=row.entity_id)
            for row in rows
        ]

    def get_groups_with_options(self, group_ids: Iterable[int]) -> list[ModifierGroup]:
        group_ids = sorted(set(group_ids))
        if not group_ids:
            return []

        groups = (
            self.db.query(ModifierGroupRow)
            .filter(ModifierGroupRow.id.in_(group_ids))
            .order_by(ModifierGroupRow.sort_order.asc(), ModifierGroupRow.id.asc())
            .all()
        )
        options = (
            self.db.query(ModifierOptionRow)
            .filter(ModifierOptionRow.group_id.in_(group_ids), ModifierOptionRow.is_active.is_(True))
            .order_by(ModifierOptionRow.sort_order.asc(), ModifierOptionRow.id.asc())
            .all()
        )

        options_by_group: dict[int, list[ModifierOption]] = {}
        for option in options:
            options_by_group.setdefault(option.group_id, []).append(
                ModifierOption(
                    id=option.id,
                    group_id=option.group_id,
                    name=option.name,
                    price_delta=to_decimal(option.price_delta),
                    display_order=int(option.sort_order or 0),
                    active=bool(option.is_active),
                )
            )

        return [
            ModifierGroup(
                id=group.id,
                name=group.name,
                selection_kind=_selection_kind(group.selection_type, group.id),
                min_choices=max(0, int(group.min_choices or 0)),
                max_choices=int(group.max_choices) if group.max_choices is not None else None,
                display_order=int(group.sort_order or 0),
                active=bool(group.active),
                options=tuple(options_by_group.get(group.id, [])),
            )
            for group in groups
        ]

    def get_coupon_definitions(self) -> dict[str, str]:
        rows = (
            self.db.query(Setting)
            .filter(Setting.key.like(f"{COUPON_SETTING_PREFIX}%"))
            .all()
        )
        return {row.key[len(COUPON_SETTING_PREFIX):]: row.value or "" for row in rows}

    def get_tax_rate(self) -> Decimal:
        row = self.db.query(Setting).filter(Setting.key == TAX_RATE_SETTING).first()
        raw = row.value if row and (row.value or "").strip() else DEFAULT_TAX_RATE
        try:
            rate = to_decimal(raw)
        except ValueError as exc:
            raise ValueError(f"invalid tax rate setting: {raw!r}") from exc
        if rate < ZERO:
            raise ValueError(f"tax rate must not be negative, got {rate}")
        return rate
