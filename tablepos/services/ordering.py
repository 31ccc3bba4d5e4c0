"""Caller-facing ordering operations.

``OrderingService`` wires the catalog, the pure engine components and the
table consolidator together. The flow for one submission is always
catalog -> resolve groups -> validate selections -> price lines -> price
order -> consolidate; a failure at any stage stops the submission before
anything is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Sequence

from tablepos.core.config import CONSOLIDATION_MAX_ATTEMPTS, COUPON_BUILTIN_FALLBACK
from tablepos.core.money import ZERO
from tablepos.engine.consolidation import EventListener, OpenOrderStore, OrderConsolidator, TableLocks
from tablepos.engine.coupons import CouponResolver
from tablepos.engine.errors import CatalogNotFoundError, CouponError, OrderingError, PricingError, SelectionError
from tablepos.engine.modifiers import resolve_effective_groups
from tablepos.engine.pricing import build_line_item, compute_order_totals
from tablepos.engine.selections import validate_selections
from tablepos.engine.types import (
    Coupon,
    DiscountInput,
    EffectiveGroupSet,
    ItemStatus,
    LineItem,
    OpenOrder,
    OrderChannel,
    OrderTotals,
    Product,
    RawSelections,
)
from tablepos.services.catalog_store import CatalogStore
from tablepos.services.order_events import publish_order_event

logger = logging.getLogger(__name__)


@dataclass
class LineRequest:
    product_id: int
    quantity: int = 1
    selections: Optional[RawSelections] = None


@dataclass
class LineItemResult:
    line_item: Optional[LineItem] = None
    errors: list[OrderingError] = field(default_factory=list)
    warnings: list[SelectionError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.line_item is not None and not self.errors


class SubmissionRejected(Exception):
    """One or more line items could not be priced; nothing was persisted."""

    def __init__(self, errors: list[dict[str, Any]]) -> None:
        self.errors = errors
        super().__init__(f"{len(errors)} line item error(s)")


@dataclass
class PlacedOrder:
    order: OpenOrder
    line_items: list[LineItem]
    totals: OrderTotals
    warnings: list[dict[str, Any]] = field(default_factory=list)


class OrderingService:
    def __init__(
        self,
        catalog: CatalogStore,
        orders: OpenOrderStore,
        *,
        locks: Optional[TableLocks] = None,
        max_attempts: int = CONSOLIDATION_MAX_ATTEMPTS,
        use_builtin_coupons: bool = COUPON_BUILTIN_FALLBACK,
        listener: Optional[EventListener] = publish_order_event,
    ) -> None:
        self.catalog = catalog
        self.use_builtin_coupons = use_builtin_coupons
        self.consolidator = OrderConsolidator(
            orders,
            locks=locks,
            max_attempts=max_attempts,
            listener=listener,
        )

    def _effective_groups(self, product: Product) -> EffectiveGroupSet:
        assignments = self.catalog.get_effective_assignments(product.category_id, product.id)
        groups = self.catalog.get_groups_with_options({assignment.group_id for assignment in assignments})
        return resolve_effective_groups(product, assignments, groups)

    def resolve_modifiers(self, product_id: int) -> EffectiveGroupSet:
        try:
            product = self.catalog.get_product(product_id)
        except CatalogNotFoundError:
            logger.info("No modifiers for unknown or inactive product_id=%s", product_id)
            return EffectiveGroupSet(product_id=product_id)
        return self._effective_groups(product)

    def price_line_item(
        self,
        product_id: int,
        selections: Optional[RawSelections],
        quantity: int,
    ) -> LineItemResult:
        """Validate selections and price one line server-side.

        Raises ``CatalogNotFoundError`` for an unknown product; selection and
        pricing problems are returned in ``errors``.
        """
        product = self.catalog.get_product(product_id)
        groups = self._effective_groups(product)

        checked = validate_selections(groups, selections)
        if not checked.ok:
            return LineItemResult(errors=list(checked.errors), warnings=checked.warnings)

        try:
            line_item = build_line_item(product, groups, checked.selections, quantity)
        except PricingError as exc:
            logger.warning("Pricing rejected product_id=%s: %s", product_id, exc.detail)
            return LineItemResult(errors=[exc], warnings=checked.warnings)
        return LineItemResult(line_item=line_item, warnings=checked.warnings)

    def price_line_items(self, requests: Sequence[LineRequest]) -> list[LineItemResult]:
        return [
            self.price_line_item(request.product_id, request.selections, request.quantity)
            for request in requests
        ]

    def validate_coupon(self, code: Optional[str], subtotal: Optional[Decimal] = None) -> Coupon:
        resolver = CouponResolver(
            self.catalog.get_coupon_definitions(),
            use_builtin_fallback=self.use_builtin_coupons,
        )
        return resolver.resolve(code, subtotal)

    def price_order(
        self,
        line_items: Sequence[LineItem],
        discount: Optional[DiscountInput] = None,
        coupon_code: Optional[str] = None,
        *,
        ignore_invalid_coupon: bool = False,
    ) -> OrderTotals:
        """Totals for one submission.

        An invalid coupon raises ``CouponError`` unless ``ignore_invalid_coupon``
        is set, in which case the order is priced without the coupon (a manual
        discount, if given, still applies).
        """
        coupon: Optional[Coupon] = None
        if coupon_code:
            subtotal = sum((item.line_total for item in line_items), ZERO)
            try:
                coupon = self.validate_coupon(coupon_code, subtotal)
            except CouponError as exc:
                if not ignore_invalid_coupon:
                    raise
                logger.warning("Ignoring invalid coupon code=%s: %s", exc.code, exc.detail)

        return compute_order_totals(
            line_items,
            self.catalog.get_tax_rate(),
            coupon=coupon,
            discount=discount,
        )

    def submit_to_table(
        self,
        table_id: str,
        line_items: Sequence[LineItem],
        totals: OrderTotals,
        channel: OrderChannel = OrderChannel.POS,
    ) -> OpenOrder:
        return self.consolidator.submit(table_id, line_items, totals, channel)

    def place_order(
        self,
        table_id: str,
        requests: Sequence[LineRequest],
        *,
        discount: Optional[DiscountInput] = None,
        coupon_code: Optional[str] = None,
        channel: OrderChannel = OrderChannel.POS,
        ignore_invalid_coupon: bool = False,
    ) -> PlacedOrder:
        """Price every requested line and fold the result into the table's open order.

        Raises ``SubmissionRejected`` listing every line problem at once.
        """
        if not requests:
            raise ValueError("a submission needs at least one line item")

        results = self.price_line_items(requests)
        errors: list[dict[str, Any]] = []
        warnings: list[dict[str, Any]] = []
        for index, result in enumerate(results):
            for error in result.errors:
                errors.append({"line": index, **error.to_dict()})
            for warning in result.warnings:
                warnings.append({"line": index, **warning.to_dict()})
        if errors:
            raise SubmissionRejected(errors)

        line_items = [result.line_item for result in results if result.line_item is not None]
        totals = self.price_order(
            line_items,
            discount=discount,
            coupon_code=coupon_code,
            ignore_invalid_coupon=ignore_invalid_coupon,
        )
        order = self.submit_to_table(table_id, line_items, totals, channel)
        return PlacedOrder(order=order, line_items=line_items, totals=totals, warnings=warnings)

    def get_open_order(self, table_id: str) -> Optional[OpenOrder]:
        return self.consolidator.get_open_order(table_id)

    def record_payment(self, table_id: str, paid_amount: Decimal, payment_method: Optional[str] = None) -> OpenOrder:
        return self.consolidator.complete(table_id, paid_amount, payment_method)

    def cancel_open_order(self, table_id: str) -> OpenOrder:
        return self.consolidator.cancel(table_id)

    def update_item_status(self, order_id: int, item_id: int, status: ItemStatus) -> OpenOrder:
        return self.consolidator.set_item_status(order_id, item_id, status)
