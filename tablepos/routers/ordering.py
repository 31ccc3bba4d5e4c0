from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from tablepos.core.database import get_db
from tablepos.core.metrics import order_metrics
from tablepos.core.money import quantize
from tablepos.core.request_context import set_request_context
from tablepos.engine.consolidation import TableLocks
from tablepos.engine.errors import (
    CatalogNotFoundError,
    ConsolidationError,
    ConsolidationErrorKind,
    CouponError,
    CouponErrorKind,
)
from tablepos.engine.types import (
    DiscountInput,
    DiscountKind,
    EffectiveGroupSet,
    ItemStatus,
    LineItem,
    OpenOrder,
    OrderChannel,
    OrderTotals,
)
from tablepos.schemas.ordering import (
    CouponResponse,
    CouponValidateRequest,
    DiscountRequest,
    EffectiveModifiersResponse,
    ItemStatusRequest,
    LineItemRequest,
    OpenOrderResponse,
    PaymentRequest,
    PricedLineResponse,
    PricedOrderResponse,
    PriceOrderRequest,
    TableOrderRequest,
    TableSubmissionResponse,
)
from tablepos.services.catalog_store import SqlCatalogStore
from tablepos.services.order_store import SqlOpenOrderStore
from tablepos.services.ordering import LineRequest, OrderingService, SubmissionRejected

router = APIRouter(prefix="/api", tags=["ordering"])

logger = logging.getLogger(__name__)


def get_ordering_service(request: Request, db: Session = Depends(get_db)) -> OrderingService:
    locks: Optional[TableLocks] = getattr(request.app.state, "table_locks", None)
    if locks is None:
        # the registry is shared process-wide; it must exist before the first request
        raise RuntimeError("app.state.table_locks is not configured")
    return OrderingService(SqlCatalogStore(db), SqlOpenOrderStore(db), locks=locks)


def _groups_to_dict(groups: EffectiveGroupSet) -> Dict[str, Any]:
    return {
        "product_id": groups.product_id,
        "groups": [
            {
                "id": group.id,
                "name": group.name,
                "selection_kind": group.selection_kind.value,
                "min_choices": group.min_choices,
                "max_choices": group.effective_max,
                "display_order": group.display_order,
                "options": [
                    {
                        "id": option.id,
                        "name": option.name,
                        "price_delta": quantize(option.price_delta),
                        "display_order": option.display_order,
                    }
                    for option in group.options
                ],
            }
            for group in groups
        ],
    }


def _line_item_to_dict(item: LineItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "status": item.status.value,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "product_code": item.product_code,
        "quantity": item.quantity,
        "unit_price": quantize(item.unit_price),
        "line_total": quantize(item.line_total),
        "selections": [
            {
                "group_id": selection.group_id,
                "group_name": selection.group_name,
                "option_id": selection.option_id,
                "option_name": selection.option_name,
                "price_delta": quantize(selection.price_delta),
            }
            for selection in item.selections
        ],
    }


def _totals_to_dict(totals: OrderTotals) -> Dict[str, Any]:
    rounded = totals.rounded()
    return {
        "subtotal": rounded.subtotal,
        "discount": rounded.discount,
        "tax": rounded.tax,
        "total": rounded.total,
        "paid": rounded.paid,
    }


def _order_to_dict(order: OpenOrder) -> Dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "table_id": order.table_id,
        "status": order.status.value,
        "channel": order.channel.value,
        "line_items": [_line_item_to_dict(item) for item in order.line_items],
        "totals": _totals_to_dict(order.totals),
        "payment_method": order.payment_method,
    }


def _discount_input(discount: Optional[DiscountRequest]) -> Optional[DiscountInput]:
    if discount is None:
        return None
    return DiscountInput(kind=DiscountKind(discount.kind), value=discount.value)


def _line_requests(items: List[LineItemRequest]) -> List[LineRequest]:
    return [
        LineRequest(product_id=item.product_id, quantity=item.quantity, selections=item.selections)
        for item in items
    ]


def _product_not_found(exc: CatalogNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Product {exc.entity_id} not found")


def _coupon_error(exc: CouponError) -> HTTPException:
    if exc.kind == CouponErrorKind.MISSING_CODE:
        return HTTPException(status_code=400, detail=exc.to_dict())
    if exc.kind == CouponErrorKind.NOT_FOUND:
        return HTTPException(status_code=404, detail=exc.to_dict())
    return HTTPException(status_code=422, detail=exc.to_dict())


_NOT_FOUND_KINDS = {
    ConsolidationErrorKind.NO_OPEN_ORDER,
    ConsolidationErrorKind.ORDER_NOT_FOUND,
    ConsolidationErrorKind.ITEM_NOT_FOUND,
}


def _consolidation_error(exc: ConsolidationError) -> HTTPException:
    order_metrics.record_failure(exc.kind.value)
    if exc.kind in _NOT_FOUND_KINDS:
        return HTTPException(status_code=404, detail=exc.to_dict())
    logger.error("Consolidation failed: %s", exc.detail)
    return HTTPException(status_code=409, detail=exc.to_dict())


def _invalid_table(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(exc))


@router.get("/products/{product_id}/modifiers", response_model=EffectiveModifiersResponse)
def get_product_modifiers(product_id: int, service: OrderingService = Depends(get_ordering_service)):
    return _groups_to_dict(service.resolve_modifiers(product_id))


@router.post("/pricing/line-items", response_model=PricedLineResponse)
def price_line_item(payload: LineItemRequest, service: OrderingService = Depends(get_ordering_service)):
    try:
        result = service.price_line_item(payload.product_id, payload.selections, payload.quantity)
    except CatalogNotFoundError as exc:
        raise _product_not_found(exc) from exc

    if not result.ok:
        raise HTTPException(status_code=422, detail={"errors": [error.to_dict() for error in result.errors]})
    return {
        "line_item": _line_item_to_dict(result.line_item),
        "warnings": [warning.to_dict() for warning in result.warnings],
    }


@router.post("/pricing/orders", response_model=PricedOrderResponse)
def price_order(payload: PriceOrderRequest, service: OrderingService = Depends(get_ordering_service)):
    try:
        results = service.price_line_items(_line_requests(payload.items))
    except CatalogNotFoundError as exc:
        raise _product_not_found(exc) from exc

    errors = [{"line": index, **error.to_dict()} for index, result in enumerate(results) for error in result.errors]
    if errors:
        raise HTTPException(status_code=422, detail={"errors": errors})

    line_items = [result.line_item for result in results]
    try:
        totals = service.price_order(
            line_items,
            discount=_discount_input(payload.discount),
            coupon_code=payload.coupon_code,
            ignore_invalid_coupon=payload.ignore_invalid_coupon,
        )
    except CouponError as exc:
        raise HTTPException(status_code=422, detail=exc.to_dict()) from exc

    return {
        "line_items": [_line_item_to_dict(item) for item in line_items],
        "totals": _totals_to_dict(totals),
        "warnings": [
            {"line": index, **warning.to_dict()} for index, result in enumerate(results) for warning in result.warnings
        ],
    }


@router.post("/coupons/validate", response_model=CouponResponse)
def validate_coupon(payload: CouponValidateRequest, service: OrderingService = Depends(get_ordering_service)):
    try:
        coupon = service.validate_coupon(payload.code, payload.subtotal)
    except CouponError as exc:
        raise _coupon_error(exc) from exc
    return {
        "code": coupon.code,
        "type": coupon.kind.value,
        "value": coupon.value,
        "label": coupon.label,
    }


@router.post("/tables/{table_id}/orders", response_model=TableSubmissionResponse)
def submit_table_order(
    table_id: str,
    payload: TableOrderRequest,
    service: OrderingService = Depends(get_ordering_service),
):
    set_request_context(table_id=table_id)
    try:
        placed = service.place_order(
            table_id,
            _line_requests(payload.items),
            discount=_discount_input(payload.discount),
            coupon_code=payload.coupon_code,
            channel=OrderChannel(payload.channel),
            ignore_invalid_coupon=payload.ignore_invalid_coupon,
        )
    except CatalogNotFoundError as exc:
        raise _product_not_found(exc) from exc
    except SubmissionRejected as exc:
        raise HTTPException(status_code=422, detail={"errors": exc.errors}) from exc
    except CouponError as exc:
        raise HTTPException(status_code=422, detail=exc.to_dict()) from exc
    except ConsolidationError as exc:
        raise _consolidation_error(exc) from exc
    except ValueError as exc:
        raise _invalid_table(exc) from exc

    return {
        "order": _order_to_dict(placed.order),
        "submission": {
            "line_items": [_line_item_to_dict(item) for item in placed.line_items],
            "totals": _totals_to_dict(placed.totals),
            "warnings": placed.warnings,
        },
    }


@router.get("/tables/{table_id}/open-order", response_model=OpenOrderResponse)
def get_open_order(table_id: str, service: OrderingService = Depends(get_ordering_service)):
    try:
        order = service.get_open_order(table_id)
    except ValueError as exc:
        raise _invalid_table(exc) from exc
    if order is None:
        raise HTTPException(status_code=404, detail=f"Table {table_id} has no open order")
    return _order_to_dict(order)


@router.post("/tables/{table_id}/open-order/pay", response_model=OpenOrderResponse)
def pay_open_order(
    table_id: str,
    payload: PaymentRequest,
    service: OrderingService = Depends(get_ordering_service),
):
    set_request_context(table_id=table_id)
    try:
        order = service.record_payment(table_id, payload.paid_amount, payload.payment_method)
    except ConsolidationError as exc:
        raise _consolidation_error(exc) from exc
    except ValueError as exc:
        raise _invalid_table(exc) from exc
    return _order_to_dict(order)


@router.post("/tables/{table_id}/open-order/cancel", response_model=OpenOrderResponse)
def cancel_open_order(table_id: str, service: OrderingService = Depends(get_ordering_service)):
    set_request_context(table_id=table_id)
    try:
        order = service.cancel_open_order(table_id)
    except ConsolidationError as exc:
        raise _consolidation_error(exc) from exc
    except ValueError as exc:
        raise _invalid_table(exc) from exc
    return _order_to_dict(order)


@router.put("/orders/{order_id}/items/{item_id}/status", response_model=OpenOrderResponse)
def update_item_status(
    order_id: int,
    item_id: int,
    payload: ItemStatusRequest,
    service: OrderingService = Depends(get_ordering_service),
):
    try:
        order = service.update_item_status(order_id, item_id, ItemStatus(payload.status))
    except ConsolidationError as exc:
        raise _consolidation_error(exc) from exc
    return _order_to_dict(order)
