from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tablepos.core.money import quantize, to_decimal
from tablepos.engine.consolidation import OpenOrderStore
from tablepos.engine.errors import ConsolidationError, ConsolidationErrorKind
from tablepos.engine.types import (
    ItemStatus,
    LineItem,
    OpenOrder,
    OrderChannel,
    OrderStatus,
    OrderTotals,
    SelectedOption,
)
from tablepos.models.order import Order
from tablepos.models.order_item import OrderItem
from tablepos.models.payment import Payment

logger = logging.getLogger(__name__)


def _load_selections(raw: Optional[str]) -> tuple[SelectedOption, ...]:
    if not raw:
        return ()
    try:
        entries = json.loads(raw)
    except ValueError:
        logger.warning("Discarding unreadable options_json=%r", raw)
        return ()
    if not isinstance(entries, list):
        return ()
    selections: list[SelectedOption] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        selections.append(
            SelectedOption(
                group_id=int(entry.get("group_id") or 0),
                group_name=str(entry.get("group_name") or ""),
                option_id=int(entry.get("option_id") or 0),
                option_name=str(entry.get("option_name") or ""),
                price_delta=to_decimal(entry.get("price_delta") or 0),
            )
        )
    return tuple(selections)


def _item_status(raw: Optional[str], item_id: int) -> ItemStatus:
    try:
        return ItemStatus((raw or ItemStatus.PENDING.value).strip().lower())
    except ValueError:
        logger.warning("Unknown status=%r on order item %s; treating as pending", raw, item_id)
        return ItemStatus.PENDING


def _item_to_domain(item: OrderItem) -> LineItem:
    return LineItem(
        id=item.id,
        status=_item_status(item.status, item.id),
        product_id=item.product_id,
        product_name=item.product_name,
        product_code=item.product_code or "",
        quantity=int(item.quantity),
        unit_price=to_decimal(item.unit_price),
        selections=_load_selections(item.options_json),
    )


def order_to_domain(order: Order) -> OpenOrder:
    return OpenOrder(
        id=order.id,
        order_number=order.order_number,
        table_id=order.table_id,
        status=OrderStatus(order.status),
        channel=OrderChannel(order.channel or OrderChannel.POS.value),
        line_items=tuple(_item_to_domain(item) for item in order.items),
        totals=OrderTotals(
            subtotal=to_decimal(order.subtotal),
            discount=to_decimal(order.discount_amount),
            tax=to_decimal(order.tax_amount),
            total=to_decimal(order.total_amount),
            paid=to_decimal(order.paid_amount),
        ),
        payment_method=order.payment_method,
    )


def _build_item(order_id: int, line_item: LineItem) -> OrderItem:
    options = [selection.to_dict() for selection in line_item.selections]
    return OrderItem(
        order_id=order_id,
        product_id=line_item.product_id,
        product_code=line_item.product_code,
        product_name=line_item.product_name,
        quantity=line_item.quantity,
        unit_price=quantize(line_item.unit_price),
        total_price=quantize(line_item.line_total),
        options_json=json.dumps(options, ensure_ascii=False) if options else None,
        status=ItemStatus.PENDING.value,
    )


class SqlOpenOrderStore(OpenOrderStore):
    """Open orders persisted in the ``orders`` table.

    The partial unique index ``uq_orders_open_table`` rejects a second open
    order for a table; the rejection is reported as a lost race.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_open(self, table_id: str) -> Optional[OpenOrder]:
        order = (
            self.db.query(Order)
            .filter(Order.table_id == table_id, Order.status == OrderStatus.OPEN.value)
            .first()
        )
        return order_to_domain(order) if order else None

    def create(
        self,
        *,
        table_id: str,
        order_number: str,
        channel: OrderChannel,
        line_items: Sequence[LineItem],
        totals: OrderTotals,
    ) -> OpenOrder:
        rounded = totals.rounded()
        order = Order(
            order_number=order_number,
            table_id=table_id,
            status=OrderStatus.OPEN.value,
            channel=channel.value,
            subtotal=rounded.subtotal,
            discount_amount=rounded.discount,
            tax_amount=rounded.tax,
            total_amount=rounded.total,
            paid_amount=rounded.paid,
        )
        self.db.add(order)
        try:
            self.db.flush()
            for line_item in line_items:
                self.db.add(_build_item(order.id, line_item))
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConsolidationError(
                ConsolidationErrorKind.RACE_LOST,
                f"table {table_id} already has an open order",
            ) from exc
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)
        return order_to_domain(order)

    def append(self, order_id: int, line_items: Sequence[LineItem], delta: OrderTotals) -> OpenOrder:
        rounded = delta.rounded()
        try:
            updated = (
                self.db.query(Order)
                .filter(Order.id == order_id, Order.status == OrderStatus.OPEN.value)
                .update(
                    {
                        Order.subtotal: Order.subtotal + rounded.subtotal,
                        Order.discount_amount: Order.discount_amount + rounded.discount,
                        Order.tax_amount: Order.tax_amount + rounded.tax,
                        Order.total_amount: Order.total_amount + rounded.total,
                        Order.paid_amount: Order.paid_amount + rounded.paid,
                    },
                    synchronize_session=False,
                )
            )
            if updated == 0:
                self.db.rollback()
                raise ConsolidationError(
                    ConsolidationErrorKind.RACE_LOST,
                    f"order {order_id} is no longer open",
                )
            for line_item in line_items:
                self.db.add(_build_item(order_id, line_item))
            self.db.commit()
        except ConsolidationError:
            raise
        except Exception:
            self.db.rollback()
            raise
        return self._load(order_id)

    def set_status(
        self,
        order_id: int,
        status: OrderStatus,
        paid: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
    ) -> OpenOrder:
        values = {
            Order.status: status.value,
            Order.closed_at: datetime.now(timezone.utc),
        }
        if paid is not None:
            values[Order.paid_amount] = quantize(paid)
        if payment_method:
            values[Order.payment_method] = payment_method
        try:
            updated = (
                self.db.query(Order)
                .filter(Order.id == order_id, Order.status == OrderStatus.OPEN.value)
                .update(values, synchronize_session=False)
            )
            if updated == 0:
                self.db.rollback()
                raise ConsolidationError(
                    ConsolidationErrorKind.RACE_LOST,
                    f"order {order_id} is no longer open",
                )
            if paid is not None and payment_method:
                self.db.add(Payment(order_id=order_id, amount=quantize(paid), method=payment_method))
            self.db.commit()
        except ConsolidationError:
            raise
        except Exception:
            self.db.rollback()
            raise
        return self._load(order_id)

    def set_item_status(self, order_id: int, item_id: int, status: ItemStatus) -> OpenOrder:
        if self.db.query(Order.id).filter(Order.id == order_id).first() is None:
            raise ConsolidationError(ConsolidationErrorKind.ORDER_NOT_FOUND, f"order {order_id} not found")
        try:
            updated = (
                self.db.query(OrderItem)
                .filter(OrderItem.id == item_id, OrderItem.order_id == order_id)
                .update({OrderItem.status: status.value}, synchronize_session=False)
            )
            if updated == 0:
                self.db.rollback()
                raise ConsolidationError(
                    ConsolidationErrorKind.ITEM_NOT_FOUND,
                    f"item {item_id} is not part of order {order_id}",
                )
            self.db.commit()
        except ConsolidationError:
            raise
        except Exception:
            self.db.rollback()
            raise
        return self._load(order_id)

    def _load(self, order_id: int) -> OpenOrder:
        self.db.expire_all()
        order = self.db.query(Order).filter(Order.id == order_id).one()
        return order_to_domain(order)
