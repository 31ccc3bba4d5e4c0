"""One running order per dining table.

Every submission for a table goes through :class:`OrderConsolidator`, which
either opens a new order or appends to the table's current open order. The
read-decide-write sequence runs under a per-table lock, and the store refuses
a second open order for the same table, so a lost race surfaces as
``ConsolidationError(RACE_LOST)`` and the submission is retried.
"""

from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from itertools import count
from threading import Lock
from typing import Callable, Iterator, Optional, Sequence

from tablepos.engine.errors import ConsolidationError, ConsolidationErrorKind
from tablepos.engine.types import ItemStatus, LineItem, OpenOrder, OrderChannel, OrderStatus, OrderTotals

logger = logging.getLogger(__name__)

ORDER_OPENED = "order.opened"
ORDER_ITEMS_APPENDED = "order.items_appended"
ORDER_STATUS_CHANGED = "order.status.changed"
ORDER_ITEM_STATUS_CHANGED = "order.item_status.changed"

ORDER_NUMBER_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ORDER_NUMBER_PREFIX = {OrderChannel.POS: "POS", OrderChannel.WEB: "WEB"}

EventListener = Callable[[str, OpenOrder], None]


def generate_order_number(channel: OrderChannel, length: int = 8) -> str:
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(length))
    return f"{ORDER_NUMBER_PREFIX[channel]}-{suffix}"


def fold_totals(existing: OrderTotals, delta: OrderTotals) -> OrderTotals:
    """Add a submission's totals to the running order, field by field.

    Each submission keeps its own discount and tax; nothing is recomputed
    across the merged line items.
    """
    return OrderTotals(
        subtotal=existing.subtotal + delta.subtotal,
        discount=existing.discount + delta.discount,
        tax=existing.tax + delta.tax,
        total=existing.total + delta.total,
        paid=existing.paid + delta.paid,
    )


class TableLocks(ABC):
    @abstractmethod
    def hold(self, table_id: str):
        """Context manager serializing work for one table."""


class TableLockRegistry(TableLocks):
    """In-process lock per table id.

    Locks are created on demand and dropped once no caller holds or waits on
    them, so different tables never contend.
    """

    def __init__(self) -> None:
        self._registry_lock = Lock()
        self._locks: dict[str, Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, table_id: str) -> Iterator[None]:
        with self._registry_lock:
            lock = self._locks.setdefault(table_id, Lock())
            self._users[table_id] = self._users.get(table_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._registry_lock:
                self._users[table_id] -= 1
                if self._users[table_id] == 0:
                    del self._users[table_id]
                    del self._locks[table_id]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)


class OpenOrderStore(ABC):
    @abstractmethod
    def find_open(self, table_id: str) -> Optional[OpenOrder]:
        """Current open order for the table, if any."""

    @abstractmethod
    def create(
        self,
        *,
        table_id: str,
        order_number: str,
        channel: OrderChannel,
        line_items: Sequence[LineItem],
        totals: OrderTotals,
    ) -> OpenOrder:
        """Insert a new open order; RACE_LOST if the table already has one."""

    @abstractmethod
    def append(self, order_id: int, line_items: Sequence[LineItem], delta: OrderTotals) -> OpenOrder:
        """Append items and fold ``delta`` into the totals; RACE_LOST if the order is no longer open."""

    @abstractmethod
    def set_status(
        self,
        order_id: int,
        status: OrderStatus,
        paid: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
    ) -> OpenOrder:
        """Close an open order; RACE_LOST if it was closed meanwhile."""

    @abstractmethod
    def set_item_status(self, order_id: int, item_id: int, status: ItemStatus) -> OpenOrder:
        """Move one item of any order to ``status``; ORDER_NOT_FOUND or ITEM_NOT_FOUND otherwise."""


class InMemoryOpenOrderStore(OpenOrderStore):
    def __init__(self) -> None:
        self._lock = Lock()
        self._ids = count(1)
        self._item_ids = count(1)
        self._orders: dict[int, OpenOrder] = {}
        self._open_by_table: dict[str, int] = {}

    def find_open(self, table_id: str) -> Optional[OpenOrder]:
        with self._lock:
            order_id = self._open_by_table.get(table_id)
            return self._orders.get(order_id) if order_id is not None else None

    def orders_for_table(self, table_id: str) -> list[OpenOrder]:
        with self._lock:
            return [order for order in self._orders.values() if order.table_id == table_id]

    def create(
        self,
        *,
        table_id: str,
        order_number: str,
        channel: OrderChannel,
        line_items: Sequence[LineItem],
        totals: OrderTotals,
    ) -> OpenOrder:
        with self._lock:
            if table_id in self._open_by_table:
                raise ConsolidationError(
                    ConsolidationErrorKind.RACE_LOST,
                    f"table {table_id} already has an open order",
                )
            order = OpenOrder(
                id=next(self._ids),
                order_number=order_number,
                table_id=table_id,
                status=OrderStatus.OPEN,
                channel=channel,
                line_items=self._stored(line_items),
                totals=totals,
            )
            self._orders[order.id] = order
            self._open_by_table[table_id] = order.id
            return order

    def append(self, order_id: int, line_items: Sequence[LineItem], delta: OrderTotals) -> OpenOrder:
        with self._lock:
            order = self._require_open(order_id)
            updated = replace(
                order,
                line_items=order.line_items + self._stored(line_items),
                totals=fold_totals(order.totals, delta),
            )
            self._orders[order_id] = updated
            return updated

    def set_status(
        self,
        order_id: int,
        status: OrderStatus,
        paid: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
    ) -> OpenOrder:
        with self._lock:
            order = self._require_open(order_id)
            totals = order.totals if paid is None else replace(order.totals, paid=paid)
            updated = replace(
                order,
                status=status,
                totals=totals,
                payment_method=payment_method or order.payment_method,
            )
            self._orders[order_id] = updated
            if status != OrderStatus.OPEN:
                self._open_by_table.pop(order.table_id, None)
            return updated

    def set_item_status(self, order_id: int, item_id: int, status: ItemStatus) -> OpenOrder:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise ConsolidationError(ConsolidationErrorKind.ORDER_NOT_FOUND, f"order {order_id} not found")
            if order.item(item_id) is None:
                raise ConsolidationError(
                    ConsolidationErrorKind.ITEM_NOT_FOUND,
                    f"item {item_id} is not part of order {order_id}",
                )
            items = tuple(
                replace(item, status=status) if item.id == item_id else item for item in order.line_items
            )
            updated = replace(order, line_items=items)
            self._orders[order_id] = updated
            return updated

    def _stored(self, line_items: Sequence[LineItem]) -> tuple[LineItem, ...]:
        return tuple(
            replace(item, id=next(self._item_ids), status=ItemStatus.PENDING) for item in line_items
        )

    def _require_open(self, order_id: int) -> OpenOrder:
        order = self._orders.get(order_id)
        if order is None or not order.is_open:
            raise ConsolidationError(ConsolidationErrorKind.RACE_LOST, f"order {order_id} is no longer open")
        return order


class OrderConsolidator:
    def __init__(
        self,
        store: OpenOrderStore,
        *,
        locks: Optional[TableLocks] = None,
        max_attempts: int = 3,
        listener: Optional[EventListener] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.locks = locks or TableLockRegistry()
        self.max_attempts = max_attempts
        self._listener = listener

    def get_open_order(self, table_id: str) -> Optional[OpenOrder]:
        return self.store.find_open(_normalize_table_id(table_id))

    def submit(
        self,
        table_id: str,
        line_items: Sequence[LineItem],
        totals: OrderTotals,
        channel: OrderChannel = OrderChannel.POS,
    ) -> OpenOrder:
        table_id = _normalize_table_id(table_id)
        if not line_items:
            raise ValueError("a submission needs at least one line item")

        def _attempt() -> tuple[str, OpenOrder]:
            existing = self.store.find_open(table_id)
            if existing is None:
                order = self.store.create(
                    table_id=table_id,
                    order_number=generate_order_number(channel),
                    channel=channel,
                    line_items=line_items,
                    totals=totals,
                )
                logger.info(
                    "Opened order order_id=%s number=%s table_id=%s items=%s",
                    order.id,
                    order.order_number,
                    table_id,
                    len(line_items),
                )
                return ORDER_OPENED, order
            order = self.store.append(existing.id, line_items, totals)
            logger.info(
                "Appended to open order order_id=%s table_id=%s items=%s",
                order.id,
                table_id,
                len(line_items),
            )
            return ORDER_ITEMS_APPENDED, order

        event, order = self._run_serialized(table_id, _attempt)
        self._notify(event, order)
        return order

    def complete(self, table_id: str, paid_amount: Decimal, payment_method: Optional[str] = None) -> OpenOrder:
        if paid_amount < 0:
            raise ValueError("paid amount must not be negative")
        return self._close(table_id, OrderStatus.COMPLETED, paid=paid_amount, payment_method=payment_method)

    def cancel(self, table_id: str) -> OpenOrder:
        return self._close(table_id, OrderStatus.CANCELLED)

    def _close(
        self,
        table_id: str,
        status: OrderStatus,
        paid: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
    ) -> OpenOrder:
        table_id = _normalize_table_id(table_id)

        def _attempt() -> tuple[str, OpenOrder]:
            existing = self.store.find_open(table_id)
            if existing is None:
                raise ConsolidationError(
                    ConsolidationErrorKind.NO_OPEN_ORDER,
                    f"table {table_id} has no open order",
                )
            order = self.store.set_status(existing.id, status, paid=paid, payment_method=payment_method)
            logger.info("Closed order order_id=%s table_id=%s status=%s", order.id, table_id, status.value)
            return ORDER_STATUS_CHANGED, order

        event, order = self._run_serialized(table_id, _attempt)
        self._notify(event, order)
        return order

    def set_item_status(self, order_id: int, item_id: int, status: ItemStatus) -> OpenOrder:
        """Kitchen progress update; allowed on open and closed orders alike."""
        order = self.store.set_item_status(order_id, item_id, status)
        logger.info(
            "Item status changed order_id=%s item_id=%s status=%s",
            order_id,
            item_id,
            status.value,
            extra={"table_id": order.table_id, "order_id": order_id},
        )
        self._notify(ORDER_ITEM_STATUS_CHANGED, order)
        return order

    def _run_serialized(self, table_id: str, attempt: Callable[[], tuple[str, OpenOrder]]) -> tuple[str, OpenOrder]:
        last_error: Optional[ConsolidationError] = None
        for attempt_number in range(1, self.max_attempts + 1):
            with self.locks.hold(table_id):
                try:
                    return attempt()
                except ConsolidationError as exc:
                    if exc.kind != ConsolidationErrorKind.RACE_LOST:
                        raise
                    last_error = exc
                    logger.warning(
                        "Consolidation race lost table_id=%s attempt=%s/%s: %s",
                        table_id,
                        attempt_number,
                        self.max_attempts,
                        exc.detail,
                    )
        raise ConsolidationError(
            ConsolidationErrorKind.RETRIES_EXHAUSTED,
            f"could not update table {table_id} after {self.max_attempts} attempts",
        ) from last_error

    def _notify(self, event: str, order: OpenOrder) -> None:
        if self._listener is not None:
            self._listener(event, order)


def _normalize_table_id(table_id: str) -> str:
    normalized = str(table_id or "").strip()
    if not normalized:
        raise ValueError("table id is required")
    return normalized
