from __future__ import annotations

from tablepos.core.money import quantize
from tablepos.engine.types import OpenOrder
from tablepos.services.event_bus import event_bus


def build_order_payload(order: OpenOrder) -> dict:
    totals = order.totals.rounded()
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "table_id": order.table_id,
        "status": order.status.value,
        "channel": order.channel.value,
        "item_count": sum(item.quantity for item in order.line_items),
        "subtotal": str(totals.subtotal),
        "total": str(totals.total),
        "paid": str(quantize(order.totals.paid)),
    }


def publish_order_event(event_name: str, order: OpenOrder) -> None:
    event_bus.emit(event_name, build_order_payload(order))
