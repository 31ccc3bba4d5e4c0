from __future__ import annotations

import logging
from typing import Any

from tablepos.core.metrics import order_metrics
from tablepos.services.event_bus import ANY_EVENT, event_bus

logger = logging.getLogger(__name__)


def log_order_event(event_name: str, payload: dict[str, Any]) -> None:
    logger.info(
        "Order event %s order_id=%s table_id=%s status=%s",
        event_name,
        payload.get("order_id"),
        payload.get("table_id"),
        payload.get("status"),
        extra={"event": event_name, "order_id": payload.get("order_id"), "table_id": payload.get("table_id")},
    )


event_bus.subscribe(ANY_EVENT, order_metrics.record_event)
event_bus.subscribe(ANY_EVENT, log_order_event)
