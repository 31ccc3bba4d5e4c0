from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class SelectionErrorKind(str, Enum):
    UNKNOWN_OPTION = "unknown_option"
    TOO_MANY_CHOICES = "too_many_choices"
    REQUIRED_CHOICES_MISSING = "required_choices_missing"
    UNASSIGNED_GROUP = "unassigned_group"


class PricingErrorKind(str, Enum):
    NEGATIVE_PRICE = "negative_price"
    INVALID_QUANTITY = "invalid_quantity"


class CouponErrorKind(str, Enum):
    MISSING_CODE = "missing_code"
    NOT_FOUND = "not_found"
    MIN_SUBTOTAL_NOT_MET = "min_subtotal_not_met"


class ConsolidationErrorKind(str, Enum):
    RACE_LOST = "race_lost"
    NO_OPEN_ORDER = "no_open_order"
    ORDER_NOT_FOUND = "order_not_found"
    ITEM_NOT_FOUND = "item_not_found"
    RETRIES_EXHAUSTED = "retries_exhausted"


class OrderingError(Exception):
    """Base class for every error the ordering engine reports.

    ``kind`` is a stable machine-readable code; ``detail`` is a human message.
    """

    kind: Enum

    def __init__(self, kind: Enum, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail or kind.value.replace("_", " ")
        super().__init__(self.detail)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "detail": self.detail}


class SelectionError(OrderingError):
    def __init__(
        self,
        kind: SelectionErrorKind,
        *,
        group_id: Optional[int] = None,
        option_id: Optional[int] = None,
        detail: str = "",
    ) -> None:
        super().__init__(kind, detail)
        self.group_id = group_id
        self.option_id = option_id

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["group_id"] = self.group_id
        payload["option_id"] = self.option_id
        return payload

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SelectionError):
            return NotImplemented
        return (self.kind, self.group_id, self.option_id) == (other.kind, other.group_id, other.option_id)

    def __hash__(self) -> int:
        return hash((self.kind, self.group_id, self.option_id))


class PricingError(OrderingError):
    pass


class CouponError(OrderingError):
    def __init__(self, kind: CouponErrorKind, *, code: str = "", detail: str = "") -> None:
        super().__init__(kind, detail)
        self.code = code


class ConsolidationError(OrderingError):
    pass


class CatalogNotFoundError(LookupError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")
