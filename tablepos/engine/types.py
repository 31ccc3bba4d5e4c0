from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterator, Mapping, Optional, Sequence

from tablepos.core.money import ZERO, quantize


class SelectionKind(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class AssignmentKind(str, Enum):
    CATEGORY = "category"
    PRODUCT = "product"


class DiscountKind(str, Enum):
    PERCENT = "percent"
    AMOUNT = "amount"


class OrderStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderChannel(str, Enum):
    POS = "pos"
    WEB = "web"


class ItemStatus(str, Enum):
    """Kitchen progress of one line item."""

    PENDING = "pending"
    PREPARING = "preparing"
    DONE = "done"


# group id -> chosen option ids, as sent by the cashier or customer
RawSelections = Mapping[int, Sequence[int]]


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    active: bool = True


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    base_price: Decimal
    code: str = ""
    category_id: Optional[int] = None
    active: bool = True


@dataclass(frozen=True)
class ModifierOption:
    id: int
    group_id: int
    name: str
    price_delta: Decimal = ZERO
    display_order: int = 0
    active: bool = True


@dataclass(frozen=True)
class ModifierGroup:
    id: int
    name: str
    selection_kind: SelectionKind = SelectionKind.SINGLE
    min_choices: int = 0
    max_choices: Optional[int] = None
    display_order: int = 0
    active: bool = True
    options: tuple[ModifierOption, ...] = ()

    @property
    def effective_max(self) -> Optional[int]:
        """Upper bound on chosen options; ``None`` means unbounded."""
        if self.selection_kind == SelectionKind.SINGLE:
            return 1
        return self.max_choices

    def option(self, option_id: int) -> Optional[ModifierOption]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


@dataclass(frozen=True)
class Assignment:
    group_id: int
    kind: AssignmentKind
    entity_id: int


@dataclass(frozen=True)
class EffectiveGroupSet:
    product_id: int
    groups: tuple[ModifierGroup, ...] = ()

    def __iter__(self) -> Iterator[ModifierGroup]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)

    @property
    def group_ids(self) -> list[int]:
        return [group.id for group in self.groups]

    def group(self, group_id: int) -> Optional[ModifierGroup]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None


@dataclass(frozen=True)
class SelectedOption:
    group_id: int
    group_name: str
    option_id: int
    option_name: str
    price_delta: Decimal

    def to_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "group_name": self.group_name,
            "option_id": self.option_id,
            "option_name": self.option_name,
            "price_delta": str(self.price_delta),
        }


@dataclass(frozen=True)
class LineItem:
    product_id: int
    product_name: str
    product_code: str
    quantity: int
    unit_price: Decimal
    selections: tuple[SelectedOption, ...] = ()
    status: ItemStatus = ItemStatus.PENDING
    # assigned once the item is stored on an order
    id: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class DiscountInput:
    kind: DiscountKind
    value: Decimal


@dataclass(frozen=True)
class Coupon:
    code: str
    kind: DiscountKind
    value: Decimal
    label: Optional[str] = None
    min_subtotal: Optional[Decimal] = None


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO
    paid: Decimal = ZERO

    def rounded(self, currency: Optional[str] = None) -> "OrderTotals":
        """Totals at currency precision.

        ``total`` is rebuilt from the rounded parts so a receipt always adds up.
        """
        subtotal = quantize(self.subtotal, currency)
        discount = quantize(self.discount, currency)
        tax = quantize(self.tax, currency)
        return OrderTotals(
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=subtotal - discount + tax,
            paid=quantize(self.paid, currency),
        )


@dataclass(frozen=True)
class OpenOrder:
    id: int
    order_number: str
    table_id: str
    status: OrderStatus
    channel: OrderChannel = OrderChannel.POS
    line_items: tuple[LineItem, ...] = ()
    totals: OrderTotals = field(default_factory=OrderTotals)
    payment_method: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == OrderStatus.OPEN

    def item(self, item_id: int) -> Optional[LineItem]:
        for line_item in self.line_items:
            if line_item.id == item_id:
                return line_item
        return None
