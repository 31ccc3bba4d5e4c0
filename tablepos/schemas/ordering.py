from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ModifierOptionResponse(BaseModel):
    id: int
    name: str
    price_delta: Decimal
    display_order: int


class ModifierGroupResponse(BaseModel):
    id: int
    name: str
    selection_kind: Literal["single", "multiple"]
    min_choices: int
    max_choices: Optional[int] = None
    display_order: int
    options: list[ModifierOptionResponse]


class EffectiveModifiersResponse(BaseModel):
    product_id: int
    groups: list[ModifierGroupResponse] = Field(default_factory=list)


class DiscountRequest(BaseModel):
    kind: Literal["percent", "amount"]
    value: Decimal = Field(..., ge=0)


class LineItemRequest(BaseModel):
    # prices are always computed server-side; a client-sent unit_price is rejected
    model_config = ConfigDict(extra="forbid")

    product_id: int
    quantity: int = Field(1, ge=1)
    selections: dict[int, list[int]] = Field(default_factory=dict)


class PriceOrderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[LineItemRequest] = Field(..., min_length=1)
    discount: Optional[DiscountRequest] = None
    coupon_code: Optional[str] = None
    ignore_invalid_coupon: bool = False

    @field_validator("coupon_code")
    @classmethod
    def _blank_coupon_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value


class TableOrderRequest(PriceOrderRequest):
    channel: Literal["pos", "web"] = "pos"


class CouponValidateRequest(BaseModel):
    code: str
    subtotal: Optional[Decimal] = Field(default=None, ge=0)


class PaymentRequest(BaseModel):
    paid_amount: Decimal = Field(..., ge=0)
    payment_method: str = Field(..., min_length=1, max_length=32)

    @field_validator("payment_method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError("payment_method is required")
        return normalized


class ItemStatusRequest(BaseModel):
    status: Literal["pending", "preparing", "done"]


class SelectedOptionResponse(BaseModel):
    group_id: int
    group_name: str
    option_id: int
    option_name: str
    price_delta: Decimal


class LineItemResponse(BaseModel):
    id: Optional[int] = None
    product_id: int
    product_name: str
    product_code: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    selections: list[SelectedOptionResponse] = Field(default_factory=list)
    status: Literal["pending", "preparing", "done"] = "pending"


class TotalsResponse(BaseModel):
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    paid: Decimal


class PricedLineResponse(BaseModel):
    line_item: LineItemResponse
    warnings: list[dict] = Field(default_factory=list)


class PricedOrderResponse(BaseModel):
    line_items: list[LineItemResponse]
    totals: TotalsResponse
    warnings: list[dict] = Field(default_factory=list)


class CouponResponse(BaseModel):
    code: str
    type: Literal["percent", "amount"]
    value: Decimal
    label: Optional[str] = None


class OpenOrderResponse(BaseModel):
    id: int
    order_number: str
    table_id: str
    status: Literal["open", "completed", "cancelled"]
    channel: Literal["pos", "web"]
    payment_method: Optional[str] = None
    line_items: list[LineItemResponse]
    totals: TotalsResponse


class TableSubmissionResponse(BaseModel):
    order: OpenOrderResponse
    submission: PricedOrderResponse
