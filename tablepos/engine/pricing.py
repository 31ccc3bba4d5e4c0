"""Line and order pricing.

Everything here works on unrounded ``Decimal`` values; see
``tablepos.core.money`` for the rounding applied on the way out.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence

from tablepos.core.money import HUNDRED, ZERO, clamp, to_decimal
from tablepos.engine.errors import PricingError, PricingErrorKind
from tablepos.engine.types import (
    Coupon,
    DiscountInput,
    DiscountKind,
    EffectiveGroupSet,
    LineItem,
    OrderTotals,
    Product,
    SelectedOption,
)


def selected_options(
    groups: EffectiveGroupSet,
    selections: Mapping[int, Sequence[int]],
) -> tuple[SelectedOption, ...]:
    """Snapshot of the chosen options, in group order then choice order."""
    chosen: list[SelectedOption] = []
    for group in groups:
        for option_id in selections.get(group.id, ()):
            option = group.option(option_id)
            if option is None:
                continue
            chosen.append(
                SelectedOption(
                    group_id=group.id,
                    group_name=group.name,
                    option_id=option.id,
                    option_name=option.name,
                    price_delta=to_decimal(option.price_delta),
                )
            )
    return tuple(chosen)


def compute_unit_price(base_price: Decimal, options: Iterable[SelectedOption]) -> Decimal:
    base = to_decimal(base_price)
    if base < ZERO:
        raise PricingError(PricingErrorKind.NEGATIVE_PRICE, f"base price {base} is negative")

    # negative deltas are allowed; only the final unit price must stay >= 0
    unit_price = base + sum((option.price_delta for option in options), ZERO)
    if unit_price < ZERO:
        raise PricingError(PricingErrorKind.NEGATIVE_PRICE, f"unit price {unit_price} is negative")
    return unit_price


def build_line_item(
    product: Product,
    groups: EffectiveGroupSet,
    selections: Mapping[int, Sequence[int]],
    quantity: int,
) -> LineItem:
    if quantity <= 0:
        raise PricingError(PricingErrorKind.INVALID_QUANTITY, "quantity must be a positive integer")

    options = selected_options(groups, selections)
    return LineItem(
        product_id=product.id,
        product_name=product.name,
        product_code=product.code,
        quantity=quantity,
        unit_price=compute_unit_price(product.base_price, options),
        selections=options,
    )


def discount_amount(kind: DiscountKind, value: Decimal, subtotal: Decimal) -> Decimal:
    """Discount for ``subtotal``, clamped to ``[0, subtotal]``."""
    value = to_decimal(value)
    if kind == DiscountKind.PERCENT:
        raw = subtotal * value / HUNDRED
    else:
        raw = value
    return clamp(raw, ZERO, max(subtotal, ZERO))


def compute_order_totals(
    line_items: Iterable[LineItem],
    tax_rate: Decimal,
    *,
    coupon: Optional[Coupon] = None,
    discount: Optional[DiscountInput] = None,
) -> OrderTotals:
    """Totals for one submission.

    A coupon takes precedence over a manual discount. Tax is charged on the
    discounted subtotal.
    """
    tax_rate = to_decimal(tax_rate)
    if tax_rate < ZERO:
        raise ValueError(f"tax rate must not be negative, got {tax_rate}")

    subtotal = sum((item.line_total for item in line_items), ZERO)

    if coupon is not None:
        discount_value = discount_amount(coupon.kind, coupon.value, subtotal)
    elif discount is not None:
        discount_value = discount_amount(discount.kind, discount.value, subtotal)
    else:
        discount_value = ZERO

    taxable = subtotal - discount_value
    tax = taxable * tax_rate / HUNDRED
    return OrderTotals(
        subtotal=subtotal,
        discount=discount_value,
        tax=tax,
        total=taxable + tax,
    )
