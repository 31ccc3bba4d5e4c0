from decimal import Decimal

import pytest

from tablepos.core.money import quantize, to_decimal, to_minor
from tablepos.engine.errors import PricingError, PricingErrorKind
from tablepos.engine.modifiers import resolve_effective_groups
from tablepos.engine.pricing import build_line_item, compute_order_totals, compute_unit_price, discount_amount
from tablepos.engine.types import Assignment, AssignmentKind, Coupon, DiscountInput, DiscountKind, LineItem, Product
from tests.fixtures_data import ALL_GROUPS, BURGER, BURGER_ASSIGNMENTS, NO_BUN_GROUP, SIZE_GROUP, TOPPINGS_GROUP


def _line(unit_price: str, quantity: int = 1) -> LineItem:
    return LineItem(
        product_id=1,
        product_name="Item",
        product_code="ITEM",
        quantity=quantity,
        unit_price=Decimal(unit_price),
    )


def _groups():
    return resolve_effective_groups(BURGER, BURGER_ASSIGNMENTS, ALL_GROUPS)


def test_large_size_adds_its_delta_to_base_price():
    item = build_line_item(BURGER, _groups(), {SIZE_GROUP.id: [102]}, quantity=1)

    assert item.unit_price == Decimal("12.00")
    assert [selection.option_name for selection in item.selections] == ["Large"]


def test_unit_price_does_not_depend_on_quantity():
    single = build_line_item(BURGER, _groups(), {SIZE_GROUP.id: [102], TOPPINGS_GROUP.id: [201]}, quantity=1)
    triple = build_line_item(BURGER, _groups(), {SIZE_GROUP.id: [102], TOPPINGS_GROUP.id: [201]}, quantity=3)

    assert single.unit_price == triple.unit_price == Decimal("13.50")
    assert triple.line_total == Decimal("40.50")


def test_negative_delta_lowers_price():
    item = build_line_item(BURGER, _groups(), {SIZE_GROUP.id: [101], NO_BUN_GROUP.id: [301]}, quantity=1)

    assert item.unit_price == Decimal("9.00")


def test_negative_unit_price_is_rejected():
    cheap = Product(id=5, name="Side salad", base_price=Decimal("0.50"), category_id=None)
    assignments = [Assignment(group_id=NO_BUN_GROUP.id, kind=AssignmentKind.PRODUCT, entity_id=cheap.id)]
    groups = resolve_effective_groups(cheap, assignments, [NO_BUN_GROUP])

    with pytest.raises(PricingError) as exc_info:
        build_line_item(cheap, groups, {NO_BUN_GROUP.id: [301]}, quantity=1)

    assert exc_info.value.kind == PricingErrorKind.NEGATIVE_PRICE


def test_negative_base_price_is_rejected():
    with pytest.raises(PricingError):
        compute_unit_price(Decimal("-1"), [])


@pytest.mark.parametrize("quantity", [0, -2])
def test_non_positive_quantity_is_rejected(quantity):
    with pytest.raises(PricingError) as exc_info:
        build_line_item(BURGER, _groups(), {SIZE_GROUP.id: [101]}, quantity=quantity)

    assert exc_info.value.kind == PricingErrorKind.INVALID_QUANTITY


def test_percent_coupon_with_tax():
    coupon = Coupon(code="SAVE10", kind=DiscountKind.PERCENT, value=Decimal("10"))

    totals = compute_order_totals([_line("25.00", quantity=2)], Decimal("6"), coupon=coupon)

    assert totals.subtotal == Decimal("50.00")
    assert totals.discount == Decimal("5.00")
    assert quantize(totals.tax) == Decimal("2.70")
    assert quantize(totals.total) == Decimal("47.70")


def test_amount_discount_is_clamped_to_subtotal():
    totals = compute_order_totals(
        [_line("3.00")],
        Decimal("10"),
        discount=DiscountInput(kind=DiscountKind.AMOUNT, value=Decimal("5")),
    )

    assert totals.discount == Decimal("3.00")
    assert totals.tax == Decimal("0")
    assert totals.total == Decimal("0")


def test_percent_above_hundred_is_clamped():
    assert discount_amount(DiscountKind.PERCENT, Decimal("150"), Decimal("20")) == Decimal("20")


def test_coupon_takes_precedence_over_manual_discount():
    totals = compute_order_totals(
        [_line("20.00")],
        Decimal("0"),
        coupon=Coupon(code="OFF5", kind=DiscountKind.AMOUNT, value=Decimal("5")),
        discount=DiscountInput(kind=DiscountKind.PERCENT, value=Decimal("50")),
    )

    assert totals.discount == Decimal("5")
    assert totals.total == Decimal("15.00")


def test_totals_invariant_holds():
    totals = compute_order_totals(
        [_line("7.33", quantity=3), _line("1.99")],
        Decimal("8.875"),
        discount=DiscountInput(kind=DiscountKind.PERCENT, value=Decimal("12.5")),
    )

    assert totals.total == totals.subtotal - totals.discount + totals.tax
    assert Decimal("0") <= totals.discount <= totals.subtotal
    assert totals.tax >= 0


def test_negative_tax_rate_is_rejected():
    with pytest.raises(ValueError):
        compute_order_totals([_line("1.00")], Decimal("-1"))


def test_rounding_is_half_even_and_only_on_output():
    assert quantize(Decimal("2.675")) == Decimal("2.68")
    assert quantize(Decimal("2.665")) == Decimal("2.66")
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_minor(Decimal("12.345")) == 1234


def test_rounded_total_adds_up_from_rounded_parts():
    totals = compute_order_totals(
        [_line("1.00")],
        Decimal("10"),
        discount=DiscountInput(kind=DiscountKind.PERCENT, value=Decimal("12.5")),
    )

    rounded = totals.rounded()

    # 0.9625 unrounded; 1.00 - 0.12 + 0.09 on the receipt
    assert (rounded.subtotal, rounded.discount, rounded.tax) == (Decimal("1.00"), Decimal("0.12"), Decimal("0.09"))
    assert rounded.total == Decimal("0.97")
    assert rounded.total == rounded.subtotal - rounded.discount + rounded.tax
