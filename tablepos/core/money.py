"""Decimal helpers for monetary values.

Intermediate arithmetic is always done on unrounded ``Decimal`` values.
Rounding to the currency's minor unit happens only when an amount leaves the
engine (API response, database row), using ROUND_HALF_EVEN.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Union

from tablepos.core.config import CURRENCY

ZERO = Decimal("0")
HUNDRED = Decimal("100")

CURRENCY_EXPONENT = {
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "CAD": 2,
    "AUD": 2,
    "MYR": 2,
    "SGD": 2,
    "JPY": 0,
    "KRW": 0,
    "VND": 0,
}

MoneyInput = Union[Decimal, int, float, str]


def currency_exponent(currency: str | None = None) -> int:
    return CURRENCY_EXPONENT.get((currency or CURRENCY).upper(), 2)


def to_decimal(value: MoneyInput | None) -> Decimal:
    """Convert a raw value to ``Decimal`` without going through binary float."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the shortest repr, so 0.1 becomes Decimal("0.1")
        value = str(value)
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid monetary value: {value!r}") from exc


def quantize(value: MoneyInput, currency: str | None = None) -> Decimal:
    exponent = currency_exponent(currency)
    step = Decimal(1).scaleb(-exponent)
    return to_decimal(value).quantize(step, rounding=ROUND_HALF_EVEN)


def to_minor(value: MoneyInput, currency: str | None = None) -> int:
    """Amount in minor units (cents for USD)."""
    exponent = currency_exponent(currency)
    return int(quantize(value, currency).scaleb(exponent))


def clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(value, upper))
