from __future__ import annotations

import json
import logging
import re
from decimal import Decimal
from typing import Any, Mapping, Optional

from tablepos.core.money import ZERO, to_decimal
from tablepos.engine.errors import CouponError, CouponErrorKind
from tablepos.engine.types import Coupon, DiscountKind

logger = logging.getLogger(__name__)

_PERCENT_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*%\s*$")
_NUMBER_RE = re.compile(r"^\s*\d+(?:\.\d+)?\s*$")

# Demo coupons, only active when nothing is configured and the fallback is enabled.
BUILTIN_COUPONS: dict[str, Coupon] = {
    "SAVE10": Coupon(code="SAVE10", kind=DiscountKind.PERCENT, value=Decimal("10"), label="10% off"),
    "OFF5": Coupon(code="OFF5", kind=DiscountKind.AMOUNT, value=Decimal("5"), label="$5 off"),
}


def canonicalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _from_record(code: str, record: Mapping[str, Any]) -> Optional[Coupon]:
    kind = record.get("type")
    value = record.get("value")
    if kind not in {DiscountKind.PERCENT.value, DiscountKind.AMOUNT.value} or not _is_number(value):
        return None

    min_subtotal = record.get("min_subtotal")
    label = record.get("label")
    return Coupon(
        code=code,
        kind=DiscountKind(kind),
        value=to_decimal(value),
        label=str(label) if label else None,
        min_subtotal=to_decimal(min_subtotal) if _is_number(min_subtotal) else None,
    )


def parse_coupon_definition(code: str, raw: Any) -> Optional[Coupon]:
    """Interpret one configured definition.

    Accepted shapes: a ``{"type", "value", "label"?, "min_subtotal"?}`` record
    (as a dict or JSON text), ``"10%"`` for a percentage and ``"5"`` for a
    fixed amount. Anything else yields ``None``.
    """
    code = canonicalize_code(code)
    if isinstance(raw, Mapping):
        coupon = _from_record(code, raw)
    elif isinstance(raw, str):
        coupon = None
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        percent_match = _PERCENT_RE.match(raw)
        if isinstance(parsed, Mapping):
            coupon = _from_record(code, parsed)
        elif percent_match is not None:
            coupon = Coupon(code=code, kind=DiscountKind.PERCENT, value=Decimal(percent_match.group(1)))
        elif _NUMBER_RE.match(raw):
            coupon = Coupon(code=code, kind=DiscountKind.AMOUNT, value=Decimal(raw.strip()))
    else:
        coupon = None

    if coupon is not None and coupon.value < ZERO:
        return None
    return coupon


def load_coupons(definitions: Mapping[str, Any]) -> dict[str, Coupon]:
    coupons: dict[str, Coupon] = {}
    for raw_code, raw in (definitions or {}).items():
        code = canonicalize_code(raw_code)
        if not code:
            continue
        coupon = parse_coupon_definition(code, raw)
        if coupon is None:
            logger.warning("Skipping invalid coupon definition code=%s", code)
            continue
        coupons[code] = coupon
    return coupons


class CouponResolver:
    def __init__(self, definitions: Mapping[str, Any], *, use_builtin_fallback: bool = False) -> None:
        self._coupons = load_coupons(definitions)
        if not self._coupons and use_builtin_fallback:
            logger.info("No coupons configured; using built-in demo coupons %s", sorted(BUILTIN_COUPONS))
            self._coupons = dict(BUILTIN_COUPONS)

    @property
    def codes(self) -> list[str]:
        return sorted(self._coupons)

    def resolve(self, code: Optional[str], subtotal: Optional[Decimal] = None) -> Coupon:
        canonical = canonicalize_code(code)
        if not canonical:
            raise CouponError(CouponErrorKind.MISSING_CODE, detail="coupon code is required")

        coupon = self._coupons.get(canonical)
        if coupon is None:
            raise CouponError(CouponErrorKind.NOT_FOUND, code=canonical, detail=f"coupon {canonical} not found")

        if coupon.min_subtotal is not None and subtotal is not None and to_decimal(subtotal) < coupon.min_subtotal:
            raise CouponError(
                CouponErrorKind.MIN_SUBTOTAL_NOT_MET,
                code=canonical,
                detail=f"coupon {canonical} requires a subtotal of at least {coupon.min_subtotal}",
            )
        return coupon
