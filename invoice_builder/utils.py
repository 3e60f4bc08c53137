"""Arithmetic, coercion and formatting helpers shared across the invoice builder."""
from __future__ import annotations

import math
import random
import re
import uuid
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional, Protocol

from dateutil import parser

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class HasTotal(Protocol):
    total: Decimal


def is_storable(number: Decimal) -> bool:
    """True when ``number`` survives the float round trip used by the JSON store."""
    return number.is_finite() and math.isfinite(float(number))


def to_decimal(value: object) -> Decimal:
    """Coerce a number-like value to Decimal; None, junk and overflow become 0."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return ZERO
    return number if is_storable(number) else ZERO


def item_total(quantity: object, price_per_unit: object) -> Decimal:
    return to_decimal(quantity) * to_decimal(price_per_unit)


def subtotal(items: Iterable[HasTotal]) -> Decimal:
    return sum((to_decimal(item.total) for item in items), ZERO)


def tax_amount(subtotal_value: object, tax_rate: object = 0) -> Decimal:
    return to_decimal(subtotal_value) * (to_decimal(tax_rate) / HUNDRED)


def total_amount(subtotal_value: object, tax_rate: object = 0) -> Decimal:
    amount = to_decimal(subtotal_value)
    return amount + tax_amount(amount, tax_rate)


def revenue(total: object, production_cost: object = 0) -> Decimal:
    return to_decimal(total) - to_decimal(production_cost)


def revenue_ratio(total: object, production_cost: object = 0) -> Decimal:
    """Total billed divided by production cost, 0 when there is no cost."""
    cost = to_decimal(production_cost)
    if cost == ZERO:
        return ZERO
    return (to_decimal(total) / cost).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount: object) -> int:
    """Convert a major-unit amount (dollars) to rounded minor units (cents)."""
    return int((to_decimal(amount) * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_int(value: object, default: int) -> int:
    """Read the leading integer of a loosely formatted value.

    ``"3"`` and ``"3.7"`` give 3; blank, non-numeric and zero values give
    ``default``.
    """
    if value is None:
        return default
    match = _INT_PREFIX.match(str(value))
    if not match:
        return default
    number = int(match.group(1))
    return number or default


def parse_decimal(value: object, default: Decimal = ZERO) -> Decimal:
    """Read a leading decimal number, falling back to ``default``.

    Values too large to store, such as ``"1e999"``, also give ``default``.
    """
    if value is None:
        return default
    match = _FLOAT_PREFIX.match(str(value))
    if not match:
        return default
    try:
        number = Decimal(match.group(1))
    except InvalidOperation:
        return default
    if not is_storable(number):
        return default
    return number or default


def parse_date(value: str) -> Optional[date]:
    """Parse a date string into a date object; returns None on failure."""
    if not value:
        return None
    try:
        return parser.parse(value, dayfirst=False, yearfirst=True).date()
    except (ValueError, TypeError, OverflowError):
        try:
            return parser.parse(value, dayfirst=True, yearfirst=True).date()
        except (ValueError, TypeError, OverflowError):
            return None


def format_currency(amount: object, symbol: str = "$") -> str:
    """Format an amount with a currency symbol, grouping and two decimals."""
    value = to_decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"


def format_invoice_number(prefix: str = "TEST", today: Optional[date] = None) -> str:
    """Build ``{prefix}-{YYYYMM}-{NNN}``; the suffix is random and may collide."""
    today = today or date.today()
    return f"{prefix}-{today:%Y%m}-{random.randint(0, 999):03d}"


def import_invoice_number(prefix: str = "TEST", today: Optional[date] = None) -> str:
    """Invoice number for bulk imports, with a uuid suffix so rows never collide."""
    today = today or date.today()
    return f"{prefix}-{today:%Y%m}-{uuid.uuid4().hex[:8]}"


def new_id(kind: str) -> str:
    return f"{kind}-{uuid.uuid4().hex}"
