"""Pricing, margin and stock-age rules.

Every function here is pure: callers pass in the values (and ``now`` where
time matters) and get a value back. Money is rounded with ``Decimal`` half-up
so results agree with what staff compute by hand.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from pydantic import BaseModel

STOCK_LOW = "low"
STOCK_MEDIUM = "medium"
STOCK_GOOD = "good"

TWOPLACES = Decimal("0.01")
WHOLE = Decimal("1")

MARGIN_BELOW_BASE_MESSAGE = "Critical: selling price is below the base price"

_HOLES_RE = re.compile(r"^\s*(\d+)")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_decimal(value: Any) -> Decimal:
    """Best-effort conversion of incoming values to Decimal for currency math."""

    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if not cleaned:
            return Decimal("0")
        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return Decimal("0")
    return Decimal("0")


def quantize_currency(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def round_money(value: Any) -> float:
    return float(quantize_currency(value))


def stock_status(quantity: int, min_stock: int) -> str:
    if quantity <= min_stock:
        return STOCK_LOW
    if quantity <= min_stock * 2:
        return STOCK_MEDIUM
    return STOCK_GOOD


def months_between(earlier: datetime, later: datetime) -> int:
    """Calendar month difference; day of month is ignored."""

    return (later.year - earlier.year) * 12 + (later.month - earlier.month)


def days_since(moment: datetime, now: datetime | None = None) -> int:
    now = now or utcnow()
    return (now - moment).days


def is_dead_stock(last_movement_date: datetime, threshold_months: int, now: datetime | None = None) -> bool:
    return months_between(last_movement_date, now or utcnow()) >= threshold_months


class MarginValidation(BaseModel):
    is_valid: bool
    message: str | None = None
    margin_percentage: float


def margin_percentage(base_price: float, selling_price: float) -> float:
    # A zero base price has no meaningful margin; report 0 instead of dividing.
    if not base_price:
        return 0.0
    return (selling_price - base_price) / base_price * 100


def validate_margin(base_price: float, selling_price: float) -> MarginValidation:
    percentage = margin_percentage(base_price, selling_price)
    if selling_price < base_price:
        return MarginValidation(is_valid=False, message=MARGIN_BELOW_BASE_MESSAGE, margin_percentage=percentage)
    return MarginValidation(is_valid=True, margin_percentage=percentage)


def parse_hole_count(length: str | None) -> int | None:
    """Extract the hole count from a plate length such as ``"8-hole"``."""

    if not length:
        return None
    match = _HOLES_RE.match(length.replace("-hole", ""))
    return int(match.group(1)) if match else None


def calculate_plate_cutting_cost(original_length: str | None, new_length: str | None, base_price: float) -> float:
    """Cost of a plate cut down to ``new_length``, proportional to hole count.

    Unparseable lengths and cuts that do not shorten the plate leave the
    price untouched.
    """

    original_holes = parse_hole_count(original_length)
    new_holes = parse_hole_count(new_length)
    if original_holes is None or new_holes is None or new_holes >= original_holes:
        return base_price
    cost = to_decimal(base_price) * Decimal(new_holes) / Decimal(original_holes)
    return float(cost.quantize(TWOPLACES, rounding=ROUND_HALF_UP))


def markup_price(cost: float, markup: float) -> float:
    """Default selling price for a derived item, rounded to a whole unit."""

    price = to_decimal(cost) * to_decimal(markup)
    return float(price.quantize(WHOLE, rounding=ROUND_HALF_UP))


__all__ = [
    "MARGIN_BELOW_BASE_MESSAGE",
    "MarginValidation",
    "STOCK_GOOD",
    "STOCK_LOW",
    "STOCK_MEDIUM",
    "calculate_plate_cutting_cost",
    "days_since",
    "is_dead_stock",
    "margin_percentage",
    "markup_price",
    "months_between",
    "parse_hole_count",
    "quantize_currency",
    "round_money",
    "stock_status",
    "to_decimal",
    "utcnow",
    "validate_margin",
]
