"""Shared catalog and transaction type constants and helpers."""

CATEGORY_SCREWS = "screws"
CATEGORY_PLATES = "plates"
CATEGORY_RODS = "rods"
CATEGORY_WIRES = "wires"
CATEGORY_NAILS = "nails"
CATEGORY_INSTRUMENTS = "instruments"
CATEGORY_CONSUMABLES = "consumables"

CATEGORY_CHOICES = (
    CATEGORY_SCREWS,
    CATEGORY_PLATES,
    CATEGORY_RODS,
    CATEGORY_WIRES,
    CATEGORY_NAILS,
    CATEGORY_INSTRUMENTS,
    CATEGORY_CONSUMABLES,
)

MATERIAL_TITANIUM = "titanium"
MATERIAL_STAINLESS = "stainless"

MATERIAL_CHOICES = (MATERIAL_TITANIUM, MATERIAL_STAINLESS)

# Plates are measured in holes rather than millimetres.
PLATE_LENGTH_OPTIONS = ("4-hole", "6-hole", "8-hole", "10-hole", "12-hole", "14-hole", "16-hole")

TX_PURCHASE = "purchase"
TX_SALE = "sale"
TX_USAGE = "usage"
TX_SURGERY = "surgery"

TX_TYPE_CHOICES = (TX_PURCHASE, TX_SALE, TX_USAGE, TX_SURGERY)

STOCK_IN_TYPES = {TX_PURCHASE}
STOCK_OUT_TYPES = {TX_SALE, TX_USAGE, TX_SURGERY}

# Types that carry a negotiated selling price and therefore a margin.
MARGIN_CHECKED_TYPES = {TX_SALE, TX_SURGERY}

# Types whose selling value counts as revenue.
REVENUE_TYPES = {TX_SALE, TX_SURGERY}


def normalize_choice(value: str | None) -> str | None:
    """Return a lowercase, stripped value or ``None`` for blanks."""

    if value is None:
        return None
    cleaned = value.strip().lower()
    return cleaned or None


def is_stock_in(tx_type: str) -> bool:
    return tx_type in STOCK_IN_TYPES


def movement_sign(tx_type: str) -> int:
    """+1 for stock-in types, -1 for stock-out types."""

    if tx_type in STOCK_IN_TYPES:
        return 1
    if tx_type in STOCK_OUT_TYPES:
        return -1
    raise ValueError(f"unknown transaction type: {tx_type}")


__all__ = [
    "CATEGORY_CHOICES",
    "CATEGORY_CONSUMABLES",
    "CATEGORY_INSTRUMENTS",
    "CATEGORY_NAILS",
    "CATEGORY_PLATES",
    "CATEGORY_RODS",
    "CATEGORY_SCREWS",
    "CATEGORY_WIRES",
    "MARGIN_CHECKED_TYPES",
    "MATERIAL_CHOICES",
    "MATERIAL_STAINLESS",
    "MATERIAL_TITANIUM",
    "PLATE_LENGTH_OPTIONS",
    "REVENUE_TYPES",
    "STOCK_IN_TYPES",
    "STOCK_OUT_TYPES",
    "TX_PURCHASE",
    "TX_SALE",
    "TX_SURGERY",
    "TX_TYPE_CHOICES",
    "TX_USAGE",
    "is_stock_in",
    "movement_sign",
    "normalize_choice",
]
