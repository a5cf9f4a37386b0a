from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Integer, Text

from ..core.pricing import stock_status
from ..core.variants import VariantKey
from ..db.session import Base


class InventoryItem(Base):
    """A catalog entry and its on-hand quantity.

    ``quantity`` is adjusted additively by each movement and is never
    recomputed from the transaction history.
    """

    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(Text, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False)
    category = Column(Text, nullable=False, index=True)
    material = Column(Text, nullable=True)
    diameter = Column(Text, nullable=True)
    length = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    base_price = Column(Float, nullable=False, default=0.0)
    selling_price = Column(Float, nullable=False, default=0.0)
    last_movement_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    created_by = Column(Text, nullable=False, default="")

    @property
    def variant_key(self) -> VariantKey:
        return VariantKey.of(self)

    @property
    def stock_status(self) -> str:
        return stock_status(self.quantity, self.min_stock)

    @property
    def stock_value(self) -> float:
        return self.quantity * self.base_price

    @property
    def display_name(self) -> str:
        specs = " ".join(p for p in (self.diameter, self.length) if p)
        return f"{self.name} - {specs}" if specs else self.name
