from __future__ import annotations

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, Text

from ..core.catalog import STOCK_IN_TYPES
from ..db.session import Base


class Transaction(Base):
    """A purchase, sale, internal usage or surgical consumption record.

    Names of the item, supplier and doctor are copied at creation time so a
    later rename never rewrites history. ``item_id`` is a plain column for the
    same reason: deleting an item leaves its movements intact.
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(Text, nullable=False, index=True)
    item_id = Column(Integer, nullable=False, index=True)
    item_name = Column(Text, nullable=False)
    item_sku = Column(Text, nullable=False, default="")
    quantity = Column(Integer, nullable=False)

    # Purchases
    unit_cost = Column(Float, nullable=True)
    total_cost = Column(Float, nullable=True)
    supplier_id = Column(Integer, nullable=True, index=True)
    supplier_name = Column(Text, nullable=True)

    # Sales, usage and surgeries
    base_price = Column(Float, nullable=True)
    selling_price = Column(Float, nullable=True)
    total_base_value = Column(Float, nullable=True)
    total_selling_value = Column(Float, nullable=True)
    doctor_id = Column(Integer, nullable=True, index=True)
    doctor_name = Column(Text, nullable=True)
    patient_name = Column(Text, nullable=True)
    surgery_ref = Column(Text, nullable=True, index=True)

    date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)
    is_locked = Column(Boolean, nullable=False, default=True)

    @property
    def is_stock_in(self) -> bool:
        return self.type in STOCK_IN_TYPES

    @property
    def profit(self) -> float | None:
        if self.total_selling_value is None or self.total_base_value is None:
            return None
        return self.total_selling_value - self.total_base_value
