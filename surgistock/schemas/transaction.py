from __future__ import annotations

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..core.catalog import TX_SURGERY, is_stock_in
from ..core.roles import RolePermissions

TransactionType = Literal["purchase", "sale", "usage", "surgery"]

# Fields that only make sense for one direction of movement.
STOCK_IN_FIELDS = ("unit_cost", "supplier_id")
STOCK_OUT_FIELDS = ("selling_price", "doctor_id", "patient_name", "surgery_ref")


def misplaced_fields(tx_type: str, values: dict) -> list[str]:
    """Return the fields in ``values`` that belong to the other direction."""

    foreign = STOCK_OUT_FIELDS if is_stock_in(tx_type) else STOCK_IN_FIELDS
    return [field for field in foreign if values.get(field) is not None]


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class TransactionCreate(BaseModel):
    type: TransactionType
    item_id: int
    quantity: int = Field(gt=0)
    # Purchases: defaults to the item's base price when omitted.
    unit_cost: Optional[float] = Field(default=None, ge=0)
    # Sales: defaults to the item's selling price when omitted.
    selling_price: Optional[float] = Field(default=None, ge=0)
    supplier_id: Optional[int] = None
    doctor_id: Optional[int] = None
    patient_name: Optional[str] = None
    surgery_ref: Optional[str] = None
    date: Optional[dt.date] = None
    notes: Optional[str] = None

    @field_validator("patient_name", "surgery_ref", "notes")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value)

    @model_validator(mode="after")
    def validate_fields_for_type(self) -> "TransactionCreate":
        misplaced = misplaced_fields(self.type, self.model_dump())
        if misplaced:
            raise ValueError(f"{self.type} records do not take {', '.join(misplaced)}")
        if self.type == TX_SURGERY:
            if not self.doctor_id:
                raise ValueError("doctor_id is required for surgery records")
            if not self.patient_name:
                raise ValueError("patient_name is required for surgery records")
        return self


class TransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    quantity: Optional[int] = Field(default=None, gt=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    selling_price: Optional[float] = Field(default=None, ge=0)
    supplier_id: Optional[int] = None
    doctor_id: Optional[int] = None
    patient_name: Optional[str] = None
    surgery_ref: Optional[str] = None
    date: Optional[dt.date] = None
    notes: Optional[str] = None

    @field_validator("patient_name", "surgery_ref", "notes")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value)


class TransactionOut(BaseModel):
    id: int
    type: str
    item_id: int
    item_name: str
    item_sku: str
    quantity: int
    unit_cost: Optional[float] = None
    total_cost: Optional[float] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    base_price: Optional[float] = None
    selling_price: Optional[float] = None
    total_base_value: Optional[float] = None
    total_selling_value: Optional[float] = None
    profit: Optional[float] = None
    doctor_id: Optional[int] = None
    doctor_name: Optional[str] = None
    patient_name: Optional[str] = None
    surgery_ref: Optional[str] = None
    date: dt.date
    notes: Optional[str] = None
    created_by: str
    created_at: dt.datetime
    updated_at: Optional[dt.datetime] = None
    is_locked: bool

    class Config:
        from_attributes = True


# Money columns blanked for roles without ``can_view_prices``.
_PRICE_FIELDS = (
    "unit_cost",
    "total_cost",
    "base_price",
    "selling_price",
    "total_base_value",
    "total_selling_value",
    "profit",
)


def transaction_view(record, permissions: RolePermissions) -> TransactionOut:
    """Serialize a record for a role, hiding prices it may not see."""

    out = TransactionOut.model_validate(record)
    if not permissions.can_view_prices:
        for field in _PRICE_FIELDS:
            setattr(out, field, None)
    return out
