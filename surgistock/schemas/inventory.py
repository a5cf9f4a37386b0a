from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..core.catalog import CATEGORY_CHOICES, MATERIAL_CHOICES, normalize_choice
from ..core.pricing import is_dead_stock
from ..core.roles import RolePermissions


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _check_category(value: Optional[str]) -> Optional[str]:
    value = normalize_choice(value)
    if value is not None and value not in CATEGORY_CHOICES:
        raise ValueError(f"category must be one of {', '.join(CATEGORY_CHOICES)}")
    return value


def _check_material(value: Optional[str]) -> Optional[str]:
    value = normalize_choice(value)
    if value is not None and value not in MATERIAL_CHOICES:
        raise ValueError(f"material must be one of {', '.join(MATERIAL_CHOICES)}")
    return value


class InventoryItemCreate(BaseModel):
    sku: str
    name: str
    category: str
    material: Optional[str] = None
    diameter: Optional[str] = None
    length: Optional[str] = None
    quantity: int = Field(default=0, ge=0)
    min_stock: int = Field(default=0, ge=0)
    base_price: float = Field(default=0, ge=0)
    selling_price: float = Field(default=0, ge=0)

    @field_validator("sku", "name")
    @classmethod
    def require_text(cls, value: str) -> str:
        cleaned = _clean_text(value)
        if not cleaned:
            raise ValueError("value is required")
        return cleaned

    @field_validator("diameter", "length")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value)

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: str) -> str:
        value = _check_category(value)
        if value is None:
            raise ValueError("category is required")
        return value

    @field_validator("material")
    @classmethod
    def validate_material(cls, value: Optional[str]) -> Optional[str]:
        return _check_material(value)


class InventoryItemUpdate(BaseModel):
    """Partial update; only the fields actually sent are applied."""

    sku: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    material: Optional[str] = None
    diameter: Optional[str] = None
    length: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    min_stock: Optional[int] = Field(default=None, ge=0)
    base_price: Optional[float] = Field(default=None, ge=0)
    selling_price: Optional[float] = Field(default=None, ge=0)

    @field_validator("sku", "name", "diameter", "length")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return _clean_text(value)

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: Optional[str]) -> Optional[str]:
        return _check_category(value)

    @field_validator("material")
    @classmethod
    def validate_material(cls, value: Optional[str]) -> Optional[str]:
        return _check_material(value)


class PlateCutRequest(BaseModel):
    source_item_id: int
    new_length: str

    @field_validator("new_length")
    @classmethod
    def normalize_length(cls, value: str) -> str:
        cleaned = (value or "").strip().lower()
        if not cleaned:
            raise ValueError("new_length is required")
        return cleaned


class InventoryItemOut(BaseModel):
    id: int
    sku: str
    name: str
    category: str
    material: Optional[str] = None
    diameter: Optional[str] = None
    length: Optional[str] = None
    quantity: int
    min_stock: int
    base_price: Optional[float] = None
    selling_price: Optional[float] = None
    stock_value: Optional[float] = None
    stock_status: str
    is_dead_stock: bool = False
    last_movement_date: datetime
    created_at: datetime
    updated_at: datetime
    created_by: str

    class Config:
        from_attributes = True


def item_view(
    item,
    permissions: RolePermissions,
    *,
    threshold_months: int,
    now: Optional[datetime] = None,
) -> InventoryItemOut:
    """Serialize an item for a role, hiding prices it may not see."""

    out = InventoryItemOut.model_validate(item)
    out.is_dead_stock = is_dead_stock(item.last_movement_date, threshold_months, now)
    if not permissions.can_view_prices:
        out.base_price = None
        out.selling_price = None
        out.stock_value = None
    return out
