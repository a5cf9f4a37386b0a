from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, field_validator


class SupplierCreate(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def require_name(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned


class DoctorCreate(BaseModel):
    name: str
    specialty: str = ""
    hospital: str = ""

    @field_validator("name")
    @classmethod
    def require_name(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned
