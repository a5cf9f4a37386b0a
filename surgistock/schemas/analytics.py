from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class DeadStockRow(BaseModel):
    item_id: int
    sku: str
    name: str
    category: str
    quantity: int
    last_movement_date: dt.datetime
    days_since_movement: int
    total_value: Decimal


class DeadStockReport(BaseModel):
    threshold_months: int
    items: list[DeadStockRow]
    count: int
    total_value: Decimal


class SurgeonPortfolioRow(BaseModel):
    doctor_id: int
    doctor_name: str
    specialty: str = ""
    surgery_count: int
    total_base_value: Decimal
    total_selling_value: Decimal
    profit: Decimal


class SurgeryProfitRow(BaseModel):
    surgery_ref: str
    doctor_id: Optional[int] = None
    doctor_name: Optional[str] = None
    patient_name: Optional[str] = None
    date: dt.date
    item_count: int
    total_base_value: Decimal
    total_selling_value: Decimal
    profit: Decimal
    profit_margin: str


class AnalyticsSummary(BaseModel):
    total_profit: Decimal
    avg_profit_per_surgery: Decimal
    dead_stock_value: Decimal
    dead_stock_count: int
    top_doctor_name: str
    top_doctor_profit: Decimal


class CategoryBreakdownRow(BaseModel):
    category: str
    count: int
    quantity: int
    value: Decimal


class DashboardStats(BaseModel):
    total_skus: int
    low_stock_count: int
    dead_stock_count: int
    low_stock_item_ids: list[int] = []
    recent_purchase_ids: list[int] = []
    # Monetary figures are omitted for roles without financial access.
    total_inventory_value: Optional[Decimal] = None
    total_purchases: Optional[Decimal] = None
    total_sales: Optional[Decimal] = None
    total_profit: Optional[Decimal] = None
