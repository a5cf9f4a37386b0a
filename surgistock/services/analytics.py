"""Read-only aggregates over the ledger and the movement records.

Nothing here is cached; every call recomputes from the current rows.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.catalog import REVENUE_TYPES, TX_PURCHASE, TX_SURGERY
from ..core.config import DEAD_STOCK_THRESHOLD_CHOICES, AppSettings, get_settings
from ..core.context import SessionContext
from ..core.errors import ValidationFailed
from ..core.pricing import (
    STOCK_LOW,
    days_since,
    is_dead_stock,
    quantize_currency,
    to_decimal,
    utcnow,
)
from ..models.inventory import InventoryItem
from ..models.reference import Doctor
from ..models.transaction import Transaction
from ..schemas.analytics import (
    AnalyticsSummary,
    CategoryBreakdownRow,
    DashboardStats,
    DeadStockReport,
    DeadStockRow,
    SurgeonPortfolioRow,
    SurgeryProfitRow,
)

ZERO = Decimal("0")
ONE_PLACE = Decimal("0.1")

SurgeryKey = Tuple[str, Any]


def _all_items(db: Session) -> list[InventoryItem]:
    return db.execute(select(InventoryItem).order_by(InventoryItem.id)).scalars().all()


def _surgeries(db: Session) -> list[Transaction]:
    stmt = select(Transaction).where(Transaction.type == TX_SURGERY).order_by(Transaction.id)
    return db.execute(stmt).scalars().all()


def _surgery_key(record: Transaction) -> SurgeryKey:
    # Items consumed in the same operation share a reference; a lone record
    # is its own surgery. Keys are tagged so a typed reference never merges
    # with an unreferenced record.
    if record.surgery_ref:
        return ("ref", record.surgery_ref)
    return ("tx", record.id)


def _surgery_label(record: Transaction) -> str:
    return record.surgery_ref or f"TX-{record.id}"


def _resolve_threshold(threshold_months: int | None, settings: AppSettings) -> int:
    threshold = threshold_months if threshold_months is not None else settings.DEAD_STOCK_THRESHOLD_MONTHS
    if threshold not in DEAD_STOCK_THRESHOLD_CHOICES:
        raise ValidationFailed(
            f"threshold must be one of {DEAD_STOCK_THRESHOLD_CHOICES}",
            details={"field": "threshold_months"},
        )
    return threshold


def dead_stock_items(
    items: Iterable[InventoryItem], threshold_months: int, now: datetime | None = None
) -> list[DeadStockRow]:
    now = now or utcnow()
    rows = [
        DeadStockRow(
            item_id=item.id,
            sku=item.sku,
            name=item.name,
            category=item.category,
            quantity=item.quantity,
            last_movement_date=item.last_movement_date,
            days_since_movement=days_since(item.last_movement_date, now),
            total_value=quantize_currency(to_decimal(item.quantity) * to_decimal(item.base_price)),
        )
        for item in items
        if is_dead_stock(item.last_movement_date, threshold_months, now)
    ]
    rows.sort(key=lambda row: row.days_since_movement, reverse=True)
    return rows


def dead_stock_report(
    db: Session,
    context: SessionContext,
    *,
    threshold_months: int | None = None,
    settings: AppSettings | None = None,
    now: datetime | None = None,
) -> DeadStockReport:
    """Items with no movement for at least ``threshold_months`` calendar months."""

    settings = settings or get_settings()
    with context.activate():
        context.require("can_view_analytics", "view analytics")
        threshold = _resolve_threshold(threshold_months, settings)
        rows = dead_stock_items(_all_items(db), threshold, now)
        total = sum((row.total_value for row in rows), ZERO)
        return DeadStockReport(
            threshold_months=threshold,
            items=rows,
            count=len(rows),
            total_value=quantize_currency(total),
        )


def surgeon_portfolio(db: Session, context: SessionContext) -> list[SurgeonPortfolioRow]:
    """Surgical consumption and profit per doctor, most profitable first."""

    with context.activate():
        context.require("can_view_analytics", "view analytics")
        specialties = {doc.id: doc.specialty for doc in db.execute(select(Doctor)).scalars().all()}

        portfolio: Dict[int, Dict[str, Any]] = {}
        for record in _surgeries(db):
            if record.doctor_id is None:
                continue
            entry = portfolio.setdefault(
                record.doctor_id,
                {
                    "doctor_id": record.doctor_id,
                    "doctor_name": record.doctor_name or "",
                    "specialty": specialties.get(record.doctor_id, ""),
                    "surgeries": set(),
                    "total_base_value": ZERO,
                    "total_selling_value": ZERO,
                },
            )
            entry["surgeries"].add(_surgery_key(record))
            entry["total_base_value"] += to_decimal(record.total_base_value)
            entry["total_selling_value"] += to_decimal(record.total_selling_value)

        rows = []
        for entry in portfolio.values():
            base = quantize_currency(entry["total_base_value"])
            selling = quantize_currency(entry["total_selling_value"])
            rows.append(
                SurgeonPortfolioRow(
                    doctor_id=entry["doctor_id"],
                    doctor_name=entry["doctor_name"],
                    specialty=entry["specialty"],
                    surgery_count=len(entry["surgeries"]),
                    total_base_value=base,
                    total_selling_value=selling,
                    profit=selling - base,
                )
            )
        rows.sort(key=lambda row: row.profit, reverse=True)
        return rows


def _profit_margin(profit: Decimal, base: Decimal) -> str:
    if base <= 0:
        return "0"
    margin = (profit / base * 100).quantize(ONE_PLACE, rounding=ROUND_HALF_UP)
    return f"{margin:.1f}"


def surgery_profitability(db: Session, context: SessionContext) -> list[SurgeryProfitRow]:
    """Profit and margin per surgery, most profitable first."""

    with context.activate():
        context.require("can_view_analytics", "view analytics")
        grouped: Dict[SurgeryKey, list[Transaction]] = defaultdict(list)
        for record in _surgeries(db):
            grouped[_surgery_key(record)].append(record)

        rows = []
        for records in grouped.values():
            first = records[0]
            base = quantize_currency(sum((to_decimal(r.total_base_value) for r in records), ZERO))
            selling = quantize_currency(sum((to_decimal(r.total_selling_value) for r in records), ZERO))
            profit = selling - base
            rows.append(
                SurgeryProfitRow(
                    surgery_ref=_surgery_label(first),
                    doctor_id=first.doctor_id,
                    doctor_name=first.doctor_name,
                    patient_name=first.patient_name,
                    date=first.date,
                    item_count=sum(r.quantity for r in records),
                    total_base_value=base,
                    total_selling_value=selling,
                    profit=profit,
                    profit_margin=_profit_margin(profit, base),
                )
            )
        rows.sort(key=lambda row: row.profit, reverse=True)
        return rows


def analytics_summary(
    db: Session,
    context: SessionContext,
    *,
    threshold_months: int | None = None,
    settings: AppSettings | None = None,
    now: datetime | None = None,
) -> AnalyticsSummary:
    surgeries = surgery_profitability(db, context)
    portfolio = surgeon_portfolio(db, context)
    dead = dead_stock_report(db, context, threshold_months=threshold_months, settings=settings, now=now)

    total_profit = sum((row.profit for row in surgeries), ZERO)
    average = total_profit / len(surgeries) if surgeries else ZERO
    top = portfolio[0] if portfolio else None
    return AnalyticsSummary(
        total_profit=quantize_currency(total_profit),
        avg_profit_per_surgery=quantize_currency(average),
        dead_stock_value=dead.total_value,
        dead_stock_count=dead.count,
        top_doctor_name=top.doctor_name if top else "-",
        top_doctor_profit=top.profit if top else quantize_currency(ZERO),
    )


def dashboard_stats(
    db: Session,
    context: SessionContext,
    *,
    settings: AppSettings | None = None,
    now: datetime | None = None,
) -> DashboardStats:
    """Headline numbers for the landing screen.

    Counts are visible to everyone; money totals only to roles with
    ``can_view_financials``.
    """

    settings = settings or get_settings()
    now = now or utcnow()
    items = _all_items(db)
    low = [item for item in items if item.stock_status == STOCK_LOW]
    dead_count = sum(
        1 for item in items if is_dead_stock(item.last_movement_date, settings.DEAD_STOCK_THRESHOLD_MONTHS, now)
    )
    purchases = db.execute(
        select(Transaction)
        .where(Transaction.type == TX_PURCHASE)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
    ).scalars().all()

    stats = DashboardStats(
        total_skus=len(items),
        low_stock_count=len(low),
        dead_stock_count=dead_count,
        low_stock_item_ids=[item.id for item in low[: settings.RECENT_LIMIT]] if settings.LOW_STOCK_ALERT_ENABLED else [],
        recent_purchase_ids=[record.id for record in purchases[: settings.RECENT_LIMIT]],
    )
    if not context.can("can_view_financials"):
        return stats

    sales = db.execute(select(Transaction).where(Transaction.type.in_(sorted(REVENUE_TYPES)))).scalars().all()
    inventory_value = sum((to_decimal(i.quantity) * to_decimal(i.base_price) for i in items), ZERO)
    total_purchases = sum((to_decimal(p.total_cost) for p in purchases), ZERO)
    total_sales = sum((to_decimal(s.total_selling_value) for s in sales), ZERO)
    total_profit = sum((to_decimal(s.total_selling_value) - to_decimal(s.total_base_value) for s in sales), ZERO)

    stats.total_inventory_value = quantize_currency(inventory_value)
    stats.total_purchases = quantize_currency(total_purchases)
    stats.total_sales = quantize_currency(total_sales)
    stats.total_profit = quantize_currency(total_profit)
    return stats


def inventory_by_category(db: Session, context: SessionContext) -> list[CategoryBreakdownRow]:
    with context.activate():
        context.require("can_view_financials", "view financial reports")
        categories: Dict[str, Dict[str, Any]] = {}
        for item in _all_items(db):
            entry = categories.setdefault(item.category, {"count": 0, "quantity": 0, "value": ZERO})
            entry["count"] += 1
            entry["quantity"] += item.quantity
            entry["value"] += to_decimal(item.quantity) * to_decimal(item.base_price)
        return [
            CategoryBreakdownRow(
                category=category,
                count=entry["count"],
                quantity=entry["quantity"],
                value=quantize_currency(entry["value"]),
            )
            for category, entry in categories.items()
        ]


def top_items_by_value(db: Session, context: SessionContext, limit: int = 10) -> list[InventoryItem]:
    with context.activate():
        context.require("can_view_financials", "view financial reports")
        items = _all_items(db)
        items.sort(key=lambda item: item.quantity * item.base_price, reverse=True)
        return items[:limit]
