"""Inventory ledger: catalog entries and their on-hand quantities.

Only this module writes ``InventoryItem`` rows. Transaction records reach the
quantities through ``adjust_quantity``; plate cutting is the one operation
that derives new catalog entries from existing ones.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..core.catalog import CATEGORY_PLATES, PLATE_LENGTH_OPTIONS
from ..core.config import AppSettings, get_settings
from ..core.context import SessionContext
from ..core.errors import NotFound, ValidationFailed, parse_payload
from ..core.pricing import (
    calculate_plate_cutting_cost,
    markup_price,
    parse_hole_count,
    utcnow,
    validate_margin,
)
from ..core.variants import VariantKey
from ..models.inventory import InventoryItem
from ..schemas.inventory import InventoryItemCreate, InventoryItemUpdate, PlateCutRequest

logger = logging.getLogger(__name__)

# Fields that may not be cleared by an update.
_REQUIRED_FIELDS = ("sku", "name", "category", "quantity", "min_stock", "base_price", "selling_price")


class PlateCuttingResult(NamedTuple):
    source: InventoryItem
    target: InventoryItem
    merged: bool
    cost: float


def list_items(
    db: Session,
    *,
    search: str | None = None,
    category: str | None = None,
    material: str | None = None,
    diameter: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[InventoryItem]:
    """Return items matching the catalog filters, ordered by name then SKU."""

    stmt = select(InventoryItem)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        stmt = stmt.where(
            or_(
                InventoryItem.name.like(like),
                func.lower(InventoryItem.sku).like(like.lower()),
                InventoryItem.diameter.like(like),
                InventoryItem.length.like(like),
            )
        )
    if category:
        stmt = stmt.where(InventoryItem.category == category)
    if material:
        stmt = stmt.where(InventoryItem.material == material)
    if diameter:
        stmt = stmt.where(InventoryItem.diameter == diameter)
    stmt = stmt.order_by(InventoryItem.name, InventoryItem.sku).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.execute(stmt).scalars().all()


def get_item(db: Session, item_id: int) -> InventoryItem:
    item = db.get(InventoryItem, item_id)
    if item is None:
        raise NotFound("inventory item", item_id)
    return item


def get_item_by_sku(db: Session, sku: str) -> InventoryItem | None:
    stmt = select(InventoryItem).where(InventoryItem.sku == sku.strip())
    return db.execute(stmt).scalars().first()


def _match(column, value):
    return column.is_(None) if value is None else column == value


def find_variant(db: Session, key: VariantKey) -> InventoryItem | None:
    """Look up the item whose (category, material, diameter, length) equals ``key``."""

    stmt = (
        select(InventoryItem)
        .where(
            InventoryItem.category == key.category,
            _match(InventoryItem.material, key.material),
            _match(InventoryItem.diameter, key.diameter),
            _match(InventoryItem.length, key.length),
        )
        .order_by(InventoryItem.id)
    )
    return db.execute(stmt).scalars().first()


def _ensure_unique_sku(db: Session, sku: str, exclude_id: int | None = None) -> None:
    existing = get_item_by_sku(db, sku)
    if existing is not None and existing.id != exclude_id:
        raise ValidationFailed(f"sku {sku} is already in use", details={"field": "sku"})


def _check_margin(base_price: float, selling_price: float, settings: AppSettings, **log_fields) -> None:
    result = validate_margin(base_price, selling_price)
    if result.is_valid:
        return
    if settings.MARGIN_WARNING_ENABLED:
        logger.warning(
            "margin.rejected",
            extra={"extra_data": {"base_price": base_price, "selling_price": selling_price, **log_fields}},
        )
    raise ValidationFailed(
        result.message,
        details={"field": "selling_price", "margin_percentage": result.margin_percentage},
    )


def create_item(
    db: Session,
    context: SessionContext,
    payload: InventoryItemCreate | dict,
    *,
    settings: AppSettings | None = None,
    now: datetime | None = None,
) -> InventoryItem:
    """Add a catalog entry after checking permission, SKU uniqueness and margin."""

    settings = settings or get_settings()
    with context.activate():
        context.require("can_create_inventory", "create inventory items")
        data = parse_payload(InventoryItemCreate, payload)
        _ensure_unique_sku(db, data.sku)
        _check_margin(data.base_price, data.selling_price, settings, sku=data.sku)

        now = now or utcnow()
        item = InventoryItem(
            **data.model_dump(),
            last_movement_date=now,
            created_at=now,
            updated_at=now,
            created_by=context.user_id,
        )
        db.add(item)
        db.commit()
        db.refresh(item)
        logger.info("inventory.created", extra={"extra_data": {"item_id": item.id, "sku": item.sku}})
        return item


def update_item(
    db: Session,
    context: SessionContext,
    item_id: int,
    payload: InventoryItemUpdate | dict,
    *,
    settings: AppSettings | None = None,
    now: datetime | None = None,
) -> InventoryItem:
    """Apply a partial update.

    A base price that differs from the stored one is rejected outright for
    roles without ``can_edit_base_price``; the stored value is left as-is.
    """

    settings = settings or get_settings()
    with context.activate():
        context.require("can_edit_inventory", "edit inventory items")
        data = parse_payload(InventoryItemUpdate, payload).model_dump(exclude_unset=True)
        for key in _REQUIRED_FIELDS:
            if key in data and data[key] is None:
                data.pop(key)

        item = get_item(db, item_id)
        if "base_price" in data and data["base_price"] != item.base_price:
            context.require("can_edit_base_price", "change the base price")
        if "selling_price" in data and data["selling_price"] != item.selling_price:
            context.require("can_edit_selling_price", "change the selling price")
        if "sku" in data and data["sku"] != item.sku:
            _ensure_unique_sku(db, data["sku"], exclude_id=item.id)

        _check_margin(
            data.get("base_price", item.base_price),
            data.get("selling_price", item.selling_price),
            settings,
            item_id=item.id,
        )

        now = now or utcnow()
        if "quantity" in data and data["quantity"] != item.quantity:
            item.last_movement_date = now
        for key, value in data.items():
            setattr(item, key, value)
        item.updated_at = now
        db.commit()
        db.refresh(item)
        logger.info("inventory.updated", extra={"extra_data": {"item_id": item.id, "fields": sorted(data)}})
        return item


def delete_item(db: Session, context: SessionContext, item_id: int) -> None:
    with context.activate():
        context.require("can_delete_inventory", "delete inventory items")
        item = get_item(db, item_id)
        db.delete(item)
        db.commit()
        logger.info("inventory.deleted", extra={"extra_data": {"item_id": item_id}})


def adjust_quantity(
    db: Session,
    item_id: int,
    delta: int,
    *,
    now: datetime | None = None,
    commit: bool = True,
) -> InventoryItem:
    """Add ``delta`` to the on-hand quantity and stamp the movement time.

    Negative results are allowed; stock can be recorded out before the
    matching purchase is entered.
    """

    item = get_item(db, item_id)
    item.quantity = (item.quantity or 0) + delta
    item.last_movement_date = now or utcnow()
    if commit:
        db.commit()
        db.refresh(item)
    return item


def _cut_sku(source_sku: str, new_length: str) -> str:
    suffix = new_length.replace("-hole", "H")
    prefix, sep, _ = source_sku.rpartition("-")
    return f"{prefix}-{suffix}" if sep else f"{source_sku}-{suffix}"


def cut_plate(
    db: Session,
    context: SessionContext,
    source_item_id: int,
    new_length: str,
    *,
    settings: AppSettings | None = None,
    now: datetime | None = None,
) -> PlateCuttingResult:
    """Cut one plate from ``source_item_id`` down to ``new_length``.

    The cut piece is merged into an existing variant with the same
    (category, material, diameter, new length) or becomes a new item priced
    proportionally to its hole count.
    """

    settings = settings or get_settings()
    with context.activate():
        context.require("can_perform_plate_cutting", "cut plates")
        request = parse_payload(PlateCutRequest, {"source_item_id": source_item_id, "new_length": new_length})
        source = get_item(db, request.source_item_id)
        if source.category != CATEGORY_PLATES:
            raise ValidationFailed("only plates can be cut", details={"field": "category"})
        if source.quantity <= 0:
            raise ValidationFailed("no stock left to cut", details={"field": "quantity"})
        if request.new_length not in PLATE_LENGTH_OPTIONS:
            raise ValidationFailed(f"unknown plate length {request.new_length}", details={"field": "new_length"})
        source_holes = parse_hole_count(source.length)
        new_holes = parse_hole_count(request.new_length)
        if source_holes is None or new_holes >= source_holes:
            raise ValidationFailed(
                f"{request.new_length} is not shorter than {source.length}",
                details={"field": "new_length"},
            )

        now = now or utcnow()
        cost = calculate_plate_cutting_cost(source.length, request.new_length, source.base_price)
        target = find_variant(db, source.variant_key.with_length(request.new_length))
        merged = target is not None
        sku = None if merged else _cut_sku(source.sku, request.new_length)
        if sku is not None and get_item_by_sku(db, sku) is not None:
            raise ValidationFailed(f"sku {sku} is already in use", details={"field": "sku"})

        adjust_quantity(db, source.id, -1, now=now, commit=False)
        if merged:
            adjust_quantity(db, target.id, 1, now=now, commit=False)
        else:
            target = InventoryItem(
                sku=sku,
                name=source.name,
                category=source.category,
                material=source.material,
                diameter=source.diameter,
                length=request.new_length,
                quantity=1,
                min_stock=source.min_stock,
                base_price=cost,
                selling_price=markup_price(cost, settings.PLATE_MARKUP),
                last_movement_date=now,
                created_at=now,
                updated_at=now,
                created_by=context.user_id,
            )
            db.add(target)

        db.commit()
        db.refresh(source)
        db.refresh(target)
        logger.info(
            "plate.cut",
            extra={
                "extra_data": {
                    "source_id": source.id,
                    "target_id": target.id,
                    "new_length": request.new_length,
                    "merged": merged,
                    "cost": cost,
                }
            },
        )
        return PlateCuttingResult(source=source, target=target, merged=merged, cost=cost)


__all__ = [
    "PlateCuttingResult",
    "adjust_quantity",
    "create_item",
    "cut_plate",
    "delete_item",
    "find_variant",
    "get_item",
    "get_item_by_sku",
    "list_items",
    "update_item",
]
