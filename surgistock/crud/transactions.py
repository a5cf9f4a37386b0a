"""Transaction lifecycle: create, lock, edit and delete movement records.

Records are locked the moment they are saved. Only roles holding
``can_edit_after_submit`` may change a locked record afterwards.

Known gaps kept on purpose: editing a record's quantity does not re-adjust the
item's on-hand quantity, and deleting a record does not reverse the movement
it applied. Both are logged so the drift can be reconciled by hand.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session

from ..core.catalog import (
    MARGIN_CHECKED_TYPES,
    TX_PURCHASE,
    TX_SURGERY,
    TX_USAGE,
    is_stock_in,
    movement_sign,
)
from ..core.config import AppSettings, get_settings
from ..core.context import SessionContext
from ..core.errors import NotFound, ValidationFailed, parse_payload
from ..core.pricing import round_money, utcnow, validate_margin
from ..models.transaction import Transaction
from ..schemas.transaction import TransactionCreate, TransactionUpdate, misplaced_fields
from .inventory import adjust_quantity, get_item
from .reference import get_doctor, get_supplier

logger = logging.getLogger(__name__)


def list_transactions(
    db: Session,
    *,
    type: str | None = None,
    types: set[str] | None = None,
    search: str | None = None,
    item_id: int | None = None,
    doctor_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[Transaction]:
    """Fetch movement records, newest first."""

    stmt = select(Transaction)
    if type:
        stmt = stmt.where(Transaction.type == type)
    if types:
        stmt = stmt.where(Transaction.type.in_(sorted(types)))
    if item_id is not None:
        stmt = stmt.where(Transaction.item_id == item_id)
    if doctor_id is not None:
        stmt = stmt.where(Transaction.doctor_id == doctor_id)
    term = (search or "").strip()
    if term:
        like = f"%{term}%"
        stmt = stmt.where(
            or_(
                Transaction.item_name.like(like),
                Transaction.supplier_name.like(like),
                Transaction.doctor_name.like(like),
                Transaction.patient_name.like(like),
            )
        )
    stmt = stmt.order_by(desc(Transaction.date), desc(Transaction.created_at), desc(Transaction.id)).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.execute(stmt).scalars().all()


def get_transaction(db: Session, transaction_id: int) -> Transaction:
    record = db.get(Transaction, transaction_id)
    if record is None:
        raise NotFound("transaction", transaction_id)
    return record


def _margin_applies(tx_type: str, settings: AppSettings) -> bool:
    if tx_type in MARGIN_CHECKED_TYPES:
        return True
    return tx_type == TX_USAGE and not settings.USAGE_BYPASSES_MARGIN


def _check_sale_margin(record: Transaction, settings: AppSettings) -> None:
    if not _margin_applies(record.type, settings):
        return
    result = validate_margin(record.base_price or 0, record.selling_price or 0)
    if result.is_valid:
        return
    if settings.MARGIN_WARNING_ENABLED:
        logger.warning(
            "margin.rejected",
            extra={
                "extra_data": {
                    "item_id": record.item_id,
                    "type": record.type,
                    "base_price": record.base_price,
                    "selling_price": record.selling_price,
                }
            },
        )
    raise ValidationFailed(
        result.message,
        details={"field": "selling_price", "margin_percentage": result.margin_percentage},
    )


def _compute_totals(record: Transaction) -> None:
    if is_stock_in(record.type):
        record.total_cost = round_money(record.quantity * (record.unit_cost or 0))
        return
    record.total_base_value = round_money(record.quantity * (record.base_price or 0))
    record.total_selling_value = round_money(record.quantity * (record.selling_price or 0))


def _require_create_flag(context: SessionContext, tx_type: str) -> None:
    if is_stock_in(tx_type):
        context.require("can_create_stock_in", "record stock-in")
    else:
        context.require("can_create_stock_out", "record stock-out")


def create_transaction(
    db: Session,
    context: SessionContext,
    payload: TransactionCreate | dict,
    *,
    settings: AppSettings | None = None,
    now: datetime | None = None,
) -> Transaction:
    """Record a movement, lock it and apply it to the item's quantity."""

    settings = settings or get_settings()
    with context.activate():
        data = parse_payload(TransactionCreate, payload)
        _require_create_flag(context, data.type)

        item = get_item(db, data.item_id)
        now = now or utcnow()
        record = Transaction(
            type=data.type,
            item_id=item.id,
            item_name=item.display_name,
            item_sku=item.sku,
            quantity=data.quantity,
            date=data.date or now.date(),
            notes=data.notes,
            created_by=context.user_id,
            created_at=now,
            is_locked=True,
        )

        if data.type == TX_PURCHASE:
            record.unit_cost = data.unit_cost if data.unit_cost is not None else item.base_price
            if data.supplier_id is not None:
                supplier = get_supplier(db, data.supplier_id)
                record.supplier_id = supplier.id
                record.supplier_name = supplier.name
        else:
            # The base price is always the item's own; callers only negotiate
            # the selling price.
            record.base_price = item.base_price
            record.selling_price = data.selling_price if data.selling_price is not None else item.selling_price
            record.patient_name = data.patient_name
            record.surgery_ref = data.surgery_ref
            if data.doctor_id is not None:
                doctor = get_doctor(db, data.doctor_id)
                record.doctor_id = doctor.id
                record.doctor_name = doctor.name

        _compute_totals(record)
        _check_sale_margin(record, settings)

        adjust_quantity(db, item.id, movement_sign(data.type) * data.quantity, now=now, commit=False)
        db.add(record)
        db.commit()
        db.refresh(record)
        logger.info(
            "transaction.created",
            extra={
                "extra_data": {
                    "transaction_id": record.id,
                    "type": record.type,
                    "item_id": record.item_id,
                    "quantity": record.quantity,
                }
            },
        )
        return record


def update_transaction(
    db: Session,
    context: SessionContext,
    transaction_id: int,
    payload: TransactionUpdate | dict,
    *,
    settings: AppSettings | None = None,
    now: datetime | None = None,
) -> Transaction:
    """Edit a saved record and recompute its totals.

    The item's on-hand quantity is not touched, even when ``quantity``
    changes.
    """

    settings = settings or get_settings()
    with context.activate():
        record = get_transaction(db, transaction_id)
        if record.is_locked:
            context.require("can_edit_after_submit", "edit a submitted record")
        data = parse_payload(TransactionUpdate, payload).model_dump(exclude_unset=True)

        new_type = data.pop("type", None) or record.type
        if is_stock_in(new_type) != record.is_stock_in:
            raise ValidationFailed("a record cannot switch between stock-in and stock-out", details={"field": "type"})
        misplaced = misplaced_fields(new_type, data)
        if misplaced:
            raise ValidationFailed(
                f"{new_type} records do not take {', '.join(misplaced)}", details={"fields": misplaced}
            )

        # Resolve references before touching the record.
        supplier = doctor = None
        if data.get("supplier_id") is not None:
            supplier = get_supplier(db, data["supplier_id"])
        if data.get("doctor_id") is not None:
            doctor = get_doctor(db, data["doctor_id"])

        old_quantity = record.quantity
        try:
            if "supplier_id" in data:
                record.supplier_id = supplier.id if supplier else None
                record.supplier_name = supplier.name if supplier else None
            if "doctor_id" in data:
                record.doctor_id = doctor.id if doctor else None
                record.doctor_name = doctor.name if doctor else None
            for key in ("quantity", "unit_cost", "selling_price", "date"):
                if data.get(key) is not None:
                    setattr(record, key, data[key])
            for key in ("notes", "patient_name", "surgery_ref"):
                if key in data:
                    setattr(record, key, data[key])
            record.type = new_type

            if record.type == TX_SURGERY and (not record.doctor_id or not record.patient_name):
                raise ValidationFailed("surgery records need a doctor and a patient name", details={"field": "type"})
            _compute_totals(record)
            _check_sale_margin(record, settings)
        except ValidationFailed:
            db.rollback()
            raise

        record.updated_at = now or utcnow()
        db.commit()
        db.refresh(record)
        if record.quantity != old_quantity:
            logger.warning(
                "transaction.quantity_changed_without_ledger_adjustment",
                extra={
                    "extra_data": {
                        "transaction_id": record.id,
                        "item_id": record.item_id,
                        "old_quantity": old_quantity,
                        "new_quantity": record.quantity,
                    }
                },
            )
        logger.info("transaction.updated", extra={"extra_data": {"transaction_id": record.id}})
        return record


def delete_transaction(db: Session, context: SessionContext, transaction_id: int) -> None:
    """Remove a record; the quantity change it applied stays in place."""

    with context.activate():
        context.require("can_delete_records", "delete records")
        record = get_transaction(db, transaction_id)
        item_id, quantity = record.item_id, record.quantity
        db.delete(record)
        db.commit()
        logger.info(
            "transaction.deleted",
            extra={
                "extra_data": {
                    "transaction_id": transaction_id,
                    "item_id": item_id,
                    "quantity": quantity,
                    "ledger_reversed": False,
                }
            },
        )
