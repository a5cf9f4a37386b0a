"""Suppliers and doctors: reference rows joined into transactions by id."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.context import SessionContext
from ..core.errors import NotFound, parse_payload
from ..core.pricing import utcnow
from ..models.reference import Doctor, Supplier
from ..schemas.reference import DoctorCreate, SupplierCreate

logger = logging.getLogger(__name__)


def list_suppliers(db: Session) -> list[Supplier]:
    return db.execute(select(Supplier).order_by(Supplier.name)).scalars().all()


def get_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound("supplier", supplier_id)
    return supplier


def create_supplier(
    db: Session, context: SessionContext, payload: SupplierCreate | dict, *, now: datetime | None = None
) -> Supplier:
    # Whoever records purchases may register the supplier they buy from.
    with context.activate():
        context.require("can_create_stock_in", "register suppliers")
        data = parse_payload(SupplierCreate, payload)
        supplier = Supplier(**data.model_dump(), created_at=now or utcnow())
        db.add(supplier)
        db.commit()
        db.refresh(supplier)
        logger.info("supplier.created", extra={"extra_data": {"supplier_id": supplier.id}})
        return supplier


def list_doctors(db: Session) -> list[Doctor]:
    return db.execute(select(Doctor).order_by(Doctor.name)).scalars().all()


def get_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.get(Doctor, doctor_id)
    if doctor is None:
        raise NotFound("doctor", doctor_id)
    return doctor


def create_doctor(
    db: Session, context: SessionContext, payload: DoctorCreate | dict, *, now: datetime | None = None
) -> Doctor:
    with context.activate():
        context.require("can_create_stock_out", "register doctors")
        data = parse_payload(DoctorCreate, payload)
        doctor = Doctor(**data.model_dump(), created_at=now or utcnow())
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        logger.info("doctor.created", extra={"extra_data": {"doctor_id": doctor.id}})
        return doctor
