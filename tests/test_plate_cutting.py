import sys
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from surgistock.db.session import Base
from surgistock.core.config import AppSettings
from surgistock.core.context import SessionContext
from surgistock.core.errors import PermissionDenied, ValidationFailed
from surgistock.crud.inventory import create_item, cut_plate, get_item, list_items

from surgistock.models import inventory as inventory_model  # noqa: F401

NOW = datetime(2024, 6, 15, 12, 0, 0)
CUT_AT = datetime(2024, 6, 20, 8, 30, 0)

CLERK = SessionContext(user_id="clerk", role="data_entry")
SUPERVISOR = SessionContext(user_id="sup", role="supervisor")


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _plate(db, sku="PL-TI-35-8H", length="8-hole", quantity=3, base_price=100, **overrides):
    payload = {
        "sku": sku,
        "name": "Locking compression plate",
        "category": "plates",
        "material": "titanium",
        "diameter": "3.5mm",
        "length": length,
        "quantity": quantity,
        "min_stock": 1,
        "base_price": base_price,
        "selling_price": base_price * 1.4,
    }
    payload.update(overrides)
    return create_item(db, CLERK, payload, now=NOW)


def test_cut_creates_new_variant(db_session):
    source = _plate(db_session)

    result = cut_plate(db_session, SUPERVISOR, source.id, "4-hole", now=CUT_AT)

    assert result.merged is False
    assert result.cost == pytest.approx(50.00)
    assert result.source.quantity == 2
    assert result.source.last_movement_date == CUT_AT

    target = result.target
    assert target.id != source.id
    assert target.quantity == 1
    assert target.length == "4-hole"
    assert target.sku == "PL-TI-35-4H"
    assert target.base_price == pytest.approx(50.00)
    assert target.selling_price == pytest.approx(68)
    assert target.material == "titanium"
    assert target.diameter == "3.5mm"
    assert target.created_by == "sup"
    assert len(list_items(db_session)) == 2


def test_cut_merges_into_existing_variant(db_session):
    source = _plate(db_session)
    existing = _plate(db_session, sku="PL-TI-35-6H", length="6-hole", quantity=4, base_price=75)

    result = cut_plate(db_session, SUPERVISOR, source.id, "6-hole", now=CUT_AT)

    assert result.merged is True
    assert result.target.id == existing.id
    assert result.target.quantity == 5
    assert result.target.base_price == pytest.approx(75)
    assert result.target.last_movement_date == CUT_AT
    assert get_item(db_session, source.id).quantity == 2
    assert len(list_items(db_session)) == 2


def test_cut_does_not_merge_across_materials(db_session):
    source = _plate(db_session)
    _plate(db_session, sku="PL-SS-35-4H", length="4-hole", material="stainless")

    result = cut_plate(db_session, SUPERVISOR, source.id, "4-hole", now=CUT_AT)

    assert result.merged is False
    assert result.target.material == "titanium"


def test_cut_uses_configured_markup(db_session):
    source = _plate(db_session)

    result = cut_plate(db_session, SUPERVISOR, source.id, "4-hole", settings=AppSettings(PLATE_MARKUP=1.5), now=CUT_AT)

    assert result.target.selling_price == pytest.approx(75)


def test_cut_requires_permission(db_session):
    source = _plate(db_session)

    with pytest.raises(PermissionDenied):
        cut_plate(db_session, CLERK, source.id, "4-hole")
    assert get_item(db_session, source.id).quantity == 3


def test_cut_rejects_non_plates_and_empty_stock(db_session):
    screw = create_item(
        db_session,
        CLERK,
        {"sku": "SC-1", "name": "Screw", "category": "screws", "length": "30mm", "quantity": 5},
        now=NOW,
    )
    empty = _plate(db_session, sku="PL-EMPTY-8H", quantity=0)

    with pytest.raises(ValidationFailed):
        cut_plate(db_session, SUPERVISOR, screw.id, "4-hole")
    with pytest.raises(ValidationFailed):
        cut_plate(db_session, SUPERVISOR, empty.id, "4-hole")


def test_cut_rejects_lengths_that_do_not_shorten(db_session):
    source = _plate(db_session)

    for length in ("8-hole", "10-hole", "5-hole"):
        with pytest.raises(ValidationFailed):
            cut_plate(db_session, SUPERVISOR, source.id, length)
    assert get_item(db_session, source.id).quantity == 3


def test_cut_sku_without_separator_gets_suffix(db_session):
    source = _plate(db_session, sku="LCP8")

    result = cut_plate(db_session, SUPERVISOR, source.id, "6-hole", now=CUT_AT)

    assert result.target.sku == "LCP8-6H"
