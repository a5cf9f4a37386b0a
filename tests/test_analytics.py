import json
import logging
import sys
from datetime import datetime
from decimal import Decimal
from io import StringIO
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from surgistock.db.session import Base
from surgistock.core.context import SessionContext
from surgistock.core.errors import PermissionDenied, ValidationFailed
from surgistock.core.logging import JsonLogFormatter
from surgistock.crud.inventory import create_item
from surgistock.crud.reference import create_doctor
from surgistock.crud.transactions import create_transaction
from surgistock.services.analytics import (
    analytics_summary,
    dashboard_stats,
    dead_stock_report,
    inventory_by_category,
    surgeon_portfolio,
    surgery_profitability,
    top_items_by_value,
)

# Ensure models are registered so metadata tables are created
from surgistock.models import inventory as inventory_model  # noqa: F401
from surgistock.models import reference as reference_model  # noqa: F401
from surgistock.models import transaction as transaction_model  # noqa: F401

NOW = datetime(2024, 6, 15, 12, 0, 0)

CLERK = SessionContext(user_id="clerk", role="data_entry")
SUPERVISOR = SessionContext(user_id="sup", role="supervisor")
STAKEHOLDER = SessionContext(user_id="partner", role="stakeholder")


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


def _item(db, sku, *, created, category="screws", quantity=10, min_stock=2, base_price=40, selling_price=60):
    return create_item(
        db,
        CLERK,
        {
            "sku": sku,
            "name": f"Item {sku}",
            "category": category,
            "quantity": quantity,
            "min_stock": min_stock,
            "base_price": base_price,
            "selling_price": selling_price,
        },
        now=created,
    )


@pytest.fixture()
def clinic(db_session):
    screw = _item(db_session, "SC-1", created=NOW)
    plate = _item(db_session, "PL-1", created=NOW, category="plates", base_price=100, selling_price=150)
    hany = create_doctor(db_session, CLERK, {"name": "Dr. Hany", "specialty": "Orthopedics"})
    mona = create_doctor(db_session, CLERK, {"name": "Dr. Mona", "specialty": "Spine"})

    def surgery(doctor, item, quantity, ref, selling_price=None):
        payload = {
            "type": "surgery",
            "item_id": item.id,
            "quantity": quantity,
            "doctor_id": doctor.id,
            "patient_name": f"Patient {ref}",
            "surgery_ref": ref,
        }
        if selling_price is not None:
            payload["selling_price"] = selling_price
        return create_transaction(db_session, CLERK, payload, now=NOW)

    # OP-1: Hany, 2 screws (80 -> 120) + 1 plate (100 -> 150)
    surgery(hany, screw, 2, "OP-1")
    surgery(hany, plate, 1, "OP-1")
    # OP-2: Hany, 1 screw at cost (40 -> 40)
    surgery(hany, screw, 1, "OP-2", selling_price=40)
    # OP-3: Mona, 1 plate (100 -> 200)
    surgery(mona, plate, 1, "OP-3", selling_price=200)
    return {"screw": screw, "plate": plate, "hany": hany, "mona": mona}


def test_surgeon_portfolio_groups_by_doctor(db_session, clinic):
    rows = surgeon_portfolio(db_session, STAKEHOLDER)

    assert [row.doctor_name for row in rows] == ["Dr. Mona", "Dr. Hany"]
    hany = next(row for row in rows if row.doctor_id == clinic["hany"].id)
    assert hany.surgery_count == 2
    assert hany.specialty == "Orthopedics"
    assert hany.total_base_value == Decimal("220.00")
    assert hany.total_selling_value == Decimal("310.00")
    assert hany.profit == Decimal("90.00")

    mona = next(row for row in rows if row.doctor_id == clinic["mona"].id)
    assert mona.surgery_count == 1
    assert mona.profit == Decimal("100.00")
    assert rows[0].doctor_id == clinic["mona"].id


def test_surgery_profitability_per_operation(db_session, clinic):
    rows = surgery_profitability(db_session, SUPERVISOR)

    assert [row.surgery_ref for row in rows] == ["OP-3", "OP-1", "OP-2"]
    op1 = rows[1]
    assert op1.item_count == 3
    assert op1.total_base_value == Decimal("180.00")
    assert op1.profit == Decimal("90.00")
    assert op1.profit_margin == "50.0"
    assert rows[2].profit == Decimal("0.00")
    assert rows[2].profit_margin == "0.0"


def test_profit_margin_with_zero_base_value(db_session):
    freebie = _item(db_session, "GZ-1", created=NOW, category="consumables", base_price=0, selling_price=5)
    doctor = create_doctor(db_session, CLERK, {"name": "Dr. Adel"})
    create_transaction(
        db_session,
        CLERK,
        {"type": "surgery", "item_id": freebie.id, "quantity": 1, "doctor_id": doctor.id, "patient_name": "X"},
        now=NOW,
    )

    rows = surgery_profitability(db_session, SUPERVISOR)

    assert len(rows) == 1
    assert rows[0].surgery_ref.startswith("TX-")
    assert rows[0].profit_margin == "0"


def test_dead_stock_report_sorted_by_age(db_session):
    _item(db_session, "OLD-1", created=datetime(2023, 1, 10))
    _item(db_session, "OLD-2", created=datetime(2023, 10, 1), quantity=3, base_price=25.5, selling_price=30)
    _item(db_session, "NEW-1", created=datetime(2024, 5, 1))

    report = dead_stock_report(db_session, SUPERVISOR, threshold_months=6, now=NOW)

    assert report.count == 2
    assert [row.sku for row in report.items] == ["OLD-1", "OLD-2"]
    assert report.items[0].days_since_movement > report.items[1].days_since_movement
    assert report.items[1].total_value == Decimal("76.50")
    assert report.total_value == Decimal("476.50")

    stricter = dead_stock_report(db_session, SUPERVISOR, threshold_months=12, now=NOW)
    assert [row.sku for row in stricter.items] == ["OLD-1"]


def test_dead_stock_threshold_must_be_supported(db_session):
    with pytest.raises(ValidationFailed):
        dead_stock_report(db_session, SUPERVISOR, threshold_months=4, now=NOW)


def test_analytics_require_permission(db_session, clinic):
    with pytest.raises(PermissionDenied):
        surgeon_portfolio(db_session, CLERK)
    with pytest.raises(PermissionDenied):
        dead_stock_report(db_session, CLERK)
    with pytest.raises(PermissionDenied):
        inventory_by_category(db_session, CLERK)


def test_analytics_summary(db_session, clinic):
    summary = analytics_summary(db_session, STAKEHOLDER, now=NOW)

    assert summary.total_profit == Decimal("190.00")
    assert summary.avg_profit_per_surgery == Decimal("63.33")
    assert summary.dead_stock_count == 0
    assert summary.top_doctor_name == "Dr. Mona"
    assert summary.top_doctor_profit == Decimal("100.00")


def test_dashboard_hides_money_from_data_entry(db_session, clinic):
    create_transaction(
        db_session, CLERK, {"type": "purchase", "item_id": clinic["screw"].id, "quantity": 4, "unit_cost": 35}, now=NOW
    )

    basic = dashboard_stats(db_session, CLERK, now=NOW)
    assert basic.total_skus == 2
    assert basic.total_inventory_value is None
    assert basic.total_profit is None
    assert len(basic.recent_purchase_ids) == 1

    full = dashboard_stats(db_session, STAKEHOLDER, now=NOW)
    # screws: 10 - 3 + 4 = 11 at 40; plates: 10 - 2 = 8 at 100
    assert full.total_inventory_value == Decimal("1240.00")
    assert full.total_purchases == Decimal("140.00")
    assert full.total_sales == Decimal("510.00")
    assert full.total_profit == Decimal("190.00")


def test_dashboard_counts_low_stock(db_session):
    _item(db_session, "LOW-1", created=NOW, quantity=2, min_stock=2)
    _item(db_session, "OK-1", created=NOW, quantity=9, min_stock=2)

    stats = dashboard_stats(db_session, CLERK, now=NOW)

    assert stats.low_stock_count == 1
    assert len(stats.low_stock_item_ids) == 1


def test_category_breakdown_and_top_items(db_session, clinic):
    rows = {row.category: row for row in inventory_by_category(db_session, SUPERVISOR)}

    assert rows["plates"].count == 1
    assert rows["plates"].quantity == 8
    assert rows["plates"].value == Decimal("800.00")
    assert rows["screws"].value == Decimal("280.00")

    top = top_items_by_value(db_session, SUPERVISOR, limit=1)
    assert [item.sku for item in top] == ["PL-1"]


def test_profit_margin_rounds_half_up(db_session):
    doctor = create_doctor(db_session, CLERK, {"name": "Dr. Samir"})
    wire = _item(db_session, "KW-1", created=NOW, category="wires", base_price=40, selling_price=40.5)
    pin = _item(db_session, "KW-2", created=NOW, category="wires", base_price=8, selling_price=8.1)
    for item, ref in ((wire, "OP-A"), (pin, "OP-B")):
        create_transaction(
            db_session,
            CLERK,
            {"type": "surgery", "item_id": item.id, "quantity": 1, "doctor_id": doctor.id,
             "patient_name": "Y", "surgery_ref": ref},
            now=NOW,
        )

    rows = surgery_profitability(db_session, SUPERVISOR)

    assert [(row.surgery_ref, row.profit) for row in rows] == [("OP-A", Decimal("0.50")), ("OP-B", Decimal("0.10"))]
    # 1.25% both times
    assert [row.profit_margin for row in rows] == ["1.3", "1.3"]


def test_unreferenced_surgery_does_not_merge_with_matching_ref(db_session):
    doctor = create_doctor(db_session, CLERK, {"name": "Dr. Rania"})
    screw = _item(db_session, "SC-9", created=NOW)
    lone = create_transaction(
        db_session,
        CLERK,
        {"type": "surgery", "item_id": screw.id, "quantity": 1, "doctor_id": doctor.id, "patient_name": "A"},
        now=NOW,
    )
    create_transaction(
        db_session,
        CLERK,
        {"type": "surgery", "item_id": screw.id, "quantity": 1, "doctor_id": doctor.id,
         "patient_name": "B", "surgery_ref": f"TX-{lone.id}"},
        now=NOW,
    )

    rows = surgery_profitability(db_session, SUPERVISOR)
    assert len(rows) == 2
    assert {row.patient_name for row in rows} == {"A", "B"}
    assert surgeon_portfolio(db_session, SUPERVISOR)[0].surgery_count == 2


def test_analytics_denials_are_logged_with_actor(db_session):
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonLogFormatter())
    context_logger = logging.getLogger("surgistock.core.context")
    context_logger.addHandler(handler)
    try:
        with pytest.raises(PermissionDenied):
            surgery_profitability(db_session, CLERK)
    finally:
        context_logger.removeHandler(handler)

    payload = json.loads(stream.getvalue().splitlines()[-1])
    assert payload["message"] == "permission.denied"
    assert payload["actor"] == "clerk:data_entry"
    assert payload["permission"] == "can_view_analytics"
