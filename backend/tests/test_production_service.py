"""
Production workflow tests.

Creation consumes stock oldest lot first and commits everything or nothing;
cancel and delete return stock to the ledger while every unit is in stock.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from workshop.extensions import db
from workshop.models import (
    BatchSequence,
    FinishedProduct,
    MaterialWriteOff,
    OperationHistory,
    Production,
    OP_PRODUCTION_CREATE,
    OP_PRODUCTION_CANCEL,
    OP_PRODUCTION_DELETE,
)
from workshop.services import production_service, finished_product_service, product_service
from workshop.services.availability_service import check_availability
from workshop.services.fifo_allocator import InsufficientStockError
from workshop.services.production_service import (
    MaterialShortageError,
    ProductionStateError,
    create_production,
    cancel_production,
    delete_production,
    get_production,
)
from workshop.services.stock_ledger import get_balance
from workshop.validation import ValidationError, NotFoundError

NOW = datetime(2026, 3, 15, 10, 30)


@pytest.fixture
def steel_shelf(org_a, make_material, make_receipt, make_product):
    """Steel: 100 kg @ 5.00 (older) + 50 kg @ 6.00; Shelf uses 30 kg per unit."""
    steel = make_material(org_a, "Steel")
    make_receipt(org_a, steel, 100, "5.00", day=1)
    make_receipt(org_a, steel, 50, "6.00", day=5)
    shelf = make_product(org_a, "Shelf", recipe=[(steel, 30)])
    product_service.recalculate_product_cost(org_id=org_a.id, product_id=shelf)
    return steel, shelf


def test_availability_reports_each_material(org_a, steel_shelf):
    steel, shelf = steel_shelf

    ok = check_availability(org_a.id, shelf, 5)
    short = check_availability(org_a.id, shelf, 6)

    assert ok.can_produce is True
    assert ok.materials[0].required == Decimal("150.0000")
    assert short.can_produce is False
    assert short.materials[0].shortage == Decimal("30.0000")
    assert short.warnings and "Steel" in short.warnings[0]


def test_production_consumes_oldest_lots_first(org_a, owner_a, steel_shelf):
    steel, shelf = steel_shelf

    production = create_production(
        org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=4, now=NOW
    )
    data = get_production(org_a.id, production.id)

    consumption = data["material_write_offs"]
    assert len(consumption) == 1
    assert consumption[0]["quantity"] == "120.0000"
    assert consumption[0]["unit_price"] == "5.17"
    assert consumption[0]["total_price"] == "620.00"
    assert [lot["quantity"] for lot in consumption[0]["lots"]] == ["100.0000", "20.0000"]
    assert data["material_cost"] == "620.00"
    assert data["in_stock_count"] == 4

    balance = get_balance(org_a.id, steel)
    assert balance.current_stock == Decimal("30.0000")
    assert balance.total_value == Decimal("180.00")
    assert balance.average_price == Decimal("6.00")


def test_production_snapshots_cached_product_cost(org_a, owner_a, steel_shelf):
    steel, shelf = steel_shelf
    product = product_service.get_product(org_a.id, shelf)

    production = create_production(
        org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=2, now=NOW
    )

    # 30 kg at the 5.33 average price; 100% markup
    assert product["estimated_cost"] == "159.90"
    assert production.cost_per_unit == Decimal("159.90")
    assert production.total_cost == Decimal("319.80")
    assert production.recommended_price_per_unit == Decimal("319.80")
    units = db.session.query(FinishedProduct).filter_by(production_id=production.id).all()
    assert len(units) == 2
    assert all(u.cost_per_unit == Decimal("159.90") for u in units)


def test_batch_numbers_and_qr_payload(org_a, owner_a, steel_shelf):
    _, shelf = steel_shelf

    first = create_production(org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=1, now=NOW)
    second = create_production(org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=2, now=NOW)

    assert first.batch_number == "P20260315-001"
    assert second.batch_number == "P20260315-002"
    assert second.qr_code == f"PROD|P20260315-002|{shelf}|2|20260315"


def test_batch_numbers_restart_per_day_and_organization(org_a, org_b, owner_a, steel_shelf,
                                                        make_material, make_receipt, make_product):
    _, shelf = steel_shelf
    wood = make_material(org_b, "Oak", unit="m")
    make_receipt(org_b, wood, 10, "2.00")
    table = make_product(org_b, "Table", recipe=[(wood, 1)])

    a1 = create_production(org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=1, now=NOW)
    a2 = create_production(
        org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=1, now=datetime(2026, 3, 16, 8, 0)
    )
    b1 = create_production(org_id=org_b.id, user_id=None, product_id=table, quantity=1, now=NOW)

    assert a1.batch_number == "P20260315-001"
    assert a2.batch_number == "P20260316-001"
    assert b1.batch_number == "P20260315-001"


def test_shortage_persists_nothing(org_a, owner_a, steel_shelf):
    steel, shelf = steel_shelf

    with pytest.raises(MaterialShortageError) as exc_info:
        create_production(org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=6, now=NOW)

    assert exc_info.value.availability.can_produce is False
    assert db.session.query(Production).count() == 0
    assert db.session.query(MaterialWriteOff).count() == 0
    assert db.session.query(FinishedProduct).count() == 0
    assert db.session.query(BatchSequence).count() == 0
    assert db.session.query(OperationHistory).filter_by(operation_type=OP_PRODUCTION_CREATE).count() == 0
    assert get_balance(org_a.id, steel).current_stock == Decimal("150.0000")


def test_late_shortage_on_second_material_rolls_back_the_first(org_a, owner_a, monkeypatch,
                                                               make_material, make_receipt, make_product):
    steel = make_material(org_a, "Steel")
    make_receipt(org_a, steel, 100, "5.00")
    bolts = make_material(org_a, "Bolt M8", unit="pcs")
    make_receipt(org_a, bolts, 1, "0.10")
    rack = make_product(org_a, "Rack", recipe=[(steel, 10), (bolts, 1)])
    # Availability read before a competing run took the bolts
    monkeypatch.setattr(
        production_service, "check_availability",
        lambda org_id, product_id, quantity: check_availability(org_id, product_id, 1),
    )

    with pytest.raises(InsufficientStockError) as exc_info:
        create_production(org_id=org_a.id, user_id=owner_a.id, product_id=rack, quantity=5, now=NOW)

    assert exc_info.value.material_id == bolts
    assert exc_info.value.shortage == Decimal("4.0000")
    assert db.session.query(MaterialWriteOff).count() == 0
    assert db.session.query(Production).count() == 0
    assert db.session.query(FinishedProduct).count() == 0
    assert db.session.query(BatchSequence).count() == 0
    assert get_balance(org_a.id, steel).current_stock == Decimal("100.0000")
    assert get_balance(org_a.id, steel).total_value == Decimal("500.00")


    assert get_balance(org_a.id, steel).current_stock == Decimal("150.0000")


@pytest.mark.parametrize("quantity", [0, -1, 10_001])
def test_quantity_bounds(org_a, steel_shelf, quantity):
    _, shelf = steel_shelf

    with pytest.raises(ValidationError):
        create_production(org_id=org_a.id, user_id=None, product_id=shelf, quantity=quantity, now=NOW)


def test_foreign_product_is_not_found(org_b, steel_shelf):
    _, shelf = steel_shelf

    with pytest.raises(NotFoundError):
        create_production(org_id=org_b.id, user_id=None, product_id=shelf, quantity=1, now=NOW)


def test_cancel_returns_stock_and_keeps_row(org_a, owner_a, steel_shelf):
    steel, shelf = steel_shelf
    production = create_production(
        org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=4, now=NOW
    )

    cancel_production(org_id=org_a.id, user_id=owner_a.id, production_id=production.id)

    balance = get_balance(org_a.id, steel)
    assert balance.current_stock == Decimal("150.0000")
    assert balance.average_price == Decimal("5.33")
    assert balance.total_value == Decimal("800.00")

    row = db.session.get(Production, production.id)
    assert row.is_cancelled is True
    assert db.session.query(FinishedProduct).filter_by(production_id=production.id).count() == 0

    created = db.session.query(OperationHistory).filter_by(operation_type=OP_PRODUCTION_CREATE).one()
    cancelled = db.session.query(OperationHistory).filter_by(operation_type=OP_PRODUCTION_CANCEL).one()
    assert created.is_cancelled is True
    assert cancelled.related_operation_id == created.id


def test_cancel_twice_is_refused(org_a, steel_shelf):
    _, shelf = steel_shelf
    production = create_production(org_id=org_a.id, user_id=None, product_id=shelf, quantity=1, now=NOW)
    cancel_production(org_id=org_a.id, user_id=None, production_id=production.id)

    with pytest.raises(ProductionStateError):
        cancel_production(org_id=org_a.id, user_id=None, production_id=production.id)


def test_cancel_refused_after_a_unit_is_sold(org_a, steel_shelf):
    steel, shelf = steel_shelf
    production = create_production(org_id=org_a.id, user_id=None, product_id=shelf, quantity=2, now=NOW)
    unit = db.session.query(FinishedProduct).filter_by(production_id=production.id).first()
    finished_product_service.sell(org_id=org_a.id, user_id=None, unit_id=unit.id, sale_price=Decimal("300"))

    with pytest.raises(ProductionStateError):
        cancel_production(org_id=org_a.id, user_id=None, production_id=production.id)

    assert get_balance(org_a.id, steel).current_stock == Decimal("90.0000")
    assert db.session.get(Production, production.id).is_cancelled is False


def test_cancel_locks_the_production_then_its_units(org_a, steel_shelf, monkeypatch):
    _, shelf = steel_shelf
    production = create_production(org_id=org_a.id, user_id=None, product_id=shelf, quantity=2, now=NOW)
    locked = []

    def recording_lock(query):
        locked.append(query.column_descriptions[0]["entity"])
        return query.with_for_update()

    monkeypatch.setattr(production_service, "lock_for_update", recording_lock)
    cancel_production(org_id=org_a.id, user_id=None, production_id=production.id)

    assert locked == [Production, FinishedProduct]


def test_delete_removes_production_and_logs(org_a, owner_a, steel_shelf):
    steel, shelf = steel_shelf
    production = create_production(
        org_id=org_a.id, user_id=owner_a.id, product_id=shelf, quantity=3, now=NOW
    )
    production_id = production.id

    delete_production(org_id=org_a.id, user_id=owner_a.id, production_id=production_id)

    assert db.session.get(Production, production_id) is None
    assert db.session.query(MaterialWriteOff).count() == 0
    assert get_balance(org_a.id, steel).current_stock == Decimal("150.0000")
    deleted = db.session.query(OperationHistory).filter_by(operation_type=OP_PRODUCTION_DELETE).one()
    assert deleted.entity_id == production_id


def test_list_hides_cancelled_by_default(org_a, steel_shelf):
    _, shelf = steel_shelf
    kept = create_production(org_id=org_a.id, user_id=None, product_id=shelf, quantity=1, now=NOW)
    dropped = create_production(org_id=org_a.id, user_id=None, product_id=shelf, quantity=1, now=NOW)
    cancel_production(org_id=org_a.id, user_id=None, production_id=dropped.id)

    visible = production_service.list_productions(org_a.id)
    everything = production_service.list_productions(org_a.id, include_cancelled=True)

    assert [p["id"] for p in visible["items"]] == [kept.id]
    assert everything["count"] == 2
    assert visible["items"][0]["product_name"] == "Shelf"


def test_photo_path_is_stored_with_the_run(org_a, steel_shelf):
    _, shelf = steel_shelf

    production = create_production(
        org_id=org_a.id, user_id=None, product_id=shelf, quantity=1,
        photo_path="photos/2026/shelf-batch.jpg", now=NOW,
    )

    assert get_production(org_a.id, production.id)["photo_path"] == "photos/2026/shelf-batch.jpg"
