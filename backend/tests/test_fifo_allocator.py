"""
FIFO allocator tests: oldest receipt first, exhausted receipts skipped,
all-or-nothing on shortage.
"""

from decimal import Decimal

import pytest

from workshop.extensions import db
from workshop.models import MaterialWriteOff
from workshop.services.fifo_allocator import (
    InsufficientStockError,
    plan_allocation,
    allocate,
)


def test_plan_consumes_oldest_receipt_first(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    newer = make_receipt(org_a, steel, 50, "6.00", day=5)
    older = make_receipt(org_a, steel, 100, "5.00", day=1)

    intents = plan_allocation(org_a.id, steel, Decimal("120"))

    assert [(i.receipt_id, i.quantity, i.unit_price) for i in intents] == [
        (older, Decimal("100"), Decimal("5.00")),
        (newer, Decimal("20"), Decimal("6.00")),
    ]
    assert sum(i.cost for i in intents) == Decimal("620.00")


def test_plan_skips_exhausted_receipts(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    first = make_receipt(org_a, steel, 10, "5.00", day=1)
    second = make_receipt(org_a, steel, 10, "7.00", day=2)

    db.session.add(MaterialWriteOff(
        production_id=1, material_receipt_id=first, material_id=steel,
        quantity=Decimal("10"), unit_price=Decimal("5.00"),
    ))
    db.session.commit()

    intents = plan_allocation(org_a.id, steel, Decimal("4"))

    assert len(intents) == 1
    assert intents[0].receipt_id == second
    assert intents[0].quantity == Decimal("4")


def test_plan_uses_partial_remainder_of_receipt(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    first = make_receipt(org_a, steel, 10, "5.00", day=1)
    second = make_receipt(org_a, steel, 10, "7.00", day=2)

    db.session.add(MaterialWriteOff(
        production_id=1, material_receipt_id=first, material_id=steel,
        quantity=Decimal("6"), unit_price=Decimal("5.00"),
    ))
    db.session.commit()

    intents = plan_allocation(org_a.id, steel, Decimal("8"))

    assert [(i.receipt_id, i.quantity) for i in intents] == [
        (first, Decimal("4")),
        (second, Decimal("4")),
    ]


def test_plan_breaks_same_date_ties_by_receipt_id(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    first = make_receipt(org_a, steel, 10, "9.00", day=3)
    second = make_receipt(org_a, steel, 10, "4.00", day=3)

    intents = plan_allocation(org_a.id, steel, Decimal("12"))

    assert [(i.receipt_id, i.quantity, i.unit_price) for i in intents] == [
        (first, Decimal("10"), Decimal("9.00")),
        (second, Decimal("2"), Decimal("4.00")),
    ]


def test_insufficient_stock_reports_shortage(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    make_receipt(org_a, steel, 30, "5.00")

    with pytest.raises(InsufficientStockError) as exc_info:
        plan_allocation(org_a.id, steel, Decimal("45"))

    assert exc_info.value.required == Decimal("45.0000")
    assert exc_info.value.available == Decimal("30")
    assert exc_info.value.shortage == Decimal("15.0000")


def test_allocate_writes_nothing_on_shortage(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    make_receipt(org_a, steel, 30, "5.00")

    with pytest.raises(InsufficientStockError):
        allocate(org_a.id, 1, steel, Decimal("31"))
    db.session.rollback()

    assert db.session.query(MaterialWriteOff).count() == 0


def test_allocate_records_write_offs_at_receipt_price(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    make_receipt(org_a, steel, 100, "5.00", day=1)
    make_receipt(org_a, steel, 50, "6.00", day=5)

    rows = allocate(org_a.id, 7, steel, Decimal("120"))
    db.session.commit()

    assert [(r.quantity, r.unit_price) for r in rows] == [
        (Decimal("100"), Decimal("5.00")),
        (Decimal("20"), Decimal("6.00")),
    ]
    assert all(r.production_id == 7 for r in rows)


def test_other_organizations_receipts_are_never_allocated(org_a, org_b, make_material, make_receipt):
    steel_a = make_material(org_a, "Steel")
    make_receipt(org_a, steel_a, 5, "5.00")
    steel_b = make_material(org_b, "Steel")
    make_receipt(org_b, steel_b, 100, "1.00")

    with pytest.raises(InsufficientStockError):
        plan_allocation(org_a.id, steel_a, Decimal("10"))
