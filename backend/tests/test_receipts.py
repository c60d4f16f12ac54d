"""
Receipt tests: totals, inline material creation and the used-receipt freeze.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from workshop.extensions import db
from workshop.models import Material, MaterialReceipt, OperationHistory, OP_MATERIAL_CREATE, OP_RECEIPT_CREATE
from workshop.services import receipt_service
from workshop.services.production_service import create_production
from workshop.services.stock_ledger import get_balance
from workshop.validation import ConflictError, NotFoundError


@pytest.fixture
def used_receipt(org_a, make_material, make_receipt, make_product):
    """A 100 kg receipt of which 30 kg went into production."""
    steel = make_material(org_a, "Steel")
    receipt = make_receipt(org_a, steel, 100, "5.00")
    bracket = make_product(org_a, "Bracket", recipe=[(steel, 30)])
    create_production(org_id=org_a.id, user_id=None, product_id=bracket, quantity=1,
                      now=datetime(2026, 2, 1, 9, 0))
    return steel, receipt


def test_total_price_defaults_to_quantity_times_price(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    receipt_id = make_receipt(org_a, steel, "12.5", "4.10")

    data = receipt_service.get_receipt(org_a.id, receipt_id)

    assert data["total_price"] == "51.25"
    assert data["remaining_quantity"] == "12.5000"
    assert data["has_used_materials"] is False


def test_receipt_can_create_its_material_inline(org_a):
    created = receipt_service.create_receipt(
        org_id=org_a.id,
        user_id=None,
        patch={"quantity": Decimal("8"), "unit_price": Decimal("2.00")},
        new_material={"name": "Brass rod", "unit": "m"},
    )

    material = db.session.get(Material, created["material_id"])
    assert material.name == "Brass rod"
    assert material.org_id == org_a.id
    ops = [h.operation_type for h in db.session.query(OperationHistory).order_by(OperationHistory.id)]
    assert ops == [OP_MATERIAL_CREATE, OP_RECEIPT_CREATE]


def test_inline_material_is_rolled_back_with_failed_receipt(org_a, make_material):
    make_material(org_a, "Brass rod", unit="m")

    with pytest.raises(ConflictError):
        receipt_service.create_receipt(
            org_id=org_a.id,
            user_id=None,
            patch={"quantity": Decimal("8"), "unit_price": Decimal("2.00")},
            new_material={"name": "brass rod", "unit": "m"},
        )

    assert db.session.query(MaterialReceipt).count() == 0
    assert db.session.query(Material).count() == 1


def test_unused_receipt_is_fully_editable(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    copper = make_material(org_a, "Copper")
    receipt_id = make_receipt(org_a, steel, 10, "5.00")

    updated = receipt_service.update_receipt(
        org_id=org_a.id, user_id=None, receipt_id=receipt_id,
        patch={"material_id": copper, "unit_price": Decimal("7.00")},
    )

    assert updated["material_id"] == copper
    assert updated["total_price"] == "70.00"


@pytest.mark.parametrize("patch", [
    {"unit_price": Decimal("5.50")},
    {"receipt_date": datetime(2026, 1, 2, 9, 0)},
])
def test_used_receipt_freezes_price_and_date(org_a, used_receipt, patch):
    _, receipt_id = used_receipt

    with pytest.raises(ConflictError):
        receipt_service.update_receipt(org_id=org_a.id, user_id=None, receipt_id=receipt_id, patch=patch)


def test_used_receipt_cannot_move_to_another_material(org_a, used_receipt, make_material):
    _, receipt_id = used_receipt
    copper = make_material(org_a, "Copper")

    with pytest.raises(ConflictError):
        receipt_service.update_receipt(
            org_id=org_a.id, user_id=None, receipt_id=receipt_id, patch={"material_id": copper}
        )


def test_used_receipt_quantity_floor(org_a, used_receipt):
    steel, receipt_id = used_receipt

    with pytest.raises(ConflictError):
        receipt_service.update_receipt(
            org_id=org_a.id, user_id=None, receipt_id=receipt_id, patch={"quantity": Decimal("29")}
        )

    updated = receipt_service.update_receipt(
        org_id=org_a.id, user_id=None, receipt_id=receipt_id,
        patch={"quantity": Decimal("30"), "comment": "Rest returned to supplier"},
    )
    assert updated["remaining_quantity"] == "0.0000"
    assert get_balance(org_a.id, steel).current_stock == Decimal("0.0000")


def test_used_receipt_allows_unchanged_frozen_values(org_a, used_receipt):
    _, receipt_id = used_receipt

    updated = receipt_service.update_receipt(
        org_id=org_a.id, user_id=None, receipt_id=receipt_id,
        patch={"unit_price": Decimal("5.00"), "batch_number": "L-77"},
    )

    assert updated["batch_number"] == "L-77"


def test_used_receipt_cannot_be_deleted(org_a, used_receipt):
    _, receipt_id = used_receipt

    with pytest.raises(ConflictError):
        receipt_service.delete_receipt(org_id=org_a.id, user_id=None, receipt_id=receipt_id)

    assert db.session.get(MaterialReceipt, receipt_id) is not None


def test_unused_receipt_delete(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    receipt_id = make_receipt(org_a, steel, 10, "5.00")

    receipt_service.delete_receipt(org_id=org_a.id, user_id=None, receipt_id=receipt_id)

    assert db.session.get(MaterialReceipt, receipt_id) is None
    assert get_balance(org_a.id, steel).current_stock == Decimal("0")


def test_receipt_for_foreign_material_is_not_found(org_a, org_b, make_material):
    steel_b = make_material(org_b, "Steel")

    with pytest.raises(NotFoundError):
        receipt_service.create_receipt(
            org_id=org_a.id, user_id=None,
            patch={"material_id": steel_b, "quantity": Decimal("1"), "unit_price": Decimal("1")},
        )


def test_list_reports_remaining_per_receipt(org_a, used_receipt, make_receipt):
    steel, used_id = used_receipt
    fresh_id = make_receipt(org_a, steel, 5, "6.00", day=2)

    listed = receipt_service.list_receipts(org_a.id, material_id=steel)

    remaining = {r["id"]: r["remaining_quantity"] for r in listed["items"]}
    assert remaining == {used_id: "70.0000", fresh_id: "5.0000"}
