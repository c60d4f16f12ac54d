"""
Product tests: recipe replacement, cached cost staleness, weight and copy.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from workshop.extensions import db
from workshop.models import Product, RecipeItem
from workshop.services import product_service
from workshop.services.production_service import create_production
from workshop.services.recipe_service import get_recipe
from workshop.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def materials(org_a, make_material, make_receipt):
    steel = make_material(org_a, "Steel")
    make_receipt(org_a, steel, 100, "5.00")
    paint = make_material(org_a, "Paint", unit="g")
    make_receipt(org_a, paint, 1000, "0.02")
    bolts = make_material(org_a, "Bolt M8", unit="pcs")
    make_receipt(org_a, bolts, 500, "0.10")
    return steel, paint, bolts


def test_create_with_recipe_derives_weight(org_a, materials, make_product):
    steel, paint, bolts = materials

    product_id = make_product(org_a, "Gate", recipe=[(steel, "2.5"), (paint, 500), (bolts, 3)])
    product = product_service.get_product(org_a.id, product_id)

    # 2.5 kg + 500 g; pieces carry no weight
    assert product["weight"] == "3.0000"
    assert [item["quantity"] for item in product["recipe_items"]] == ["2.5000", "500.0000", "3.0000"]
    assert product["estimated_cost"] is None


def test_recipe_change_leaves_cost_stale_until_recalculated(org_a, materials, make_product):
    steel, paint, bolts = materials
    product_id = make_product(org_a, "Gate", recipe=[(steel, 2)])
    product_service.recalculate_product_cost(org_id=org_a.id, product_id=product_id)

    updated = product_service.update_product(
        org_id=org_a.id, user_id=None, product_id=product_id, patch={},
        recipe_items=[(steel, Decimal("4")), (bolts, Decimal("10"))],
    )
    assert updated["estimated_cost"] == "10.00"
    assert updated["recommended_price"] == "20.00"

    recalculated = product_service.recalculate_product_cost(org_id=org_a.id, product_id=product_id)
    assert recalculated["estimated_cost"] == "21.00"
    assert recalculated["recommended_price"] == "42.00"


def test_markup_drives_recommended_price(org_a, materials, make_product):
    steel, _, _ = materials
    product_id = make_product(org_a, "Frame", recipe=[(steel, 3)], markup_percent=50)

    product = product_service.recalculate_product_cost(org_id=org_a.id, product_id=product_id)

    assert product["estimated_cost"] == "15.00"
    assert product["recommended_price"] == "22.50"


def test_replace_recipe_with_foreign_material_keeps_old_recipe(org_a, org_b, materials, make_material, make_product):
    steel, _, _ = materials
    foreign = make_material(org_b, "Steel")
    product_id = make_product(org_a, "Gate", recipe=[(steel, 2)])

    with pytest.raises(NotFoundError):
        product_service.update_product(
            org_id=org_a.id, user_id=None, product_id=product_id, patch={},
            recipe_items=[(foreign, Decimal("1"))],
        )

    assert get_recipe(org_a.id, product_id) == [(steel, Decimal("2.0000"))]


def test_copy_duplicates_recipe_under_new_name(org_a, materials, make_product):
    steel, paint, _ = materials
    original = make_product(org_a, "Gate", category="Outdoor", recipe=[(steel, 2), (paint, 100)])

    copied = product_service.copy_product(org_id=org_a.id, user_id=None, product_id=original, new_name="Gate XL")

    assert copied["id"] != original
    assert copied["name"] == "Gate XL"
    assert copied["category"] == "Outdoor"
    assert [(i["material_id"], i["quantity"]) for i in copied["recipe_items"]] == [
        (steel, "2.0000"),
        (paint, "100.0000"),
    ]
    assert copied["weight"] == "2.1000"


def test_copy_requires_name(org_a, make_product):
    product_id = make_product(org_a, "Gate")

    with pytest.raises(ValidationError):
        product_service.copy_product(org_id=org_a.id, user_id=None, product_id=product_id, new_name="  ")


def test_delete_blocked_by_production_history(org_a, materials, make_product):
    steel, _, _ = materials
    product_id = make_product(org_a, "Gate", recipe=[(steel, 1)])
    create_production(org_id=org_a.id, user_id=None, product_id=product_id, quantity=1,
                      now=datetime(2026, 5, 1, 9, 0))

    with pytest.raises(ConflictError):
        product_service.delete_product(org_id=org_a.id, user_id=None, product_id=product_id)

    archived = product_service.set_archived(org_id=org_a.id, user_id=None, product_id=product_id, archived=True)
    assert archived["is_archived"] is True
    assert product_service.list_products(org_a.id)["count"] == 0
    assert product_service.list_products(org_a.id, include_archived=True)["count"] == 1


def test_delete_removes_recipe(org_a, materials, make_product):
    steel, _, _ = materials
    product_id = make_product(org_a, "Gate", recipe=[(steel, 1)])

    product_service.delete_product(org_id=org_a.id, user_id=None, product_id=product_id)

    assert db.session.get(Product, product_id) is None
    assert db.session.query(RecipeItem).count() == 0


def test_list_search_and_materials_count(org_a, materials, make_product):
    steel, paint, _ = materials
    make_product(org_a, "Garden gate", recipe=[(steel, 1), (paint, 5)])
    make_product(org_a, "Shelf", category="Garden")
    make_product(org_a, "Stool")

    found = product_service.list_products(org_a.id, search="garden")

    assert [p["name"] for p in found["items"]] == ["Garden gate", "Shelf"]
    assert found["items"][0]["materials_count"] == 2
    assert product_service.list_categories(org_a.id) == ["Garden"]
