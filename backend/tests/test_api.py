"""
HTTP surface tests through the Flask test client.

Covers authentication, tenant isolation (foreign ids answer 404), the
Owner-only hard deletes, input validation and the main workflow.
"""

import pytest


def _create_material(client, headers, **fields):
    payload = {"name": "Steel", "unit": "kg", **fields}
    response = client.post("/api/materials", json=payload, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def _receive(client, headers, material_id, quantity, unit_price, receipt_date="2026-01-01T09:00:00Z"):
    response = client.post("/api/receipts", json={
        "material_id": material_id,
        "quantity": quantity,
        "unit_price": unit_price,
        "receipt_date": receipt_date,
    }, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def _create_product(client, headers, name, recipe_items):
    response = client.post("/api/products", json={
        "name": name,
        "recipe_items": recipe_items,
    }, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


class TestAuthentication:
    def test_missing_token_is_401(self, client, db_session):
        response = client.get("/api/materials")
        assert response.status_code == 401

    def test_unknown_token_is_401(self, client, db_session):
        response = client.get("/api/materials", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_health_is_public(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"


class TestTenantIsolation:
    def test_material_of_other_org_is_404(self, client, owner_a_headers, owner_b_headers):
        material = _create_material(client, owner_a_headers)

        assert client.get(f"/api/materials/{material['id']}", headers=owner_b_headers).status_code == 404
        assert client.put(
            f"/api/materials/{material['id']}", json={"color": "red"}, headers=owner_b_headers
        ).status_code == 404
        assert client.delete(f"/api/materials/{material['id']}", headers=owner_b_headers).status_code == 404

    def test_lists_only_show_own_rows(self, client, owner_a_headers, owner_b_headers):
        _create_material(client, owner_a_headers, name="Steel")
        _create_material(client, owner_b_headers, name="Oak")

        names = [m["name"] for m in client.get("/api/materials", headers=owner_b_headers).get_json()["items"]]
        assert names == ["Oak"]

    def test_recipe_cannot_reference_foreign_material(self, client, owner_a_headers, owner_b_headers):
        foreign = _create_material(client, owner_a_headers)

        response = client.post("/api/products", json={
            "name": "Table",
            "recipe_items": [{"material_id": foreign["id"], "quantity": 1}],
        }, headers=owner_b_headers)

        assert response.status_code == 404


class TestRoles:
    def test_member_cannot_hard_delete(self, client, owner_a_headers, member_a_headers):
        material = _create_material(client, owner_a_headers)

        response = client.delete(f"/api/materials/{material['id']}", headers=member_a_headers)

        assert response.status_code == 403
        assert response.get_json()["required_role"] == "Owner"

    def test_member_can_archive_and_owner_can_delete(self, client, owner_a_headers, member_a_headers):
        material = _create_material(client, owner_a_headers)

        archived = client.post(f"/api/materials/{material['id']}/archive", headers=member_a_headers)
        assert archived.status_code == 200
        assert archived.get_json()["is_archived"] is True

        assert client.delete(f"/api/materials/{material['id']}", headers=owner_a_headers).status_code == 200
        assert client.get(f"/api/materials/{material['id']}", headers=owner_a_headers).status_code == 404


class TestValidation:
    def test_unknown_field_is_rejected(self, client, owner_a_headers):
        response = client.post("/api/materials", json={"name": "Steel", "unit": "kg", "stock": 5},
                               headers=owner_a_headers)
        assert response.status_code == 400

    def test_missing_required_field(self, client, owner_a_headers):
        response = client.post("/api/materials", json={"name": "Steel"}, headers=owner_a_headers)
        assert response.status_code == 400

    def test_duplicate_material_identity_conflicts(self, client, owner_a_headers):
        _create_material(client, owner_a_headers, color="grey")
        response = client.post("/api/materials", json={"name": "STEEL", "unit": "kg", "color": "grey"},
                               headers=owner_a_headers)
        assert response.status_code == 409

    def test_receipt_price_scale(self, client, owner_a_headers):
        material = _create_material(client, owner_a_headers)
        response = client.post("/api/receipts", json={
            "material_id": material["id"], "quantity": 1, "unit_price": "5.125",
        }, headers=owner_a_headers)
        assert response.status_code == 400

    def test_bad_date_filter(self, client, owner_a_headers):
        response = client.get("/api/receipts?date_from=yesterday", headers=owner_a_headers)
        assert response.status_code == 400

    @pytest.mark.parametrize("quantity", [0, 10001, "2.5"])
    def test_production_quantity_bounds(self, client, owner_a_headers, quantity):
        material = _create_material(client, owner_a_headers)
        product = _create_product(client, owner_a_headers, "Shelf",
                                  [{"material_id": material["id"], "quantity": 1}])
        response = client.post("/api/productions", json={
            "product_id": product["id"], "quantity": quantity,
        }, headers=owner_a_headers)
        assert response.status_code == 400


class TestWorkflow:
    def test_receive_produce_sell(self, client, owner_a_headers):
        steel = _create_material(client, owner_a_headers)
        _receive(client, owner_a_headers, steel["id"], 100, "5.00", "2026-01-01T09:00:00Z")
        _receive(client, owner_a_headers, steel["id"], 50, "6.00", "2026-01-05T09:00:00Z")
        product = _create_product(client, owner_a_headers, "Shelf",
                                  [{"material_id": steel["id"], "quantity": "30"}])

        availability = client.get(
            f"/api/productions/check-availability?product_id={product['id']}&quantity=4",
            headers=owner_a_headers,
        ).get_json()
        assert availability["can_produce"] is True

        created = client.post("/api/productions", json={"product_id": product["id"], "quantity": 4},
                              headers=owner_a_headers)
        assert created.status_code == 201
        production = created.get_json()
        assert production["material_cost"] == "620.00"
        assert production["in_stock_count"] == 4
        assert production["batch_number"].startswith("P")

        balance = client.get(f"/api/materials/{steel['id']}/balance", headers=owner_a_headers).get_json()
        assert balance["current_stock"] == "30.0000"
        assert balance["total_value"] == "180.00"

        units = client.get("/api/finished-products?status=InStock", headers=owner_a_headers).get_json()
        assert units["count"] == 4
        unit_id = units["items"][0]["id"]

        sold = client.post(f"/api/finished-products/{unit_id}/sell", json={"sale_price": "99.90"},
                           headers=owner_a_headers)
        assert sold.status_code == 200
        assert sold.get_json()["status"] == "Sold"

        again = client.post(f"/api/finished-products/{unit_id}/sell", json={"sale_price": "99.90"},
                            headers=owner_a_headers)
        assert again.status_code == 409

        cancel = client.post(f"/api/productions/{production['id']}/cancel", headers=owner_a_headers)
        assert cancel.status_code == 409

        summary = client.get("/api/finished-products/summary", headers=owner_a_headers).get_json()
        assert summary["total_sold"] == 1
        assert summary["total_sales_amount"] == "99.90"

        history = client.get("/api/history?operation_type=Sale", headers=owner_a_headers).get_json()
        assert history["pagination"]["total"] == 1

    def test_shortage_is_409_with_details(self, client, owner_a_headers):
        steel = _create_material(client, owner_a_headers)
        _receive(client, owner_a_headers, steel["id"], 10, "5.00")
        product = _create_product(client, owner_a_headers, "Shelf",
                                  [{"material_id": steel["id"], "quantity": "30"}])

        response = client.post("/api/productions", json={"product_id": product["id"], "quantity": 1},
                               headers=owner_a_headers)

        assert response.status_code == 409
        body = response.get_json()
        assert body["availability"]["can_produce"] is False
        assert body["availability"]["materials"][0]["shortage"] == "20.0000"
        listed = client.get("/api/productions?include_cancelled=true", headers=owner_a_headers).get_json()
        assert listed["count"] == 0

    def test_receipt_with_inline_material(self, client, owner_a_headers):
        response = client.post("/api/receipts", json={
            "new_material": {"name": "Walnut", "unit": "m", "color": "dark"},
            "quantity": "12.5",
            "unit_price": "8.00",
        }, headers=owner_a_headers)

        assert response.status_code == 201
        body = response.get_json()
        assert body["material_name"] == "Walnut"
        assert body["total_price"] == "100.00"

    def test_product_recalculate_and_copy(self, client, owner_a_headers):
        steel = _create_material(client, owner_a_headers)
        _receive(client, owner_a_headers, steel["id"], 10, "4.00")
        product = _create_product(client, owner_a_headers, "Hook",
                                  [{"material_id": steel["id"], "quantity": "0.5"}])
        assert product["estimated_cost"] is None
        assert product["weight"] == "0.5000"

        recalculated = client.post(f"/api/products/{product['id']}/recalculate-cost",
                                   headers=owner_a_headers).get_json()
        assert recalculated["estimated_cost"] == "2.00"
        assert recalculated["recommended_price"] == "4.00"

        copied = client.post(f"/api/products/{product['id']}/copy", json={"new_name": "Hook large"},
                             headers=owner_a_headers)
        assert copied.status_code == 201
        assert copied.get_json()["name"] == "Hook large"

        recipe = client.get(f"/api/products/{product['id']}/recipe", headers=owner_a_headers).get_json()
        assert recipe["count"] == 1
        assert recipe["items"][0]["item_cost"] == "2.00"

    def test_recent_history(self, client, owner_a_headers):
        _create_material(client, owner_a_headers, name="Steel")
        _create_material(client, owner_a_headers, name="Copper")

        recent = client.get("/api/history/recent?count=1", headers=owner_a_headers).get_json()

        assert recent["count"] == 1
        assert recent["items"][0]["entity_name"] == "Copper"
