# Overview: Pytest coverage for the HTTP surface: auth, permissions, products, inventory, admin.

"""
Route tests.

Verifies:
- Login issues a token; /me reflects the caller's effective permissions
- Unauthenticated requests return 401, missing grants return 403
- Merchants may only modify their own products; product/manage may modify any
- Insufficient stock maps to 409
- Admin policy edits take effect immediately and persist on save
"""

import pytest

from conftest import PASSWORD, auth_headers, get_auth_token, token_for


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(token_for(admin_user))


@pytest.fixture
def merchant_headers(merchant_user):
    return auth_headers(token_for(merchant_user))


@pytest.fixture
def other_merchant_headers(other_merchant):
    return auth_headers(token_for(other_merchant))


@pytest.fixture
def customer_headers(customer_user):
    return auth_headers(token_for(customer_user))


# =============================================================================
# AUTH
# =============================================================================


class TestAuthRoutes:

    def test_login_and_me(self, client, merchant_user):
        token = get_auth_token(client, "merchant")
        assert token

        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json["user"]["username"] == "merchant"
        assert resp.json["roles"] == ["merchant"]
        assert {"role": "merchant", "resource": "product", "action": "write"} in resp.json["permissions"]

    def test_login_with_email(self, client, merchant_user):
        assert get_auth_token(client, "merchant@mall.test")

    def test_bad_password(self, client, merchant_user):
        resp = client.post("/api/auth/login", json={"username": "merchant", "password": "Wrong123!"})
        assert resp.status_code == 401
        assert resp.json["error"] == "Invalid credentials"

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "merchant"})
        assert resp.status_code == 400

    def test_me_requires_token(self, client, db_session):
        assert client.get("/api/auth/me").status_code == 401
        resp = client.get("/api/auth/me", headers=auth_headers("garbage"))
        assert resp.status_code == 401

    def test_deactivated_user_rejected(self, client, db_session, merchant_user):
        token = token_for(merchant_user)
        merchant_user.is_active = False
        db_session.commit()

        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401

    def test_refresh_too_early(self, client, merchant_headers):
        resp = client.post("/api/auth/refresh", headers=merchant_headers)
        assert resp.status_code == 400


# =============================================================================
# PERMISSIONS
# =============================================================================


class TestPermissionEnforcement:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/products"),
            ("PUT", "/api/products/1"),
            ("DELETE", "/api/products/1"),
            ("POST", "/api/inventory/deduct"),
            ("GET", "/api/inventory/statistics"),
            ("GET", "/api/admin/policies"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_customer_cannot_create_product(self, client, customer_headers, category):
        resp = client.post(
            "/api/products",
            json={"name": "X", "category_id": category.id, "price": "1.00"},
            headers=customer_headers,
        )
        assert resp.status_code == 403
        assert resp.json["error"] == "Permission denied"

    def test_merchant_cannot_reach_admin(self, client, merchant_headers):
        resp = client.get("/api/admin/policies", headers=merchant_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == {"resource": "system", "action": "manage"}

    def test_customer_cannot_read_reports(self, client, customer_headers):
        assert client.get("/api/inventory/statistics", headers=customer_headers).status_code == 403


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProductRoutes:

    def test_create_update_delete(self, client, merchant_headers, category):
        resp = client.post(
            "/api/products",
            json={
                "name": "Phone",
                "category_id": category.id,
                "price": "199.90",
                "stock": 5,
                "images": ["https://img.test/p.jpg"],
                "attributes": [{"attr_name": "RAM", "attr_value": "8GB"}],
            },
            headers=merchant_headers,
        )
        assert resp.status_code == 201
        product = resp.json
        assert product["price"] == "199.90"
        assert product["status"] == "draft"
        assert product["images"][0]["is_main"] is True

        resp = client.put(
            f"/api/products/{product['id']}",
            json={"name": "Phone 2", "attributes": []},
            headers=merchant_headers,
        )
        assert resp.status_code == 200
        assert resp.json["name"] == "Phone 2"
        assert resp.json["attributes"] == []
        assert len(resp.json["images"]) == 1

        resp = client.patch(
            f"/api/products/{product['id']}/status",
            json={"status": "active"},
            headers=merchant_headers,
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "active"

        assert client.delete(f"/api/products/{product['id']}", headers=merchant_headers).status_code == 200
        assert client.get(f"/api/products/{product['id']}").status_code == 404

    def test_validation_errors(self, client, merchant_headers, category):
        resp = client.post(
            "/api/products",
            json={"name": "X", "category_id": category.id, "price": "1.001"},
            headers=merchant_headers,
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/products",
            json={"name": "X", "category_id": category.id, "price": "1.00", "view_count": 9},
            headers=merchant_headers,
        )
        assert resp.status_code == 400

    def test_not_owner(self, client, other_merchant_headers, product):
        resp = client.put(
            f"/api/products/{product['id']}",
            json={"name": "Stolen"},
            headers=other_merchant_headers,
        )
        assert resp.status_code == 403

    def test_admin_may_edit_any(self, client, admin_headers, product):
        resp = client.put(f"/api/products/{product['id']}", json={"name": "Curated"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["name"] == "Curated"

    def test_public_listing(self, client, make_product):
        make_product(name="A", price="5.00")
        make_product(name="B", price="15.00")

        resp = client.get("/api/products?sort_by=price_desc&page_size=1")
        assert resp.status_code == 200
        assert resp.json["pagination"]["total"] == 2
        assert [p["name"] for p in resp.json["items"]] == ["B"]

        resp = client.get("/api/products?is_hot=maybe")
        assert resp.status_code == 400

    def test_batch_status_admin_only(self, client, merchant_headers, admin_headers, product):
        body = {"ids": [product["id"]], "status": "active"}
        assert client.post("/api/products/batch-status", json=body, headers=merchant_headers).status_code == 403

        resp = client.post("/api/products/batch-status", json=body, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["updated"] == 1

    def test_statistics_scoped_to_merchant(self, client, merchant_headers, other_merchant_headers, product):
        assert client.get("/api/products/statistics", headers=merchant_headers).json["total_products"] == 1
        assert client.get("/api/products/statistics", headers=other_merchant_headers).json["total_products"] == 0


# =============================================================================
# INVENTORY
# =============================================================================


class TestInventoryRoutes:

    def test_deduct_and_insufficient(self, client, customer_headers, make_product):
        product = make_product(stock=3)

        resp = client.post(
            "/api/inventory/deduct",
            json={"product_id": product["id"], "quantity": 2},
            headers=customer_headers,
        )
        assert resp.status_code == 200
        assert resp.json["stock"] == 1
        assert resp.json["sold_count"] == 2

        resp = client.post(
            "/api/inventory/deduct",
            json={"product_id": product["id"], "quantity": 2},
            headers=customer_headers,
        )
        assert resp.status_code == 409

    def test_deduct_rejects_bad_quantity(self, client, customer_headers, make_product):
        product = make_product(stock=3)
        resp = client.post(
            "/api/inventory/deduct",
            json={"product_id": product["id"], "quantity": 0},
            headers=customer_headers,
        )
        assert resp.status_code == 400

    def test_set_stock_owner_only(self, client, merchant_headers, other_merchant_headers, product):
        url = f"/api/inventory/{product['id']}"
        assert client.put(url, json={"stock": 9}, headers=other_merchant_headers).status_code == 403

        resp = client.put(url, json={"stock": 9}, headers=merchant_headers)
        assert resp.status_code == 200
        assert resp.json["stock"] == 9

    def test_check(self, client, customer_headers, make_product):
        product = make_product(stock=3)
        resp = client.post(
            "/api/inventory/check",
            json={"items": [{"product_id": product["id"], "quantity": 5}]},
            headers=customer_headers,
        )
        assert resp.status_code == 200
        assert resp.json["all_sufficient"] is False

    def test_statistics(self, client, merchant_headers, make_product):
        make_product(stock=0)
        resp = client.get("/api/inventory/statistics", headers=merchant_headers)
        assert resp.status_code == 200
        assert resp.json["out_of_stock_count"] == 1

    def test_restore_batch(self, client, customer_headers, merchant_headers, make_product):
        product = make_product(stock=5)
        items = [{"product_id": product["id"], "quantity": 2}]
        assert client.post("/api/inventory/deduct-batch", json={"items": items},
                           headers=customer_headers).status_code == 200

        # Customers may order but not cancel
        assert client.post("/api/inventory/restore-batch", json={"items": items},
                           headers=customer_headers).status_code == 403

        resp = client.post("/api/inventory/restore-batch", json={"items": items}, headers=merchant_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/inventory/{product['id']}", headers=merchant_headers).json["stock"] == 5

        resp = client.post(
            "/api/inventory/restore-batch",
            json={"items": [{"product_id": 9999, "quantity": 1}]},
            headers=merchant_headers,
        )
        assert resp.status_code == 404


class TestNonObjectBodies:

    @pytest.mark.parametrize("body", [[1, 2], "text", 7])
    def test_product_writes_reject_non_objects(self, client, merchant_headers, product, body):
        assert client.post("/api/products", json=body, headers=merchant_headers).status_code == 400
        resp = client.put(f"/api/products/{product['id']}", json=body, headers=merchant_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Request body must be a JSON object"

    def test_inventory_and_login_reject_lists(self, client, customer_headers):
        assert client.post("/api/inventory/deduct", json=[1], headers=customer_headers).status_code == 400
        assert client.post("/api/inventory/check", json=[1], headers=customer_headers).status_code == 400
        assert client.post("/api/auth/login", json=["merchant"]).status_code == 400


# =============================================================================
# ADMIN
# =============================================================================


class TestAdminRoutes:

    def test_grant_takes_effect_immediately(self, client, admin_headers, customer_headers, customer_user):
        assert client.get("/api/inventory/statistics", headers=customer_headers).status_code == 403

        resp = client.post(
            "/api/admin/policies",
            json={"role": "user", "resource": "report", "action": "read"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert client.get("/api/inventory/statistics", headers=customer_headers).status_code == 200

        resp = client.delete(
            "/api/admin/policies",
            json={"role": "user", "resource": "report", "action": "read"},
            headers=admin_headers,
        )
        assert resp.json["removed"] is True
        assert client.get("/api/inventory/statistics", headers=customer_headers).status_code == 403

    def test_invalid_grant(self, client, admin_headers):
        resp = client.post(
            "/api/admin/policies",
            json={"role": "user", "resource": "moon", "action": "read"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_check_and_cycle(self, client, admin_headers):
        resp = client.post(
            "/api/admin/policies/check",
            json={"subject": "admin", "resource": "user", "action": "manage"},
            headers=admin_headers,
        )
        assert resp.json["allowed"] is True

        client.post("/api/admin/roles/assign", json={"subject": "merchant", "role": "user"}, headers=admin_headers)
        resp = client.post(
            "/api/admin/roles/assign",
            json={"subject": "user", "role": "merchant"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_create_user_and_reload(self, client, admin_headers, engine):
        resp = client.post(
            "/api/admin/users",
            json={"username": "newbie", "email": "newbie@mall.test", "password": PASSWORD, "role": "merchant"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        user_id = resp.json["user"]["id"]

        assert client.post("/api/admin/policy/reload", headers=admin_headers).status_code == 200
        assert engine.get_roles_for_subject(f"user:{user_id}") == ["merchant"]

    def test_weak_password_rejected(self, client, admin_headers):
        resp = client.post(
            "/api/admin/users",
            json={"username": "weak", "email": "weak@mall.test", "password": "password"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
