"""
HTTP API tests: authentication, error-to-status mapping, JSON envelopes.
"""

from shopadmin.models import Product


def test_health_is_public(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"


def test_api_requires_token(client, db_session):
    response = client.get("/api/categories")
    assert response.status_code == 401

    response = client.get("/api/categories", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


# ================================================================================
# CATEGORIES
# ================================================================================

def _create_category(client, headers, **body):
    return client.post("/api/categories", json=body, headers=headers)


def test_category_create_and_slug_suffix(client, auth_headers, admin):
    first = _create_category(client, auth_headers, name="Mugs")
    second = _create_category(client, auth_headers, name="Mugs")

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.get_json()["slug"] == "mugs"
    assert second.get_json()["slug"] == "mugs-1"
    assert first.get_json()["created_by_admin_id"] == admin.id


def test_category_depth_limit_is_400(client, auth_headers):
    parent_id = None
    for name in ("A", "B", "C"):
        body = {"name": name}
        if parent_id:
            body["parent_id"] = parent_id
        response = _create_category(client, auth_headers, **body)
        assert response.status_code == 201
        parent_id = response.get_json()["id"]

    response = _create_category(client, auth_headers, name="D", parent_id=parent_id)
    assert response.status_code == 400
    assert response.get_json()["code"] == "MaxDepthExceededError"


def test_category_cycle_is_400(client, auth_headers):
    a = _create_category(client, auth_headers, name="A").get_json()
    b = _create_category(client, auth_headers, name="B", parent_id=a["id"]).get_json()

    response = client.patch(f"/api/categories/{a['id']}", json={"parent_id": b["id"]}, headers=auth_headers)
    assert response.status_code == 400
    assert response.get_json()["code"] == "CycleDetectedError"


def test_category_unknown_parent_is_404(client, auth_headers):
    response = _create_category(client, auth_headers, name="Orphan", parent_id=777777)
    assert response.status_code == 404


def test_category_rejects_unknown_fields(client, auth_headers):
    response = _create_category(client, auth_headers, name="X", is_root=True)
    assert response.status_code == 400


def test_category_delete_in_use_is_409(client, auth_headers):
    a = _create_category(client, auth_headers, name="A").get_json()
    _create_category(client, auth_headers, name="B", parent_id=a["id"])

    response = client.delete(f"/api/categories/{a['id']}", headers=auth_headers)
    assert response.status_code == 409


def test_category_toggle_and_tree(client, auth_headers):
    a = _create_category(client, auth_headers, name="A").get_json()

    response = client.post(f"/api/categories/{a['id']}/toggle-status", headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()["is_active"] is False

    tree = client.get("/api/categories/tree", headers=auth_headers).get_json()
    assert tree["items"] == []
    tree = client.get("/api/categories/tree?active_only=false", headers=auth_headers).get_json()
    assert [n["id"] for n in tree["items"]] == [a["id"]]


def test_category_toggle_blocked_when_configured(app, client, auth_headers, product):
    app.config["BLOCK_CATEGORY_DEACTIVATION_IN_USE"] = True
    try:
        response = client.post(f"/api/categories/{product.category_id}/toggle-status", headers=auth_headers)
    finally:
        app.config["BLOCK_CATEGORY_DEACTIVATION_IN_USE"] = False
    assert response.status_code == 409


# ================================================================================
# PRODUCTS
# ================================================================================

def test_product_create_and_list(client, auth_headers, category):
    response = client.post(
        "/api/products",
        json={"name": "Ly Sứ", "price_cents": 50000, "category_id": category.id, "attributes": {"capacity": "300ml"}},
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.get_json()["slug"] == "ly-su"

    listing = client.get("/api/products?page=1&per_page=10", headers=auth_headers).get_json()
    assert listing["count"] == 1
    assert listing["pagination"]["total"] == 1


def test_product_price_rules(client, auth_headers):
    response = client.post("/api/products", json={"name": "Bad", "price_cents": -1}, headers=auth_headers)
    assert response.status_code == 400
    response = client.post("/api/products", json={"name": "Bad", "price_cents": 1.5}, headers=auth_headers)
    assert response.status_code == 400


def test_product_soft_delete_reactivate_cycle(client, auth_headers, product, admin):
    response = client.delete(f"/api/products/{product.id}", headers=auth_headers)
    assert response.status_code == 200
    body = response.get_json()
    assert body["is_deleted"] is True
    assert body["deleted_by_admin_id"] == admin.id

    # Idempotent
    response = client.delete(f"/api/products/{product.id}", headers=auth_headers)
    assert response.status_code == 200

    listing = client.get("/api/products", headers=auth_headers).get_json()
    assert listing["count"] == 0
    listing = client.get("/api/products?include_deleted=true", headers=auth_headers).get_json()
    assert listing["count"] == 1

    response = client.post(f"/api/products/{product.id}/reactivate", headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()["is_active"] is True

    response = client.post(f"/api/products/{product.id}/reactivate", headers=auth_headers)
    assert response.status_code == 409
    assert response.get_json()["code"] == "InvalidLifecycleStateError"


def test_product_hard_delete_in_use_is_409(client, auth_headers, product, customer, db_session):
    response = client.post(
        "/api/orders",
        json={"customer_id": customer.id, "items": [{"product_id": product.id, "quantity": 2}]},
        headers=auth_headers,
    )
    assert response.status_code == 201

    usage = client.get(f"/api/products/{product.id}/usage", headers=auth_headers).get_json()
    assert usage == {
        "product_id": product.id,
        "order_item_count": 1,
        "can_hard_delete": False,
        "is_deleted": False,
        "is_active": True,
    }

    response = client.delete(f"/api/products/{product.id}?hard=true", headers=auth_headers)
    assert response.status_code == 409
    assert response.get_json()["code"] == "EntityInUseError"
    assert response.get_json()["reference_count"] == 1
    assert db_session.query(Product).filter_by(id=product.id).count() == 1


def test_product_hard_delete_unused(client, auth_headers, product, db_session):
    product_id = product.id
    response = client.delete(f"/api/products/{product_id}?hard=true", headers=auth_headers)
    assert response.status_code == 200
    assert db_session.query(Product).filter_by(id=product_id).count() == 0


# ================================================================================
# ORDERS
# ================================================================================

def test_order_snapshot_is_returned(client, auth_headers, product, customer):
    response = client.post(
        "/api/orders",
        json={"customer_id": customer.id, "items": [{"product_id": product.id}], "notes": "gift wrap"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    order = response.get_json()

    client.patch(f"/api/products/{product.id}", json={"name": "Ly B"}, headers=auth_headers)

    fetched = client.get(f"/api/orders/{order['id']}", headers=auth_headers).get_json()
    snapshot = fetched["items"][0]["product_snapshot"]
    assert snapshot["name"] == "Ly A"
    assert snapshot["attributes"]["capacity"] == "350ml"
    assert fetched["notes"] == "gift wrap"


def test_order_status_and_notes_update(client, auth_headers, product, customer):
    order = client.post(
        "/api/orders",
        json={"customer_id": customer.id, "items": [{"product_id": product.id}]},
        headers=auth_headers,
    ).get_json()
    snapshot = order["items"][0]["product_snapshot"]

    response = client.patch(
        f"/api/orders/{order['id']}", json={"status": "CONFIRMED", "notes": "leave at door"}, headers=auth_headers
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "CONFIRMED"
    assert body["notes"] == "leave at door"
    assert body["items"][0]["product_snapshot"] == snapshot

    response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "CANCELLED"}, headers=auth_headers)
    assert response.status_code == 200

    response = client.patch(f"/api/orders/{order['id']}/status", json={"status": "SHIPPED"}, headers=auth_headers)
    assert response.status_code == 409
    assert response.get_json()["code"] == "OrderStatusError"

    response = client.patch(f"/api/orders/{order['id']}", json={"status": "LOST"}, headers=auth_headers)
    assert response.status_code == 400
    response = client.patch(f"/api/orders/{order['id']}", json={"items": []}, headers=auth_headers)
    assert response.status_code == 400
    response = client.patch(f"/api/orders/{order['id']}/status", json={}, headers=auth_headers)
    assert response.status_code == 400
    response = client.patch("/api/orders/999999", json={"notes": "x"}, headers=auth_headers)
    assert response.status_code == 404

    listing = client.get("/api/orders?status=cancelled", headers=auth_headers).get_json()
    assert [o["id"] for o in listing["items"]] == [order["id"]]


def test_order_validation(client, auth_headers, customer, product):
    response = client.post("/api/orders", json={"customer_id": customer.id, "items": []}, headers=auth_headers)
    assert response.status_code == 400

    response = client.post(
        "/api/orders",
        json={"customer_id": customer.id, "items": [{"product_id": 999999}]},
        headers=auth_headers,
    )
    assert response.status_code == 404


# ================================================================================
# CUSTOMERS / PHONES
# ================================================================================

def test_customer_with_first_phone(client, auth_headers):
    response = client.post(
        "/api/customers",
        json={"full_name": "Le Van C", "email": "C@Shop.test", "phone_number": "0909 000 111"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    body = response.get_json()
    assert body["email"] == "c@shop.test"
    assert body["main_phone"] == "0909000111"
    assert body["phones"][0]["is_main"] is True


def test_phone_endpoints_keep_single_main(client, auth_headers, customer):
    base = f"/api/customers/{customer.id}/phones"
    p1 = client.post(base, json={"phone_number": "0901000001"}, headers=auth_headers).get_json()
    p2 = client.post(base, json={"phone_number": "0901000002"}, headers=auth_headers).get_json()
    assert p1["is_main"] is True
    assert p2["is_main"] is False

    response = client.post(f"{base}/{p2['id']}/set-main", headers=auth_headers)
    assert response.status_code == 200

    phones = client.get(base, headers=auth_headers).get_json()["items"]
    assert [p["id"] for p in phones if p["is_main"]] == [p2["id"]]

    response = client.delete(f"{base}/{p2['id']}", headers=auth_headers)
    assert response.status_code == 200
    phones = client.get(base, headers=auth_headers).get_json()["items"]
    assert [(p["id"], p["is_main"]) for p in phones] == [(p1["id"], True)]

    response = client.delete(f"{base}/{p1['id']}", headers=auth_headers)
    assert response.status_code == 409
    assert response.get_json()["code"] == "LastItemRemovalForbiddenError"

    response = client.patch(f"{base}/{p1['id']}", json={"is_main": False}, headers=auth_headers)
    assert response.status_code == 409


def test_phone_duplicate_and_missing_owner(client, auth_headers, customer):
    base = f"/api/customers/{customer.id}/phones"
    client.post(base, json={"phone_number": "0901000001"}, headers=auth_headers)

    response = client.post(base, json={"phone_number": "090-100-0001"}, headers=auth_headers)
    assert response.status_code == 409

    response = client.post("/api/customers/999999/phones", json={"phone_number": "0901"}, headers=auth_headers)
    assert response.status_code == 404
    assert response.get_json()["code"] == "OwnerNotFoundError"
