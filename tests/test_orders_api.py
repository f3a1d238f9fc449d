# tests/test_orders_api.py
import uuid
from decimal import Decimal

from sqlmodel import Session

from storefront.models.product import Product
from storefront.routers import health as health_router


def _place(client, headers, *lines):
    return client.post(
        "/api/orders",
        json={"items": [{"product_id": str(p.id), "quantity": q} for p, q in lines]},
        headers=headers,
    )


def _stock(engine, product_id) -> int:
    with Session(engine) as session:
        return session.get(Product, product_id).stock


def test_create_order_requires_auth(client, make_product):
    product = make_product()

    resp = _place(client, {}, (product, 1))

    assert resp.status_code == 401


def test_create_order_rejects_empty_and_client_prices(client, user, headers_for, make_product):
    product = make_product()
    auth = headers_for(user)

    empty = client.post("/api/orders", json={"items": []}, headers=auth)
    assert empty.status_code == 400

    priced = client.post(
        "/api/orders",
        json={"items": [{"product_id": str(product.id), "quantity": 1}], "total": "0.01"},
        headers=auth,
    )
    assert priced.status_code == 400
    assert priced.json()["error"] == "VALIDATION_ERROR"


def test_order_lifecycle(client, engine, user, headers_for, make_product):
    product = make_product(price="3.00", stock=5)
    auth = headers_for(user)

    created = _place(client, auth, (product, 3))
    assert created.status_code == 201
    order = created.json()["data"]
    assert order["status"] == "PENDING"
    assert Decimal(order["total"]) == Decimal("9.00")
    assert _stock(engine, product.id) == 2

    fetched = client.get(f"/api/orders/{order['id']}", headers=auth)
    assert fetched.status_code == 200
    assert fetched.json()["data"]["order_no"] == order["order_no"]

    listing = client.get("/api/orders", headers=auth).json()["data"]
    assert listing["pagination"]["total_items"] == 1
    assert listing["orders"][0]["item_count"] == 1

    cancelled = client.put(f"/api/orders/{order['id']}/cancel", headers=auth)
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "CANCELLED"
    assert _stock(engine, product.id) == 5


def test_confirm_payment_then_cancel_is_rejected(client, engine, user, headers_for, make_product):
    product = make_product(stock=5)
    auth = headers_for(user)
    order = _place(client, auth, (product, 3)).json()["data"]

    confirmed = client.put(
        "/api/orders/confirm-payment",
        json={"order_no": order["order_no"], "transaction_id": "txn-42"},
    )
    assert confirmed.status_code == 200
    data = confirmed.json()["data"]
    assert data["status"] == "CONFIRMED"
    assert data["transaction_id"] == "txn-42"
    assert data["payment_timestamp"] is not None

    rejected = client.put(f"/api/orders/{order['id']}/cancel", headers=auth)
    assert rejected.status_code == 400
    assert rejected.json()["error"] == "INVALID_ORDER_STATE"
    assert _stock(engine, product.id) == 2


def test_confirm_payment_unknown_order(client):
    resp = client.put(
        "/api/orders/confirm-payment",
        json={"order_no": "ORD-0-UNKNOWN", "transaction_id": "txn"},
    )

    assert resp.status_code == 404
    assert resp.json()["error"] == "ORDER_NOT_FOUND"


def test_orders_are_private(client, user, other_user, headers_for, make_product):
    product = make_product(stock=5)
    order = _place(client, headers_for(user), (product, 1)).json()["data"]

    peek = client.get(f"/api/orders/{order['id']}", headers=headers_for(other_user))
    cancel = client.put(f"/api/orders/{order['id']}/cancel", headers=headers_for(other_user))

    assert peek.status_code == 404
    assert cancel.status_code == 404


def test_insufficient_stock_on_checkout(client, engine, user, headers_for, make_product):
    product = make_product(stock=2)

    resp = _place(client, headers_for(user), (product, 3))

    assert resp.status_code == 400
    assert resp.json()["error"] == "INSUFFICIENT_STOCK"
    assert _stock(engine, product.id) == 2


def test_status_update_is_admin_only(client, user, admin, headers_for, make_product):
    product = make_product(stock=5)
    order = _place(client, headers_for(user), (product, 1)).json()["data"]

    forbidden = client.put(
        f"/api/orders/{order['id']}/status",
        json={"status": "SHIPPED"},
        headers=headers_for(user),
    )
    assert forbidden.status_code == 403

    invalid = client.put(
        f"/api/orders/{order['id']}/status",
        json={"status": "LOST"},
        headers=headers_for(admin),
    )
    assert invalid.status_code == 400

    updated = client.put(
        f"/api/orders/{order['id']}/status",
        json={"status": "SHIPPED"},
        headers=headers_for(admin),
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["status"] == "SHIPPED"

    missing = client.put(
        f"/api/orders/{uuid.uuid4()}/status",
        json={"status": "SHIPPED"},
        headers=headers_for(admin),
    )
    assert missing.status_code == 404


def test_admin_listing(client, user, other_user, admin, headers_for, make_product):
    product = make_product(price="2.00", stock=10, name="Teapot")
    _place(client, headers_for(user), (product, 1))
    _place(client, headers_for(other_user), (product, 2))

    assert client.get("/api/admin/orders", headers=headers_for(user)).status_code == 403

    resp = client.get(
        "/api/admin/orders",
        params={"user_id": str(other_user.id), "status": "PENDING"},
        headers=headers_for(admin),
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["pagination"]["total_items"] == 1
    summary = data["orders"][0]
    assert summary["user_id"] == str(other_user.id)
    assert summary["items"][0]["product_name"] == "Teapot"

    bad_page = client.get("/api/admin/orders", params={"page": 0}, headers=headers_for(admin))
    assert bad_page.status_code == 400


def test_health(client, monkeypatch):
    ok = client.get("/api/health")
    assert ok.status_code == 200
    assert ok.json()["data"]["database"] == "connected"

    monkeypatch.setattr(health_router, "check_database", lambda: False)
    down = client.get("/api/health")
    assert down.status_code == 503
    assert down.json()["error"] == "DATABASE_UNAVAILABLE"


def test_confirm_payment_for_cancelled_order(client, engine, user, headers_for, make_product):
    product = make_product(stock=5)
    auth = headers_for(user)
    order = _place(client, auth, (product, 3)).json()["data"]
    client.put(f"/api/orders/{order['id']}/cancel", headers=auth)

    resp = client.put(
        "/api/orders/confirm-payment",
        json={"order_no": order["order_no"], "transaction_id": "txn-late"},
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_ORDER_STATE"
    assert client.get(f"/api/orders/{order['id']}", headers=auth).json()["data"]["status"] == "CANCELLED"
    assert _stock(engine, product.id) == 5
