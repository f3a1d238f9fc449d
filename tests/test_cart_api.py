# tests/test_cart_api.py
import uuid
from decimal import Decimal

from storefront.models.user import User

GUEST = {"X-Session-Id": "guest-session-1"}


def test_get_cart_requires_identity(client):
    resp = client.get("/api/cart")

    assert resp.status_code == 401
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "IDENTITY_REQUIRED"


def test_guest_cart_is_created_on_first_access(client):
    resp = client.get("/api/cart", headers=GUEST)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    cart = body["data"]
    assert cart["session_id"] == "guest-session-1"
    assert cart["items"] == []
    assert cart["item_count"] == 0

    again = client.get("/api/cart", headers=GUEST).json()["data"]
    assert again["id"] == cart["id"]


def test_add_item_returns_recalculated_cart(client, make_product):
    product = make_product(price="9.99", stock=10)

    resp = client.post(
        "/api/cart/items",
        json={"product_id": str(product.id), "quantity": 2},
        headers=GUEST,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Item added to cart"
    cart = body["data"]
    assert Decimal(cart["subtotal"]) == Decimal("19.98")
    assert Decimal(cart["tax"]) == Decimal("2.00")
    assert Decimal(cart["total"]) == Decimal("21.98")
    assert cart["item_count"] == 2
    line = cart["items"][0]
    assert line["product"]["category"]["slug"] == "kitchen"
    assert line["product"]["sku"] == product.sku
    assert cart["updated_at"]


def test_add_item_errors(client, make_product):
    product = make_product(stock=1)

    too_many = client.post(
        "/api/cart/items",
        json={"product_id": str(product.id), "quantity": 5},
        headers=GUEST,
    )
    assert too_many.status_code == 400
    assert too_many.json()["error"] == "INSUFFICIENT_STOCK"

    missing = client.post(
        "/api/cart/items",
        json={"product_id": str(uuid.uuid4()), "quantity": 1},
        headers=GUEST,
    )
    assert missing.status_code == 404
    assert missing.json()["error"] == "PRODUCT_NOT_FOUND"

    zero = client.post(
        "/api/cart/items",
        json={"product_id": str(product.id), "quantity": 0},
        headers=GUEST,
    )
    assert zero.status_code == 400
    assert zero.json()["error"] == "VALIDATION_ERROR"


def test_update_and_remove_items(client, make_product):
    product = make_product(stock=10)
    cart = client.post(
        "/api/cart/items",
        json={"product_id": str(product.id), "quantity": 1},
        headers=GUEST,
    ).json()["data"]
    item_id = cart["items"][0]["id"]

    updated = client.put(f"/api/cart/items/{item_id}", json={"quantity": 3}, headers=GUEST)
    assert updated.status_code == 200
    assert updated.json()["data"]["items"][0]["quantity"] == 3

    removed = client.put(f"/api/cart/items/{item_id}", json={"quantity": 0}, headers=GUEST)
    assert removed.status_code == 200
    assert removed.json()["message"] == "Item removed from cart"
    assert removed.json()["data"]["items"] == []

    gone = client.delete(f"/api/cart/items/{item_id}", headers=GUEST)
    assert gone.status_code == 404
    assert gone.json()["error"] == "CART_ITEM_NOT_FOUND"


def test_cannot_touch_another_sessions_item(client, make_product):
    product = make_product(stock=10)
    cart = client.post(
        "/api/cart/items",
        json={"product_id": str(product.id), "quantity": 1},
        headers=GUEST,
    ).json()["data"]
    item_id = cart["items"][0]["id"]

    intruder = {"X-Session-Id": "someone-else"}
    assert client.put(f"/api/cart/items/{item_id}", json={"quantity": 2}, headers=intruder).status_code == 404
    assert client.delete(f"/api/cart/items/{item_id}", headers=intruder).status_code == 404


def test_clear_cart_twice(client, make_product):
    product = make_product(stock=10)
    client.post(
        "/api/cart/items",
        json={"product_id": str(product.id), "quantity": 2},
        headers=GUEST,
    )

    first = client.delete("/api/cart", headers=GUEST)
    second = client.delete("/api/cart", headers=GUEST)

    assert first.status_code == second.status_code == 200
    assert first.json()["data"]["items"] == second.json()["data"]["items"] == []
    assert Decimal(second.json()["data"]["total"]) == Decimal("0")


def test_merge_requires_authentication(client):
    resp = client.post("/api/cart/merge", json={"guest_session_id": "guest-session-1"})

    assert resp.status_code == 401
    assert resp.json()["success"] is False


def test_merge_guest_cart_into_user_cart(client, make_product, user, headers_for):
    product = make_product(stock=10)
    auth = headers_for(user)
    client.post(
        "/api/cart/items",
        json={"product_id": str(product.id), "quantity": 1},
        headers=auth,
    )
    client.post(
        "/api/cart/items",
        json={"product_id": str(product.id), "quantity": 2},
        headers=GUEST,
    )

    resp = client.post(
        "/api/cart/merge",
        json={"guest_session_id": GUEST["X-Session-Id"]},
        headers=auth,
    )

    assert resp.status_code == 200
    merged = resp.json()["data"]
    assert merged["user_id"] == str(user.id)
    assert merged["items"][0]["quantity"] == 3

    # The guest cart is gone; the same session now starts from scratch
    fresh = client.get("/api/cart", headers=GUEST).json()["data"]
    assert fresh["items"] == []


def test_authenticated_user_wins_over_session_header(client, user, headers_for):
    headers = {**headers_for(user), **GUEST}

    cart = client.get("/api/cart", headers=headers).json()["data"]

    assert cart["user_id"] == str(user.id)
    assert cart["session_id"] is None


def test_invalid_token_is_rejected(client):
    resp = client.get("/api/cart", headers={"Authorization": "Bearer not-a-jwt"})

    assert resp.status_code == 401
    assert resp.json()["error"] == "UNAUTHORIZED"


def test_token_for_new_subject_with_taken_email(client, user, headers_for):
    impostor = User(id=uuid.uuid4(), email=user.email, name="impostor")

    resp = client.get("/api/cart", headers=headers_for(impostor))

    assert resp.status_code == 401
    assert resp.json()["error"] == "UNAUTHORIZED"

    # The original account is still usable afterwards
    assert client.get("/api/cart", headers=headers_for(user)).status_code == 200
