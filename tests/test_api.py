from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError

import config
import database
import main
from auth import hash_password
from conftest import ADDRESS, auth_header, make_product, make_user


def order_payload(*lines, **overrides):
    body = {
        "orderItems": [{"product": str(p["_id"]), "quantity": q} for p, q in lines],
        "shippingAddress": ADDRESS,
        "paymentMethod": "Cash on Delivery",
    }
    body.update(overrides)
    return body


def test_root_and_config(client):
    assert client.get("/").json()["status"] == "ok"
    cfg = client.get("/config").json()
    assert cfg["taxRate"] == 0.10
    assert "Negotiable" in cfg["paymentMethods"]


def test_request_id_is_echoed(client):
    res = client.get("/", headers={"X-Request-ID": "abc-123"})
    assert res.headers["X-Request-ID"] == "abc-123"
    assert client.get("/").headers["X-Request-ID"]


def test_register_login_me(client):
    res = client.post("/api/auth/register", json={"name": "Ann", "email": "Ann@Example.com", "password": "secret1"})
    assert res.status_code == 201
    assert res.json()["user"]["email"] == "ann@example.com"

    dup = client.post("/api/auth/register", json={"name": "Ann", "email": "ann@example.com", "password": "secret1"})
    assert dup.status_code == 409
    assert dup.json()["error"]["code"] == "conflict"

    login = client.post("/api/auth/login", json={"email": "ann@example.com", "password": "secret1"})
    assert login.status_code == 200
    token = login.json()["token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["name"] == "Ann"


def test_login_is_rate_limited(client, db):
    make_user(db, email="ann@example.com", password_hash=hash_password("secret1"))
    codes = [client.post("/api/auth/login", json={"email": "ann@example.com", "password": "wrong"}).status_code
             for _ in range(6)]
    assert codes[:5] == [401] * 5
    assert codes[5] == 429
    limited = client.post("/api/auth/login", json={"email": "ann@example.com", "password": "secret1"})
    assert limited.status_code == 429
    assert "Retry-After" in limited.headers


def test_missing_and_bad_tokens(client):
    res = client.get("/api/auth/me")
    assert res.status_code == 401
    body = res.json()
    assert body["success"] is False
    assert body["error"]["code"] == "unauthorized"
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Basic abc"}).status_code == 401


def test_product_listing_filters_and_paginates(client, db):
    make_product(db, name="Red Lamp", price=30.0, category="Home", tags=["light"])
    make_product(db, name="Blue Lamp", price=80.0, category="Home")
    make_product(db, name="Phone", price=500.0, category="Electronics")
    make_product(db, name="Hidden", price=10.0, category="Home", isActive=False)

    res = client.get("/api/products", params={"category": "Home", "sort": "price_asc"})
    assert [p["name"] for p in res.json()["products"]] == ["Red Lamp", "Blue Lamp"]

    res = client.get("/api/products", params={"search": "lamp", "maxPrice": 50})
    assert [p["name"] for p in res.json()["products"]] == ["Red Lamp"]

    res = client.get("/api/products", params={"limit": 2, "page": 2, "sort": "name"})
    body = res.json()
    assert [p["name"] for p in body["products"]] == ["Red Lamp"]
    assert body["pagination"] == {"currentPage": 2, "totalPages": 2, "totalItems": 3, "limit": 2,
                                  "hasNextPage": False, "hasPrevPage": True}


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 101}, {"minPrice": -1}, {"sort": "random"}])
def test_product_listing_rejects_bad_params(client, params):
    res = client.get("/api/products", params=params)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "validation_error"


def test_product_detail(client, db):
    product = make_product(db, price=50.0, discount=10, stock=3)
    body = client.get(f"/api/products/{product['_id']}").json()
    assert body["id"] == str(product["_id"])
    assert body["discountedPrice"] == 45.0
    assert body["stockStatus"] == "Low Stock"
    assert client.get("/api/products/not-an-id").status_code == 404
    assert client.get("/api/products/64b7f0f0f0f0f0f0f0f0f0f0").status_code == 404


def test_admin_product_management(client, db, admin, customer, electronics):
    payload = {"name": "Speaker", "price": 99.5, "category": "Electronics", "stock": 4}
    assert client.post("/api/products", json=payload, headers=auth_header(customer)).status_code == 403

    res = client.post("/api/products", json=payload, headers=auth_header(admin))
    assert res.status_code == 201
    product_id = res.json()["id"]
    assert res.json()["sku"].startswith("SKU-")

    bad = client.post("/api/products", json=dict(payload, category="Nope"), headers=auth_header(admin))
    assert bad.status_code == 400

    res = client.put(f"/api/products/{product_id}", json={"price": 89.0}, headers=auth_header(admin))
    assert res.json()["price"] == 89.0

    res = client.post(f"/api/products/{product_id}/restock", json={"quantity": 6}, headers=auth_header(admin))
    assert res.json()["stock"] == 10

    assert client.delete(f"/api/products/{product_id}", headers=auth_header(admin)).json()["deleted"] is True
    assert client.get(f"/api/products/{product_id}").status_code == 404


def test_negative_price_is_a_field_error(client, admin, electronics):
    res = client.post("/api/products", json={"name": "X", "price": -1, "category": "Electronics"},
                      headers=auth_header(admin))
    assert res.status_code == 400
    assert res.json()["error"]["details"][0]["field"] == "price"


def test_reviews(client, db, customer):
    product = make_product(db)
    res = client.post(f"/api/products/{product['_id']}/reviews", json={"rating": 4, "comment": "Solid"},
                      headers=auth_header(customer))
    assert res.status_code == 201
    assert res.json()["numReviews"] == 1
    assert res.json()["rating"] == 4
    again = client.post(f"/api/products/{product['_id']}/reviews", json={"rating": 5, "comment": "Again"},
                        headers=auth_header(customer))
    assert again.status_code == 409


def test_categories(client, admin):
    res = client.post("/api/categories", json={"name": "Books"}, headers=auth_header(admin))
    assert res.status_code == 201
    assert client.post("/api/categories", json={"name": "books"}, headers=auth_header(admin)).status_code == 409
    assert [c["name"] for c in client.get("/api/categories").json()] == ["Books"]


def test_wishlist(client, db, customer):
    a = make_product(db, name="A")
    b = make_product(db, name="B")
    headers = auth_header(customer)
    client.post(f"/api/users/me/wishlist/{a['_id']}", headers=headers)
    client.post(f"/api/users/me/wishlist/{a['_id']}", headers=headers)
    assert client.get("/api/users/me/wishlist", headers=headers).json() == {"wishlist": [str(a["_id"])]}

    res = client.put("/api/users/me/wishlist", json={"wishlist": [str(b["_id"]), str(a["_id"])]}, headers=headers)
    assert res.json()["wishlist"] == [str(b["_id"]), str(a["_id"])]

    res = client.delete(f"/api/users/me/wishlist/{b['_id']}", headers=headers)
    assert res.json()["wishlist"] == [str(a["_id"])]


def test_order_lifecycle_over_http(client, db, customer, admin):
    product = make_product(db, price=20.0, stock=5)

    res = client.post("/api/orders", json=order_payload((product, 2)), headers=auth_header(customer))
    assert res.status_code == 201
    order = res.json()["order"]
    assert order["orderNumber"] == "ORD-" + order["id"][-8:].upper()
    assert order["totalPrice"] == "54.00"
    assert Decimal(order["totalPrice"]) == sum(Decimal(order[k]) for k in ("itemsPrice", "taxPrice", "shippingPrice"))
    oid = order["id"]

    res = client.put(f"/api/orders/{oid}/pay", json={"paymentResult": {"id": "PAY-9", "status": "COMPLETED"}},
                     headers=auth_header(customer))
    assert res.json()["order"]["orderStatus"] == "Processing"

    res = client.put(f"/api/orders/{oid}/status", json={"orderStatus": "Shipped"}, headers=auth_header(customer))
    assert res.status_code == 403

    for status in ("Shipped", "Delivered"):
        res = client.put(f"/api/orders/{oid}/status", json={"orderStatus": status}, headers=auth_header(admin))
        assert res.status_code == 200
        assert res.json()["order"]["orderStatus"] == status

    res = client.put(f"/api/orders/{oid}/status", json={"orderStatus": "Processing"}, headers=auth_header(admin))
    assert res.status_code == 422
    assert res.json()["error"]["details"] == {"from": "Delivered", "to": "Processing"}

    res = client.put(f"/api/orders/{oid}/cancel", headers=auth_header(customer))
    assert res.status_code == 422
    assert db["product"].find_one({"_id": product["_id"]})["stock"] == 3


def test_order_errors_over_http(client, db, customer):
    product = make_product(db, name="Mug", stock=1)
    headers = auth_header(customer)

    res = client.post("/api/orders", json=order_payload(), headers=headers)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "empty_cart"

    res = client.post("/api/orders", json=order_payload((product, 3)), headers=headers)
    assert res.status_code == 422
    assert res.json()["error"]["details"]["items"][0] == {
        "product": str(product["_id"]), "name": "Mug", "requested": 3, "available": 1}

    res = client.post("/api/orders", json=order_payload((product, 1), shippingAddress={"fullName": "Jane"}),
                      headers=headers)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "invalid_address"

    assert client.post("/api/orders", json=order_payload((product, 1))).status_code == 401
    assert db["order"].count_documents({}) == 0


def test_cancel_over_http_restores_stock(client, db, customer, other_customer):
    product = make_product(db, stock=4)
    res = client.post("/api/orders", json=order_payload((product, 4)), headers=auth_header(customer))
    oid = res.json()["order"]["id"]
    assert db["product"].find_one({"_id": product["_id"]})["stock"] == 0

    assert client.get(f"/api/orders/{oid}", headers=auth_header(other_customer)).status_code == 403
    assert client.put(f"/api/orders/{oid}/cancel", headers=auth_header(other_customer)).status_code == 403

    res = client.put(f"/api/orders/{oid}/cancel", json={"reason": "too slow"}, headers=auth_header(customer))
    assert res.status_code == 200
    assert res.json()["order"]["orderStatus"] == "Cancelled"
    assert db["product"].find_one({"_id": product["_id"]})["stock"] == 4


def test_my_orders_and_admin_views(client, db, customer, admin):
    product = make_product(db, stock=10)
    for _ in range(3):
        client.post("/api/orders", json=order_payload((product, 1)), headers=auth_header(customer))

    mine = client.get("/api/orders/my-orders", params={"limit": 2}, headers=auth_header(customer)).json()
    assert len(mine["orders"]) == 2
    assert mine["pagination"]["totalItems"] == 3

    assert client.get("/api/orders", headers=auth_header(customer)).status_code == 403
    listing = client.get("/api/orders", params={"status": "Pending"}, headers=auth_header(admin)).json()
    assert listing["pagination"]["totalItems"] == 3

    stats = client.get("/api/orders/stats/overview", headers=auth_header(admin)).json()
    assert stats["totalOrders"] == 3
    assert len(stats["recentOrders"]) == 3
    assert stats["totalRevenue"] == "0.00"


def test_unexpected_errors_are_generic(client, db, customer, monkeypatch):
    import orders

    def explode(self, *args, **kwargs):
        raise RuntimeError("connection string mongodb://secret")

    monkeypatch.setattr(orders.OrderService, "list_user_orders", explode)
    res = client.get("/api/orders/my-orders", headers=auth_header(customer))
    assert res.status_code == 500
    assert res.json()["error"] == {"code": "internal_error", "message": "Internal server error"}
    assert "secret" not in res.text


def test_stripe_webhook_redelivery_is_accepted(client, db, customer, monkeypatch):
    product = make_product(db, price=20.0, stock=3)
    oid = client.post("/api/orders", json=order_payload((product, 1)), headers=auth_header(customer)).json()["order"]["id"]
    fake_stripe = SimpleNamespace(api_key="sk_test", Event=SimpleNamespace(construct_from=lambda payload, key: payload))
    monkeypatch.setattr(main, "stripe", fake_stripe)
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "")
    event = {"type": "payment_intent.succeeded",
             "data": {"object": {"id": "pi_123", "metadata": {"order_id": oid}}}}

    for _ in range(2):
        res = client.post("/webhooks/stripe", json=event)
        assert res.status_code == 200
        assert res.json() == {"received": True}

    order = client.get(f"/api/orders/{oid}", headers=auth_header(customer)).json()
    assert order["isPaid"] is True
    assert order["paymentResult"]["id"] == "pi_123"
    assert [h["status"] for h in order["statusHistory"]] == ["Pending", "Processing"]


def test_stripe_webhook_with_another_payment_conflicts(client, db, customer, monkeypatch):
    product = make_product(db, stock=3)
    oid = client.post("/api/orders", json=order_payload((product, 1)), headers=auth_header(customer)).json()["order"]["id"]
    monkeypatch.setattr(main, "stripe", SimpleNamespace(
        api_key="sk_test", Event=SimpleNamespace(construct_from=lambda payload, key: payload)))
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "")

    def event(intent_id):
        return {"type": "payment_intent.succeeded",
                "data": {"object": {"id": intent_id, "metadata": {"order_id": oid}}}}

    assert client.post("/webhooks/stripe", json=event("pi_1")).status_code == 200
    assert client.post("/webhooks/stripe", json=event("pi_2")).status_code == 409


def test_startup_builds_indexes(db, monkeypatch):
    monkeypatch.setattr(database, "db", db)
    with TestClient(main.app):
        pass

    assert db["user"].index_information()["email_1"]["unique"] is True
    make_user(db)
    with pytest.raises(DuplicateKeyError):
        make_user(db, name="Twin")


def test_dev_seed_is_off_unless_enabled(client, db, monkeypatch):
    res = client.post("/dev/seed")
    assert res.status_code == 404
    assert db["user"].count_documents({}) == 0

    monkeypatch.setattr(config, "ENABLE_DEV_SEED", True)
    res = client.post("/dev/seed")
    assert res.status_code == 200
    assert res.json()["products"] == 3
    assert db["user"].find_one({"email": "admin@storefront.dev"})["role"] == "admin"


def test_profile_and_password_change(client, db):
    user = make_user(db, password_hash=hash_password("secret1"))
    headers = auth_header(user)

    assert client.get("/api/auth/profile", headers=headers).json()["user"]["email"] == "jane@example.com"

    res = client.put("/api/auth/profile", json={"name": "Janet", "phone": "555-0100", "address": {"city": "Springfield"}},
                     headers=headers)
    assert res.status_code == 200
    assert res.json()["user"]["name"] == "Janet"
    assert res.json()["user"]["address"] == {"city": "Springfield"}

    res = client.put("/api/auth/change-password", json={"currentPassword": "wrong", "newPassword": "secret2"},
                     headers=headers)
    assert res.status_code == 400
    assert res.json()["error"]["details"][0]["field"] == "currentPassword"

    res = client.put("/api/auth/change-password", json={"currentPassword": "secret1", "newPassword": "secret2"},
                     headers=headers)
    assert res.status_code == 200
    assert client.post("/api/auth/login", json={"email": "jane@example.com", "password": "secret1"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "jane@example.com", "password": "secret2"}).status_code == 200


def test_parameters(client, admin, customer):
    body = {"name": "Size", "type": "select", "options": ["S", "M", "L"], "required": True}
    assert client.post("/api/parameters", json=body, headers=auth_header(customer)).status_code == 403

    res = client.post("/api/parameters", json=body, headers=auth_header(admin))
    assert res.status_code == 201
    pid = res.json()["id"]

    bad = client.post("/api/parameters", json={"name": "Weight", "type": "colour"}, headers=auth_header(admin))
    assert bad.status_code == 400
    bad = client.post("/api/parameters", json={"name": "Length", "type": "number", "min": 10, "max": 1},
                      headers=auth_header(admin))
    assert bad.status_code == 400

    res = client.put(f"/api/parameters/{pid}", json={"unit": "EU"}, headers=auth_header(admin))
    assert res.json()["unit"] == "EU"
    assert res.json()["options"] == ["S", "M", "L"]
    assert [p["name"] for p in client.get("/api/parameters").json()] == ["Size"]

    assert client.delete(f"/api/parameters/{pid}", headers=auth_header(admin)).status_code == 200
    assert client.get(f"/api/parameters/{pid}").status_code == 404


def test_platform_reviews(client, customer):
    assert client.post("/api/reviews", json={"comment": "Great store, fast delivery!"}).status_code == 401

    res = client.post("/api/reviews", json={"comment": "   too short    "}, headers=auth_header(customer))
    assert res.status_code == 400

    res = client.post("/api/reviews", json={"comment": "  Great store, fast delivery!  "}, headers=auth_header(customer))
    assert res.status_code == 201
    assert res.json()["review"]["comment"] == "Great store, fast delivery!"
    assert res.json()["review"]["user"] == {"id": str(customer["_id"]), "name": "Jane Doe"}

    reviews = client.get("/api/reviews").json()["reviews"]
    assert len(reviews) == 1
    assert reviews[0]["user"]["name"] == "Jane Doe"


def test_admin_user_directory(client, db, admin, customer, other_customer):
    assert client.get("/api/users", headers=auth_header(customer)).status_code == 403

    listing = client.get("/api/users", params={"search": "roe"}, headers=auth_header(admin)).json()
    assert [u["email"] for u in listing["users"]] == ["john@example.com"]
    assert "password_hash" not in listing["users"][0]

    res = client.put(f"/api/users/{other_customer['_id']}", json={"email": "jane@example.com"}, headers=auth_header(admin))
    assert res.status_code == 409
    res = client.put(f"/api/users/{other_customer['_id']}", json={"role": "owner"}, headers=auth_header(admin))
    assert res.status_code == 400
    res = client.put(f"/api/users/{other_customer['_id']}", json={"phone": "555-0199"}, headers=auth_header(admin))
    assert res.json()["user"]["phone"] == "555-0199"

    res = client.put(f"/api/users/{customer['_id']}/toggle-status", headers=auth_header(admin))
    assert res.json()["user"]["isActive"] is False
    assert client.get("/api/auth/me", headers=auth_header(customer)).status_code == 401
    assert client.put(f"/api/users/{admin['_id']}/toggle-status", headers=auth_header(admin)).status_code == 400

    assert client.delete(f"/api/users/{admin['_id']}", headers=auth_header(admin)).status_code == 400
    assert client.delete(f"/api/users/{other_customer['_id']}", headers=auth_header(admin)).status_code == 200
    assert client.get(f"/api/users/{other_customer['_id']}", headers=auth_header(admin)).status_code == 404


def test_admin_cannot_delete_user_with_orders(client, db, admin, customer):
    product = make_product(db, stock=2)
    client.post("/api/orders", json=order_payload((product, 1)), headers=auth_header(customer))

    res = client.delete(f"/api/users/{customer['_id']}", headers=auth_header(admin))
    assert res.status_code == 409
    assert db["user"].count_documents({"_id": customer["_id"]}) == 1


def test_user_stats_and_create_admin(client, db, admin, customer):
    res = client.post("/api/users/create-admin", json={"name": "Second", "email": "second@example.com",
                                                        "password": "secret1"}, headers=auth_header(admin))
    assert res.status_code == 201
    assert res.json()["user"]["role"] == "admin"

    product = make_product(db, price=30.0, stock=2)
    oid = client.post("/api/orders", json=order_payload((product, 1)), headers=auth_header(customer)).json()["order"]["id"]
    client.put(f"/api/orders/{oid}/payment-status", json={"isPaid": True}, headers=auth_header(admin))

    stats = client.get("/api/users/stats/overview", headers=auth_header(admin)).json()
    assert stats["totalUsers"] == 3
    assert stats["adminUsers"] == 2
    assert stats["regularUsers"] == 1
    assert stats["topCustomers"] == [{"user": str(customer["_id"]), "name": "Jane Doe", "email": "jane@example.com",
                                      "totalSpent": "43.00", "orderCount": 1}]
