import threading

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from auth import create_token, login_limiter
from database import create_document, get_db, to_object_id
from schemas import Category, Product, User

ADDRESS = {
    "fullName": "Jane Doe",
    "address": "12 Market Street",
    "city": "Springfield",
    "state": "IL",
    "postalCode": "62701",
    "country": "US",
    "phone": "+15555550100",
}


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def client(db):
    main.app.dependency_overrides[get_db] = lambda: db
    login_limiter.reset()
    with TestClient(main.app, raise_server_exceptions=False) as c:
        yield c
    main.app.dependency_overrides.clear()


def make_user(db, name="Jane Doe", email="jane@example.com", role="user", password_hash="x"):
    user_id = create_document("user", User(name=name, email=email, password_hash=password_hash, role=role), db)
    return db["user"].find_one({"_id": to_object_id(user_id)})


def make_product(db, **overrides):
    data = {"name": "Widget", "price": 25.0, "category": "Electronics", "stock": 10}
    data.update(overrides)
    product_id = create_document("product", Product(**data), db)
    return db["product"].find_one({"_id": to_object_id(product_id)})


def auth_header(user):
    return {"Authorization": f"Bearer {create_token(user)}"}


@pytest.fixture
def customer(db):
    return make_user(db)


@pytest.fixture
def other_customer(db):
    return make_user(db, name="John Roe", email="john@example.com")


@pytest.fixture
def admin(db):
    return make_user(db, name="Admin", email="admin@example.com", role="admin")


@pytest.fixture
def electronics(db):
    create_document("category", Category(name="Electronics"), db)


@pytest.fixture
def atomic_collections(monkeypatch):
    """
    mongomock does not make single-document writes atomic across threads the way a server does;
    serialize them so concurrency tests exercise our logic rather than the mock.
    """
    lock = threading.RLock()
    for name in ("find_one_and_update", "update_one", "insert_one"):
        original = getattr(mongomock.Collection, name)

        def locked(self, *args, _original=original, **kwargs):
            with lock:
                return _original(self, *args, **kwargs)

        monkeypatch.setattr(mongomock.Collection, name, locked)
