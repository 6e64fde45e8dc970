from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import database
from auth import create_access_token, get_password_hash
from main import app

PASSWORD = "secret123"
_password_hash = None


def password_hash():
    global _password_hash
    if _password_hash is None:
        _password_hash = get_password_hash(PASSWORD)
    return _password_hash


@pytest.fixture
def db():
    test_db = mongomock.MongoClient(tz_aware=True)["storefront_test"]
    database.ensure_indexes(test_db)
    return test_db


@pytest.fixture
def client(db):
    app.dependency_overrides[database.get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def bearer(user_id, role="user", **kwargs):
    return {"Authorization": f"Bearer {create_access_token(user_id, role, **kwargs)}"}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="user", email=None, addresses=None):
        counter["n"] += 1
        doc = {
            "name": f"User {counter['n']}",
            "email": email or f"user{counter['n']}@shop.com",
            "password_hash": password_hash(),
            "role": role,
            "addresses": addresses if addresses is not None else [{
                "id": str(ObjectId()),
                "street": "1 Main St",
                "city": "Springfield",
                "state": "IL",
                "country": "US",
                "zip_code": "62701",
            }],
            "created_at": datetime.now(timezone.utc),
        }
        user_id = str(db["user"].insert_one(doc).inserted_id)
        return user_id, doc

    return _make


@pytest.fixture
def user(make_user):
    user_id, doc = make_user()
    return {"id": user_id, "address_id": doc["addresses"][0]["id"], "headers": bearer(user_id)}


@pytest.fixture
def admin(make_user):
    admin_id, _ = make_user(role="admin")
    return {"id": admin_id, "headers": bearer(admin_id, "admin")}


@pytest.fixture
def category(db):
    cat_id = str(db["category"].insert_one({"name": "Electronics", "description": "Gadgets"}).inserted_id)
    sub_id = str(db["subcategory"].insert_one({
        "name": "Phones", "description": "Mobile phones", "major_category": cat_id,
    }).inserted_id)
    return {"id": cat_id, "sub_id": sub_id}


@pytest.fixture
def make_product(db, category):
    def _make(name="Widget", price=100.0, stock=5, **extra):
        doc = {
            "name": name,
            "description": f"{name} description",
            "price": price,
            "stock": stock,
            "is_bestseller": False,
            "avg_rating": 0,
            "image_url": f"https://img.shop.com/{name}.png",
            "major_category": category["id"],
            "sub_category": category["sub_id"],
            "created_at": datetime.now(timezone.utc),
        }
        doc.update(extra)
        return str(db["product"].insert_one(doc).inserted_id)

    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", discount_type="percentage", discount_amount=10, minimum_amount=50,
              usage_limit=100, used_count=0, active=True, expiry_date=None):
        doc = {
            "code": code,
            "description": f"{code} coupon",
            "discount_type": discount_type,
            "discount_amount": discount_amount,
            "minimum_amount": minimum_amount,
            "usage_limit": usage_limit,
            "used_count": used_count,
            "active": active,
            "expiry_date": expiry_date or datetime.now(timezone.utc) + timedelta(days=30),
            "created_at": datetime.now(timezone.utc),
        }
        return str(db["coupon"].insert_one(doc).inserted_id)

    return _make


def product_stock(db, product_id):
    return db["product"].find_one({"_id": ObjectId(product_id)})["stock"]
