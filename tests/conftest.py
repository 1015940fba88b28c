import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import database
from database import create_document, get_db
from main import app


@pytest.fixture
def db():
    mongo = mongomock.MongoClient()["phonestore_test"]
    database.ensure_indexes(mongo)
    return mongo


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def register(client, name="Alice", email="alice@example.com", password="secret123"):
    res = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert res.status_code == 201, res.text
    return res.json()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user(client):
    return register(client)


@pytest.fixture
def user_headers(user):
    return bearer(user["token"])


@pytest.fixture
def admin(client, db):
    data = register(client, name="Admin", email="admin@example.com", password="admin123")
    db["user"].update_one({"_id": ObjectId(data["id"])}, {"$set": {"role": "admin"}})
    return data


@pytest.fixture
def admin_headers(admin):
    return bearer(admin["token"])


def insert_product(db, **fields):
    doc = {
        "name": "Phone",
        "brand": "Generic",
        "category": "Smartphone",
        "description": "A phone",
        "price": 100.0,
        "countInStock": 5,
        "outOfStock": False,
        "rating": 0.0,
        "numReviews": 0,
        "reviews": [],
        "isFeatured": False,
        "isNewArrival": False,
        "tags": [],
    }
    doc.update(fields)
    return create_document(db, "product", doc)
