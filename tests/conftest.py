import os

os.environ.setdefault("SECRET_KEY", "test-secret")

import mongomock
import pytest
from fastapi.testclient import TestClient

import mailer
from database import create_document, ensure_indexes, get_db
from main import app
from security import create_access_token, get_password_hash
from storage import LocalAssetStorage, get_storage


@pytest.fixture
def mongo():
    database = mongomock.MongoClient().backoffice
    ensure_indexes(database)
    return database


@pytest.fixture
def asset_storage(tmp_path):
    return LocalAssetStorage(str(tmp_path / "media"), "/media", "http://testserver")


@pytest.fixture
def client(mongo, asset_storage):
    app.dependency_overrides[get_db] = lambda: mongo
    app.dependency_overrides[get_storage] = lambda: asset_storage
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sent(monkeypatch):
    """Collect notifications instead of talking to SMTP."""
    outbox = []

    def fake_send(notification):
        outbox.append(notification)
        return True

    monkeypatch.setattr(mailer, "send_notification", fake_send)
    return outbox


def make_user(database, email, role="User", is_active=True, password="secret123"):
    return create_document(database, "user", {
        "name": email.split("@")[0].title(),
        "email": email,
        "password": get_password_hash(password),
        "phone": None,
        "role": role,
        "is_active": is_active,
    })


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user['_id'])})}"}


@pytest.fixture
def admin(mongo):
    return make_user(mongo, "admin@example.com", role="Admin")


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


@pytest.fixture
def user_headers(mongo):
    return auth_header(make_user(mongo, "shopper@example.com"))


@pytest.fixture
def catalog(client, admin_headers):
    """A brand, a category with one subcategory and the ids needed to create products."""
    brand = client.post("/api/brand", json={"name": "Acme"}, headers=admin_headers).json()["brand"]
    category = client.post("/api/category", json={"name": "Pumps"}, headers=admin_headers).json()["category"]
    sub = client.post(
        "/api/subcategory", json={"name": "Centrifugal", "category": category["id"]}, headers=admin_headers
    ).json()["sub_category"]
    return {"brand": brand["id"], "category": category["id"], "sub_category": sub["id"]}


@pytest.fixture
def make_product(client, admin_headers, catalog):
    def _make(name="Hydro 100", sku="HYD-100", **fields):
        body = {
            "name": name,
            "description": "Stainless centrifugal pump",
            "price": 1200,
            "sku": sku,
            **catalog,
            **fields,
        }
        response = client.post("/api/products", json=body, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["product"]
    return _make
