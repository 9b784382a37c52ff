"""
Test configuration and fixtures.

Provides:
- An in-memory MongoDB (mongomock) injected through ``get_db``
- A mock-mode Drive client injected through ``get_drive``
- Users with bearer tokens and an authenticated TestClient
"""
import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes, get_db
from main import app
from security import create_access_token, hash_password
from storage import DriveClient, get_drive


@pytest.fixture
def db():
    database = mongomock.MongoClient()["brokerage_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def drive():
    return DriveClient()


@pytest.fixture
def client(db, drive):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_drive] = lambda: drive
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, email, role="agent", password="secret123", is_active=True):
    return create_document(db, "user", {
        "name": email.split("@")[0].title(),
        "email": email,
        "password_hash": hash_password(password),
        "role": role,
        "is_active": is_active,
    })


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(str(user['_id']), user['role'])}"}


@pytest.fixture
def agent(db):
    return make_user(db, "agent@test.com")


@pytest.fixture
def manager(db):
    return make_user(db, "manager@test.com", role="manager")


@pytest.fixture
def authed(client, agent):
    client.headers.update(auth_headers(agent))
    return client


@pytest.fixture
def new_client(authed):
    counter = {"n": 0}

    def _create(**overrides):
        counter["n"] += 1
        n = counter["n"]
        body = {
            "name": f"Client {n}",
            "email": f"client{n}@example.com",
            "phone": f"+91-98765400{n:02d}",
            "type": "individual",
        }
        body.update(overrides)
        response = authed.post("/api/clients", json=body)
        assert response.status_code == 201, response.text
        return response.json()["client"]

    return _create


PROPERTY_BODY = {
    "title": "Sea View Apartment",
    "address": "12 Marine Drive, Colaba",
    "city": "Mumbai",
    "zoning": "Residential",
    "type": "Apartment",
    "area": 1000,
    "per_sq_ft_rate": 25000,
    "status": "Available",
}


@pytest.fixture
def new_property(authed, new_client):
    def _create(owner_id=None, **overrides):
        body = dict(PROPERTY_BODY)
        body.update(overrides)
        if owner_id is None:
            owner_id = new_client()["id"]
        body.setdefault("owner_type", "existing")
        body.setdefault("owner", owner_id)
        response = authed.post("/api/properties", json=body)
        assert response.status_code == 201, response.text
        return response.json()["property"]

    return _create
