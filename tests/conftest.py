"""
Pytest configuration and fixtures.
Every test gets a fresh in-memory MongoDB injected through the get_db dependency.
"""
import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes, get_db
from main import app


def booking_payload(**overrides):
    payload = {
        "guestName": "Ada Lovelace",
        "email": "ada@example.com",
        "phoneNumber": "+44 20 7946 0000",
        "checkIn": "2024-06-01",
        "checkOut": "2024-06-05",
        "roomType": "standard",
        "numberOfGuests": 2,
        "totalAmount": 480.0,
        "specialRequests": "Late arrival",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def db():
    database = mongomock.MongoClient()["hotel_booking_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_token(client):
    client.post("/admin/setup")
    response = client.post("/admin/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    return response.json()["token"]


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def user_auth(client):
    response = client.post(
        "/users/register",
        json={"username": "ada", "email": "ada@example.com", "password": "s3cret"},
    )
    assert response.status_code == 201
    data = response.json()
    return {"headers": {"Authorization": f"Bearer {data['token']}"}, "user": data["user"]}


@pytest.fixture
def make_booking():
    return booking_payload
