import pytest
from fastapi.testclient import TestClient

from fuel_balance.auth_utils import active_sessions
from fuel_balance.config import settings
from fuel_balance.main import app, bootstrap_admin
from fuel_balance.store import store


@pytest.fixture(autouse=True)
def fresh_store():
    store.reset()
    active_sessions.clear()
    bootstrap_admin()
    yield
    store.reset()
    active_sessions.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def login(client: TestClient, username: str, password: str) -> dict[str, str]:
    res = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert res.status_code == 200, res.text
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def admin_headers(client: TestClient) -> dict[str, str]:
    return login(client, settings.bootstrap_username, settings.bootstrap_password)


@pytest.fixture
def driver(client: TestClient, admin_headers: dict[str, str]) -> dict:
    res = client.post(
        "/api/v1/users",
        json={"username": "samir", "password": "drive123", "role": "regular"},
        headers=admin_headers,
    )
    assert res.status_code == 201
    body = res.json()
    body["headers"] = login(client, "samir", "drive123")
    return body


def add_trip(client: TestClient, headers: dict, start: float, end: float, day: str = "2024-05-10"):
    return client.post(
        "/api/v1/trips",
        json={"date": day, "startOdometer": start, "endOdometer": end},
        headers=headers,
    )


def add_refuel(client: TestClient, headers: dict, amount: float, day: str = "2024-05-12", liters=None):
    return client.post("/api/v1/refuels", json={"date": day, "amount": amount, "liters": liters}, headers=headers)
