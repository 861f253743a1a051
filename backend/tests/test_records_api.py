import pytest
from fastapi.testclient import TestClient

from conftest import add_refuel, add_trip


def test_trip_cost_uses_shared_fuel_price(client: TestClient, admin_headers: dict, driver: dict) -> None:
    price = client.put("/api/v1/settings/fuel-price", json={"price": 10}, headers=admin_headers)
    assert price.status_code == 200

    res = add_trip(client, driver["headers"], 100, 160)
    assert res.status_code == 201
    body = res.json()
    assert body["userId"] == driver["id"]
    assert body["distance"] == 60
    assert body["pricePerLiter"] == 10
    assert body["dailyPrice"] == pytest.approx(50.0)


def test_price_change_does_not_rewrite_existing_trips(client: TestClient, admin_headers: dict, driver: dict) -> None:
    client.put("/api/v1/settings/fuel-price", json={"price": 10}, headers=admin_headers)
    add_trip(client, driver["headers"], 0, 120)
    client.put("/api/v1/settings/fuel-price", json={"price": 20}, headers=admin_headers)
    add_trip(client, driver["headers"], 120, 240, day="2024-05-11")

    trips = client.get("/api/v1/trips", headers=driver["headers"]).json()
    assert [t["dailyPrice"] for t in trips] == [pytest.approx(200.0), pytest.approx(100.0)]


def test_default_fuel_price(client: TestClient, driver: dict) -> None:
    res = client.get("/api/v1/settings/fuel-price", headers=driver["headers"])
    assert res.json()["price"] == pytest.approx(12.25)


def test_only_admin_sets_positive_price(client: TestClient, admin_headers: dict, driver: dict) -> None:
    assert client.put("/api/v1/settings/fuel-price", json={"price": 15}, headers=driver["headers"]).status_code == 403
    bad = client.put("/api/v1/settings/fuel-price", json={"price": 0}, headers=admin_headers)
    assert bad.status_code == 422
    assert bad.json()["error"]["code"] == "VALIDATION_ERROR"


def test_trip_with_non_increasing_odometer_returns_422(client: TestClient, driver: dict) -> None:
    res = add_trip(client, driver["headers"], 160, 160)
    assert res.status_code == 422
    assert "endOdometer" in res.json()["error"]["message"]
    assert client.get("/api/v1/trips", headers=driver["headers"]).json() == []


def test_refuel_amount_must_be_positive(client: TestClient, driver: dict) -> None:
    res = add_refuel(client, driver["headers"], 0)
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


def test_malformed_date_returns_422(client: TestClient, driver: dict) -> None:
    res = client.post(
        "/api/v1/trips",
        json={"date": "10/05/2024", "startOdometer": 0, "endOdometer": 10},
        headers=driver["headers"],
    )
    assert res.status_code == 422


def test_regular_users_only_see_their_own_records(client: TestClient, admin_headers: dict, driver: dict) -> None:
    add_trip(client, admin_headers, 0, 12)
    add_trip(client, driver["headers"], 0, 24)
    add_refuel(client, admin_headers, 80)
    add_refuel(client, driver["headers"], 40, liters=3.2)

    own_trips = client.get("/api/v1/trips", headers=driver["headers"]).json()
    own_refuels = client.get("/api/v1/refuels", headers=driver["headers"]).json()
    assert [t["userId"] for t in own_trips] == [driver["id"]]
    assert [(r["amount"], r["liters"]) for r in own_refuels] == [(40, 3.2)]

    assert len(client.get("/api/v1/trips", headers=admin_headers).json()) == 2
    assert len(client.get("/api/v1/refuels", headers=admin_headers).json()) == 2


def test_delete_rules(client: TestClient, admin_headers: dict, driver: dict) -> None:
    admin_trip = add_trip(client, admin_headers, 0, 12).json()
    own_trip = add_trip(client, driver["headers"], 0, 24).json()
    own_refuel = add_refuel(client, driver["headers"], 40).json()

    assert client.delete(f"/api/v1/trips/{admin_trip['id']}", headers=driver["headers"]).status_code == 403
    assert client.delete(f"/api/v1/trips/{own_trip['id']}", headers=driver["headers"]).status_code == 200
    assert client.delete(f"/api/v1/trips/{own_trip['id']}", headers=driver["headers"]).status_code == 404
    assert client.delete(f"/api/v1/refuels/{own_refuel['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/v1/refuels", headers=driver["headers"]).json() == []


def test_next_start_prefills_from_last_trip(client: TestClient, admin_headers: dict, driver: dict) -> None:
    assert client.get("/api/v1/trips/next-start", headers=driver["headers"]).json() == {"startOdometer": 0}
    add_trip(client, driver["headers"], 100, 160, day="2024-05-01")
    add_trip(client, driver["headers"], 160, 230, day="2024-05-02")
    add_trip(client, admin_headers, 9000, 9100, day="2024-05-03")
    res = client.get("/api/v1/trips/next-start", headers=driver["headers"])
    assert res.json() == {"startOdometer": 230}


def _post_raw(client: TestClient, url: str, body: str, headers: dict, method: str = "POST"):
    return client.request(method, url, content=body, headers={**headers, "Content-Type": "application/json"})


@pytest.mark.parametrize(
    "body",
    [
        '{"date": "2024-05-10", "startOdometer": 0, "endOdometer": 1e400}',
        '{"date": "2024-05-10", "startOdometer": NaN, "endOdometer": 10}',
        '{"date": "2024-05-10", "startOdometer": 0, "endOdometer": Infinity}',
    ],
)
def test_non_finite_trip_readings_return_422(client: TestClient, driver: dict, body: str) -> None:
    res = _post_raw(client, "/api/v1/trips", body, driver["headers"])
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"
    assert client.get("/api/v1/trips", headers=driver["headers"]).json() == []


@pytest.mark.parametrize("body", ['{"date": "2024-05-12", "amount": 1e400}', '{"date": "2024-05-12", "amount": 50, "liters": NaN}'])
def test_non_finite_refuel_values_return_422(client: TestClient, driver: dict, body: str) -> None:
    res = _post_raw(client, "/api/v1/refuels", body, driver["headers"])
    assert res.status_code == 422
    assert client.get("/api/v1/refuels", headers=driver["headers"]).json() == []


@pytest.mark.parametrize("price", ["NaN", "Infinity", "1e400"])
def test_non_finite_fuel_price_is_rejected(client: TestClient, admin_headers: dict, driver: dict, price: str) -> None:
    res = _post_raw(client, "/api/v1/settings/fuel-price", f'{{"price": {price}}}', admin_headers, method="PUT")
    assert res.status_code == 422
    assert client.get("/api/v1/settings/fuel-price", headers=admin_headers).json()["price"] == pytest.approx(12.25)

    add_trip(client, driver["headers"], 0, 120)
    stats = client.get("/api/v1/stats", headers=admin_headers).json()
    assert stats["totalCost"] == pytest.approx(122.5)
