import pytest

from fuel_balance.errors import InvalidAmount, InvalidFuelPrice, InvalidRange
from fuel_balance.services.calculator import (
    DISTANCE_PER_LITER,
    build_refuel,
    build_trip,
    next_start_odometer,
    trip_cost,
    trip_distance,
    validate_fuel_price,
)


@pytest.mark.parametrize(
    "start,end,price",
    [(100, 160, 10), (0, 120, 10), (5000, 5001, 12.25), (12.5, 40.75, 9.5)],
)
def test_trip_cost_follows_distance_over_twelve_formula(start, end, price) -> None:
    cost = trip_cost(start, end, price)
    assert cost == pytest.approx(((end - start) / 12) * price)
    assert cost >= 0


def test_distance_per_liter_is_fixed_at_twelve() -> None:
    assert DISTANCE_PER_LITER == 12
    assert trip_cost(100, 160, 10) == pytest.approx(50.0)


@pytest.mark.parametrize("start,end", [(100, 100), (160, 100), (0, 0), (10, -5)])
def test_non_increasing_odometer_is_rejected(start, end) -> None:
    with pytest.raises(InvalidRange):
        trip_cost(start, end, 10)
    with pytest.raises(InvalidRange):
        build_trip("u1", "2024-05-01", start, end, 10)


def test_invalid_range_is_a_value_error_with_readings() -> None:
    with pytest.raises(ValueError) as excinfo:
        trip_distance(50, 20)
    assert excinfo.value.start_odometer == 50
    assert excinfo.value.end_odometer == 20


def test_negative_price_is_rejected() -> None:
    with pytest.raises(InvalidFuelPrice):
        trip_cost(0, 12, -1)


def test_zero_price_gives_zero_cost() -> None:
    assert trip_cost(0, 12, 0) == 0


@pytest.mark.parametrize("price", [0, -3.5, float("nan"), float("inf")])
def test_validate_fuel_price_requires_positive(price) -> None:
    with pytest.raises(InvalidFuelPrice):
        validate_fuel_price(price)
    assert validate_fuel_price(13.0) == 13.0


def test_build_trip_snapshots_price_and_stores_unrounded_cost() -> None:
    trip = build_trip("u1", "2024-05-01", 0, 10, 12.25)
    assert trip.user_id == "u1"
    assert trip.price_per_liter == 12.25
    assert trip.daily_price == pytest.approx(10 / 12 * 12.25)
    assert trip.daily_price != round(trip.daily_price, 2)
    assert trip.distance == 10
    assert trip.id


@pytest.mark.parametrize("amount", [0, -10, float("nan"), float("inf")])
def test_refuel_requires_positive_amount(amount) -> None:
    with pytest.raises(InvalidAmount):
        build_refuel("u1", "2024-05-01", amount)


def test_build_refuel_keeps_optional_liters() -> None:
    refuel = build_refuel("u1", "2024-05-01", 200, liters=16.3)
    assert refuel.amount == 200
    assert refuel.liters == 16.3
    assert build_refuel("u1", "2024-05-01", 50).liters is None


def test_next_start_odometer_uses_latest_trip_of_user() -> None:
    trips = [
        build_trip("u2", "2024-05-03", 900, 950, 10),
        build_trip("u1", "2024-05-02", 160, 210, 10),
        build_trip("u1", "2024-05-01", 100, 160, 10),
    ]
    assert next_start_odometer(trips, "u1") == 210
    assert next_start_odometer(trips, "u2") == 950
    assert next_start_odometer(trips, "u3") == 0


@pytest.mark.parametrize("start,end", [(0, float("inf")), (float("inf"), float("inf")), (0, float("nan"))])
def test_non_finite_odometer_is_rejected(start, end) -> None:
    with pytest.raises(InvalidRange):
        trip_distance(start, end)


@pytest.mark.parametrize("price", [float("nan"), float("inf")])
def test_non_finite_price_never_yields_a_cost(price) -> None:
    with pytest.raises(InvalidFuelPrice):
        trip_cost(0, 12, price)
