import math
from typing import Iterable, Optional
from uuid import uuid4

from ..domain import RefuelRecord, TripRecord
from ..errors import InvalidAmount, InvalidFuelPrice, InvalidRange

# Assumed fuel economy: distance units covered per liter.
DISTANCE_PER_LITER = 12


def trip_distance(start_odometer: float, end_odometer: float) -> float:
    distance = end_odometer - start_odometer
    if not math.isfinite(distance) or distance <= 0:
        raise InvalidRange(start_odometer, end_odometer)
    return distance


def trip_cost(start_odometer: float, end_odometer: float, price_per_liter: float) -> float:
    """Cost of a single trip at the given fuel price.

    Raises ``InvalidRange`` when the end reading does not exceed the start
    reading. The result is not rounded.
    """
    distance = trip_distance(start_odometer, end_odometer)
    if not math.isfinite(price_per_liter) or price_per_liter < 0:
        raise InvalidFuelPrice(price_per_liter)
    return (distance / DISTANCE_PER_LITER) * price_per_liter


def validate_fuel_price(price: float) -> float:
    if not math.isfinite(price) or price <= 0:
        raise InvalidFuelPrice(price)
    return price


def build_trip(
    user_id: str,
    date: str,
    start_odometer: float,
    end_odometer: float,
    price_per_liter: float,
    record_id: Optional[str] = None,
) -> TripRecord:
    daily_price = trip_cost(start_odometer, end_odometer, price_per_liter)
    return TripRecord(
        id=record_id or str(uuid4()),
        user_id=user_id,
        date=date,
        start_odometer=start_odometer,
        end_odometer=end_odometer,
        price_per_liter=price_per_liter,
        daily_price=daily_price,
    )


def build_refuel(
    user_id: str,
    date: str,
    amount: float,
    liters: Optional[float] = None,
    record_id: Optional[str] = None,
) -> RefuelRecord:
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount(amount)
    return RefuelRecord(id=record_id or str(uuid4()), user_id=user_id, date=date, amount=amount, liters=liters)


def next_start_odometer(trips: Iterable[TripRecord], user_id: str) -> float:
    """End reading of the user's latest trip, used to pre-fill the next one.

    ``trips`` is expected newest first, as persistence lists them.
    """
    for trip in trips:
        if trip.user_id == user_id:
            return trip.end_odometer
    return 0
