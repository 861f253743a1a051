from datetime import date, datetime
from typing import Iterable, Optional, Sequence, TypeVar, Union

from ..domain import RefuelRecord, Statistics, TripRecord
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

Dated = TypeVar("Dated", TripRecord, RefuelRecord)


def total_distance(trips: Iterable[TripRecord]) -> float:
    return sum((t.end_odometer - t.start_odometer for t in trips), 0.0)


def total_cost(trips: Iterable[TripRecord]) -> float:
    return sum((t.daily_price for t in trips), 0.0)


def average_cost(trips: Sequence[TripRecord]) -> float:
    if not trips:
        return 0.0
    return total_cost(trips) / len(trips)


def total_refuel_amount(refuels: Iterable[RefuelRecord]) -> float:
    return sum((r.amount for r in refuels), 0.0)


def parse_record_date(value: Union[str, date, None]) -> Optional[date]:
    """Local calendar date of a stored record date, or None if unparseable.

    Plain ``YYYY-MM-DD`` strings are taken as-is. Timestamps carrying an
    offset are converted to local time first.
    """
    if isinstance(value, datetime):
        return value.astimezone().date() if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return moment.astimezone().date() if moment.tzinfo else moment.date()


def filter_by_month(records: Iterable[Dated], month: int, year: int) -> list[Dated]:
    kept: list[Dated] = []
    for record in records:
        day = parse_record_date(record.date)
        if day is None:
            LOGGER.debug("Skipping record %s with unparseable date %r", record.id, record.date)
            continue
        if day.month == month and day.year == year:
            kept.append(record)
    return kept


def compute_statistics(trips: Sequence[TripRecord], refuels: Sequence[RefuelRecord]) -> Statistics:
    return Statistics(
        total_distance=total_distance(trips),
        total_cost=total_cost(trips),
        average_daily_price=average_cost(trips),
        trips_count=len(trips),
        total_refuel_amount=total_refuel_amount(refuels),
    )
