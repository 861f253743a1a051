from typing import Iterable, Sequence

from ..domain import Balance, RefuelRecord, TripRecord, User, UserSummary
from .aggregator import filter_by_month, total_cost, total_refuel_amount


def consumption_ratio(trips_cost: float, refuel_total: float) -> float:
    """Share of the refuel budget consumed, unclamped. 0 when nothing was refuelled."""
    if refuel_total <= 0:
        return 0.0
    return trips_cost / refuel_total


def compute_balance(
    trips: Iterable[TripRecord],
    refuels: Iterable[RefuelRecord],
    month: int,
    year: int,
) -> Balance:
    """Refuel total minus trip cost for one calendar month.

    Callers pass records the viewer is entitled to; no filtering by owner
    happens here. A positive balance is fuel paid for but not yet consumed.
    """
    monthly_trips_cost = total_cost(filter_by_month(trips, month, year))
    monthly_refuel_total = total_refuel_amount(filter_by_month(refuels, month, year))
    ratio = consumption_ratio(monthly_trips_cost, monthly_refuel_total)
    return Balance(
        month=month,
        year=year,
        monthly_trips_cost=monthly_trips_cost,
        monthly_refuel_total=monthly_refuel_total,
        balance=monthly_refuel_total - monthly_trips_cost,
        consumption_ratio=min(max(ratio, 0.0), 1.0),
        consumption_percent=ratio * 100,
    )


def summarize_users(
    users: Iterable[User],
    trips: Sequence[TripRecord],
    refuels: Sequence[RefuelRecord],
    month: int,
    year: int,
) -> list[UserSummary]:
    summaries: list[UserSummary] = []
    for user in users:
        result = compute_balance(
            [t for t in trips if t.user_id == user.id],
            [r for r in refuels if r.user_id == user.id],
            month,
            year,
        )
        summaries.append(
            UserSummary(
                user=user,
                total_spent=result.monthly_trips_cost,
                total_refueled=result.monthly_refuel_total,
                balance=result.balance,
            )
        )
    return summaries
