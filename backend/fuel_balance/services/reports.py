"""CSV exports for spreadsheet users.

Files start with a UTF-8 byte order mark so spreadsheet tools pick the right
encoding for non-latin driver names.
"""

import csv
import io
from typing import Iterable, Optional

from ..domain import RefuelRecord, TripRecord, User, UserSummary

BOM = "\ufeff"


def money(value: float) -> str:
    return f"{value:.2f}"


def _number(value: float) -> str:
    return f"{value:g}"


def drivers_summary_csv(summaries: Iterable[UserSummary], month: int, year: int) -> str:
    buffer = io.StringIO()
    buffer.write(BOM)
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([f"Drivers account summary - month {month} year {year}"])
    writer.writerow(["driver", "total refueled", "total consumed", "balance", "status"])
    for summary in summaries:
        writer.writerow(
            [
                summary.user.username,
                money(summary.total_refueled),
                money(summary.total_spent),
                money(summary.balance),
                summary.status,
            ]
        )
    return buffer.getvalue()


def driver_detail_csv(user: User, trips: Iterable[TripRecord], refuels: Iterable[RefuelRecord]) -> str:
    buffer = io.StringIO()
    buffer.write(BOM)
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([f"Detailed log for driver: {user.username}"])
    writer.writerow(["Trips"])
    writer.writerow(["date", "start odometer", "end odometer", "distance", "price per liter", "cost"])
    for trip in trips:
        writer.writerow(
            [
                trip.date,
                _number(trip.start_odometer),
                _number(trip.end_odometer),
                _number(trip.distance),
                _number(trip.price_per_liter),
                money(trip.daily_price),
            ]
        )
    writer.writerow([])
    writer.writerow(["Refuels"])
    writer.writerow(["date", "amount", "liters"])
    for refuel in refuels:
        writer.writerow([refuel.date, _number(refuel.amount), _liters(refuel.liters)])
    return buffer.getvalue()


def _liters(value: Optional[float]) -> str:
    return _number(value) if value else "-"
