"""Entity shapes shared by persistence, the calculation services and the API.

Records are frozen snapshots: the services only ever read them, and the
persistence layer builds fresh instances from its rows on every load.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


class UserRole(str, Enum):
    main = "main"
    regular = "regular"


@dataclass(frozen=True)
class User:
    id: str
    username: str
    role: UserRole
    created_at: datetime
    password: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.main

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "User":
        return cls(
            id=str(row["id"]),
            username=row["username"],
            role=UserRole(row["role"]),
            created_at=row["created_at"],
            password=row.get("password_hash"),
        )


@dataclass(frozen=True)
class TripRecord:
    id: str
    user_id: str
    date: str
    start_odometer: float
    end_odometer: float
    price_per_liter: float
    daily_price: float

    @property
    def distance(self) -> float:
        return self.end_odometer - self.start_odometer

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TripRecord":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            date=_date_text(row["date"]),
            start_odometer=float(row["start_odometer"]),
            end_odometer=float(row["end_odometer"]),
            price_per_liter=float(row["price_per_liter"]),
            daily_price=float(row["daily_price"]),
        )


@dataclass(frozen=True)
class RefuelRecord:
    id: str
    user_id: str
    date: str
    amount: float
    liters: Optional[float] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RefuelRecord":
        liters = row.get("liters")
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            date=_date_text(row["date"]),
            amount=float(row["amount"]),
            liters=float(liters) if liters is not None else None,
        )


@dataclass(frozen=True)
class Statistics:
    total_distance: float = 0.0
    total_cost: float = 0.0
    average_daily_price: float = 0.0
    trips_count: int = 0
    total_refuel_amount: float = 0.0


@dataclass(frozen=True)
class Balance:
    month: int
    year: int
    monthly_trips_cost: float
    monthly_refuel_total: float
    balance: float
    consumption_ratio: float
    consumption_percent: float

    @property
    def is_surplus(self) -> bool:
        return self.balance >= 0

    @property
    def status(self) -> str:
        return "surplus" if self.is_surplus else "deficit"


@dataclass(frozen=True)
class UserSummary:
    user: User
    total_spent: float
    total_refueled: float
    balance: float

    @property
    def status(self) -> str:
        return "surplus" if self.balance >= 0 else "deficit"


@dataclass(frozen=True)
class Admin:
    user_id: str


@dataclass(frozen=True)
class Regular:
    user_id: str


Viewer = Union[Admin, Regular]


def _date_text(value: Any) -> str:
    # Postgres hands back date objects, the memory store keeps strings.
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
