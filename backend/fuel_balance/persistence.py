from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .auth_utils import hash_password, verify_password
from .config import settings
from .domain import RefuelRecord, TripRecord, User, UserRole
from .logging_utils import get_logger
from .store import FUEL_PRICE_KEY, store

LOGGER = get_logger(__name__)


# Mirrors db/migrations/001_init.sql, including its check constraints.
SCHEMA_STATEMENTS = (
    """
    create table if not exists users (
      id uuid primary key default gen_random_uuid(),
      username text not null,
      password_hash text,
      role text not null default 'regular' check (role in ('main', 'regular')),
      created_at timestamptz not null default now()
    )
    """,
    "create unique index if not exists idx_users_username on users(lower(username))",
    """
    create table if not exists trips (
      id uuid primary key default gen_random_uuid(),
      user_id uuid not null references users(id) on delete cascade,
      date date not null,
      start_odometer double precision not null check (start_odometer >= 0),
      end_odometer double precision not null,
      price_per_liter double precision not null,
      daily_price double precision not null,
      created_at timestamptz not null default clock_timestamp(),
      check (end_odometer > start_odometer)
    )
    """,
    "create index if not exists idx_trips_user on trips(user_id, date desc)",
    """
    create table if not exists refuels (
      id uuid primary key default gen_random_uuid(),
      user_id uuid not null references users(id) on delete cascade,
      date date not null,
      amount double precision not null check (amount > 0),
      liters double precision,
      created_at timestamptz not null default clock_timestamp()
    )
    """,
    "create index if not exists idx_refuels_user on refuels(user_id, date desc)",
    "create table if not exists settings (key text primary key, value text not null)",
)


def _parse_uuid(value: Any) -> UUID:
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=f"not found: {value}") from exc


def _as_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _as_datetime(value: Any) -> datetime:
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    # Naive timestamps are taken as UTC.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class Persistence:
    def list_users(self) -> list[User]:
        raise NotImplementedError

    def get_user(self, user_id: str) -> User | None:
        raise NotImplementedError

    def create_user(self, username: str, password: str, role: UserRole) -> User:
        raise NotImplementedError

    def update_user(self, user_id: str, username: str | None, password: str | None, role: UserRole | None) -> User:
        raise NotImplementedError

    def delete_user(self, user_id: str) -> None:
        raise NotImplementedError

    def authenticate_user(self, username: str, password: str) -> User | None:
        raise NotImplementedError

    def list_trips(self) -> list[TripRecord]:
        raise NotImplementedError

    def get_trip(self, trip_id: str) -> TripRecord | None:
        raise NotImplementedError

    def create_trip(self, trip: TripRecord) -> TripRecord:
        raise NotImplementedError

    def delete_trip(self, trip_id: str) -> None:
        raise NotImplementedError

    def list_refuels(self) -> list[RefuelRecord]:
        raise NotImplementedError

    def get_refuel(self, refuel_id: str) -> RefuelRecord | None:
        raise NotImplementedError

    def create_refuel(self, refuel: RefuelRecord) -> RefuelRecord:
        raise NotImplementedError

    def delete_refuel(self, refuel_id: str) -> None:
        raise NotImplementedError

    def get_fuel_price(self) -> float:
        raise NotImplementedError

    def set_fuel_price(self, price: float) -> float:
        raise NotImplementedError

    def export_backup(self) -> dict[str, Any]:
        raise NotImplementedError

    def import_backup(self, payload: dict[str, Any]) -> dict[str, int]:
        raise NotImplementedError

    def debug_counts(self) -> dict[str, int]:
        raise NotImplementedError


class InMemoryPersistence(Persistence):
    def _username_taken(self, username: str, exclude_id: str | None = None) -> bool:
        lowered = username.lower()
        return any(
            uid != exclude_id and row["username"].lower() == lowered for uid, row in store.users.items()
        )

    def list_users(self) -> list[User]:
        rows = sorted(store.users.values(), key=lambda u: (u["created_at"], u["seq"]))
        return [User.from_row(row) for row in rows]

    def get_user(self, user_id: str) -> User | None:
        row = store.users.get(user_id)
        return User.from_row(row) if row else None

    def create_user(self, username: str, password: str, role: UserRole) -> User:
        if self._username_taken(username):
            raise HTTPException(status_code=409, detail="username already exists")
        user_id = store.make_id()
        row = {
            "id": user_id,
            "username": username,
            "password_hash": hash_password(password),
            "role": role.value,
            "created_at": store.now(),
            "seq": store.next_sequence(),
        }
        store.users[user_id] = row
        return User.from_row(row)

    def update_user(self, user_id: str, username: str | None, password: str | None, role: UserRole | None) -> User:
        row = store.users.get(user_id)
        if row is None:
            raise HTTPException(status_code=404, detail="user not found")
        if username is not None:
            if self._username_taken(username, exclude_id=user_id):
                raise HTTPException(status_code=409, detail="username already exists")
            row["username"] = username
        if password is not None:
            row["password_hash"] = hash_password(password)
        if role is not None:
            row["role"] = role.value
        return User.from_row(row)

    def delete_user(self, user_id: str) -> None:
        if user_id not in store.users:
            raise HTTPException(status_code=404, detail="user not found")
        del store.users[user_id]
        store.trips = {k: v for k, v in store.trips.items() if v["user_id"] != user_id}
        store.refuels = {k: v for k, v in store.refuels.items() if v["user_id"] != user_id}

    def authenticate_user(self, username: str, password: str) -> User | None:
        lowered = username.lower()
        for row in store.users.values():
            if row["username"].lower() == lowered:
                if verify_password(password, row.get("password_hash")):
                    return User.from_row(row)
                return None
        return None

    def list_trips(self) -> list[TripRecord]:
        rows = sorted(store.trips.values(), key=lambda t: (t["date"], t["seq"]), reverse=True)
        return [TripRecord.from_row(row) for row in rows]

    def get_trip(self, trip_id: str) -> TripRecord | None:
        row = store.trips.get(trip_id)
        return TripRecord.from_row(row) if row else None

    def create_trip(self, trip: TripRecord) -> TripRecord:
        store.trips[trip.id] = {
            "id": trip.id,
            "user_id": trip.user_id,
            "date": trip.date,
            "start_odometer": trip.start_odometer,
            "end_odometer": trip.end_odometer,
            "price_per_liter": trip.price_per_liter,
            "daily_price": trip.daily_price,
            "created_at": store.now(),
            "seq": store.next_sequence(),
        }
        return trip

    def delete_trip(self, trip_id: str) -> None:
        if store.trips.pop(trip_id, None) is None:
            raise HTTPException(status_code=404, detail="trip not found")

    def list_refuels(self) -> list[RefuelRecord]:
        rows = sorted(store.refuels.values(), key=lambda r: (r["date"], r["seq"]), reverse=True)
        return [RefuelRecord.from_row(row) for row in rows]

    def get_refuel(self, refuel_id: str) -> RefuelRecord | None:
        row = store.refuels.get(refuel_id)
        return RefuelRecord.from_row(row) if row else None

    def create_refuel(self, refuel: RefuelRecord) -> RefuelRecord:
        store.refuels[refuel.id] = {
            "id": refuel.id,
            "user_id": refuel.user_id,
            "date": refuel.date,
            "amount": refuel.amount,
            "liters": refuel.liters,
            "created_at": store.now(),
            "seq": store.next_sequence(),
        }
        return refuel

    def delete_refuel(self, refuel_id: str) -> None:
        if store.refuels.pop(refuel_id, None) is None:
            raise HTTPException(status_code=404, detail="refuel not found")

    def get_fuel_price(self) -> float:
        return float(store.settings.get(FUEL_PRICE_KEY, settings.default_fuel_price))

    def set_fuel_price(self, price: float) -> float:
        store.settings[FUEL_PRICE_KEY] = str(price)
        return price

    def debug_counts(self) -> dict[str, int]:
        return {
            "users": len(store.users),
            "trips": len(store.trips),
            "refuels": len(store.refuels),
        }

    def export_backup(self) -> dict[str, Any]:
        def strip(row: dict[str, Any]) -> dict[str, Any]:
            return {k: v for k, v in row.items() if k != "seq"}

        return {
            "meta": {
                "version": 1,
                "exportedAt": datetime.now(timezone.utc).isoformat(),
                "storageBackend": "memory",
            },
            "data": {
                "settings": dict(store.settings),
                "users": [strip(u) for u in store.users.values()],
                "trips": [strip(t) for t in store.trips.values()],
                "refuels": [strip(r) for r in store.refuels.values()],
            },
        }

    def import_backup(self, payload: dict[str, Any]) -> dict[str, int]:
        data = payload.get("data", {})

        def map_by_id(rows: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
            out: dict[str, dict[str, Any]] = {}
            for row in rows:
                row_id = row.get("id")
                if not row_id:
                    continue
                row = {**row, "id": str(row_id), "seq": store.next_sequence()}
                if "user_id" in row:
                    row["user_id"] = str(row["user_id"])
                row["created_at"] = _as_datetime(row.get("created_at") or store.now())
                out[row["id"]] = row
            return out

        store.settings = {str(k): str(v) for k, v in data.get("settings", store.settings).items()}
        store.users = map_by_id(data.get("users", []))
        store.trips = map_by_id(data.get("trips", []))
        store.refuels = map_by_id(data.get("refuels", []))
        return self.debug_counts()


class PostgresPersistence(Persistence):
    def __init__(self, database_url: str) -> None:
        self.engine: Engine = create_engine(database_url, future=True, pool_pre_ping=True)
        self._schema_ready = False

    def _run(self, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(sql), params or {})
                if result.returns_rows:
                    return [dict(row._mapping) for row in result.fetchall()]
                return []
        except SQLAlchemyError as exc:
            LOGGER.error("Postgres query failed: %s", exc.__class__.__name__)
            raise HTTPException(status_code=500, detail=f"postgres error: {exc.__class__.__name__}") from exc

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        for statement in SCHEMA_STATEMENTS:
            self._run(statement)
        self._schema_ready = True

    def _username_taken(self, username: str, exclude_id: UUID | None = None) -> bool:
        rows = self._run(
            "select id from users where lower(username) = lower(:username) limit 1",
            {"username": username},
        )
        return bool(rows) and rows[0]["id"] != exclude_id

    def list_users(self) -> list[User]:
        self._ensure_schema()
        rows = self._run("select id, username, password_hash, role, created_at from users order by created_at")
        return [User.from_row(row) for row in rows]

    def get_user(self, user_id: str) -> User | None:
        self._ensure_schema()
        rows = self._run(
            "select id, username, password_hash, role, created_at from users where id = :id limit 1",
            {"id": _parse_uuid(user_id)},
        )
        return User.from_row(rows[0]) if rows else None

    def create_user(self, username: str, password: str, role: UserRole) -> User:
        self._ensure_schema()
        if self._username_taken(username):
            raise HTTPException(status_code=409, detail="username already exists")
        rows = self._run(
            """
            insert into users (id, username, password_hash, role)
            values (gen_random_uuid(), :username, :password_hash, :role)
            returning id, username, password_hash, role, created_at
            """,
            {"username": username, "password_hash": hash_password(password), "role": role.value},
        )
        return User.from_row(rows[0])

    def update_user(self, user_id: str, username: str | None, password: str | None, role: UserRole | None) -> User:
        current = self.get_user(user_id)
        if current is None:
            raise HTTPException(status_code=404, detail="user not found")
        uid = _parse_uuid(user_id)
        if username is not None and self._username_taken(username, exclude_id=uid):
            raise HTTPException(status_code=409, detail="username already exists")
        rows = self._run(
            """
            update users set
              username = :username,
              password_hash = coalesce(:password_hash, password_hash),
              role = :role
            where id = :id
            returning id, username, password_hash, role, created_at
            """,
            {
                "id": uid,
                "username": username if username is not None else current.username,
                "password_hash": hash_password(password) if password is not None else None,
                "role": (role or current.role).value,
            },
        )
        return User.from_row(rows[0])

    def delete_user(self, user_id: str) -> None:
        self._ensure_schema()
        uid = _parse_uuid(user_id)
        # Explicit deletes keep the cascade even on databases created without FK actions.
        self._run("delete from trips where user_id = :id", {"id": uid})
        self._run("delete from refuels where user_id = :id", {"id": uid})
        rows = self._run("delete from users where id = :id returning id", {"id": uid})
        if not rows:
            raise HTTPException(status_code=404, detail="user not found")

    def authenticate_user(self, username: str, password: str) -> User | None:
        self._ensure_schema()
        rows = self._run(
            """
            select id, username, password_hash, role, created_at
            from users
            where lower(username) = lower(:username)
            limit 1
            """,
            {"username": username},
        )
        if not rows or not verify_password(password, rows[0]["password_hash"]):
            return None
        return User.from_row(rows[0])

    def list_trips(self) -> list[TripRecord]:
        self._ensure_schema()
        rows = self._run("select * from trips order by date desc, created_at desc")
        return [TripRecord.from_row(row) for row in rows]

    def get_trip(self, trip_id: str) -> TripRecord | None:
        self._ensure_schema()
        rows = self._run("select * from trips where id = :id limit 1", {"id": _parse_uuid(trip_id)})
        return TripRecord.from_row(rows[0]) if rows else None

    def create_trip(self, trip: TripRecord) -> TripRecord:
        self._ensure_schema()
        self._run(
            """
            insert into trips (id, user_id, date, start_odometer, end_odometer, price_per_liter, daily_price)
            values (:id, :user_id, :date, :start_odometer, :end_odometer, :price_per_liter, :daily_price)
            """,
            {
                "id": _parse_uuid(trip.id),
                "user_id": _parse_uuid(trip.user_id),
                "date": _as_date(trip.date),
                "start_odometer": trip.start_odometer,
                "end_odometer": trip.end_odometer,
                "price_per_liter": trip.price_per_liter,
                "daily_price": trip.daily_price,
            },
        )
        return trip

    def delete_trip(self, trip_id: str) -> None:
        self._ensure_schema()
        rows = self._run("delete from trips where id = :id returning id", {"id": _parse_uuid(trip_id)})
        if not rows:
            raise HTTPException(status_code=404, detail="trip not found")

    def list_refuels(self) -> list[RefuelRecord]:
        self._ensure_schema()
        rows = self._run("select * from refuels order by date desc, created_at desc")
        return [RefuelRecord.from_row(row) for row in rows]

    def get_refuel(self, refuel_id: str) -> RefuelRecord | None:
        self._ensure_schema()
        rows = self._run("select * from refuels where id = :id limit 1", {"id": _parse_uuid(refuel_id)})
        return RefuelRecord.from_row(rows[0]) if rows else None

    def create_refuel(self, refuel: RefuelRecord) -> RefuelRecord:
        self._ensure_schema()
        self._run(
            """
            insert into refuels (id, user_id, date, amount, liters)
            values (:id, :user_id, :date, :amount, :liters)
            """,
            {
                "id": _parse_uuid(refuel.id),
                "user_id": _parse_uuid(refuel.user_id),
                "date": _as_date(refuel.date),
                "amount": refuel.amount,
                "liters": refuel.liters,
            },
        )
        return refuel

    def delete_refuel(self, refuel_id: str) -> None:
        self._ensure_schema()
        rows = self._run("delete from refuels where id = :id returning id", {"id": _parse_uuid(refuel_id)})
        if not rows:
            raise HTTPException(status_code=404, detail="refuel not found")

    def get_fuel_price(self) -> float:
        self._ensure_schema()
        rows = self._run("select value from settings where key = :key", {"key": FUEL_PRICE_KEY})
        if not rows:
            return settings.default_fuel_price
        return float(rows[0]["value"])

    def set_fuel_price(self, price: float) -> float:
        self._ensure_schema()
        self._run(
            """
            insert into settings (key, value) values (:key, :value)
            on conflict (key) do update set value = excluded.value
            """,
            {"key": FUEL_PRICE_KEY, "value": str(price)},
        )
        return price

    def debug_counts(self) -> dict[str, int]:
        self._ensure_schema()
        rows = self._run(
            """
            select
              (select count(*) from users) as users,
              (select count(*) from trips) as trips,
              (select count(*) from refuels) as refuels
            """
        )
        return {k: int(v) for k, v in rows[0].items()}

    def export_backup(self) -> dict[str, Any]:
        self._ensure_schema()
        return {
            "meta": {
                "version": 1,
                "exportedAt": datetime.now(timezone.utc).isoformat(),
                "storageBackend": "postgres",
            },
            "data": {
                "settings": {row["key"]: row["value"] for row in self._run("select key, value from settings")},
                "users": self._run("select * from users order by created_at"),
                "trips": self._run("select * from trips order by created_at"),
                "refuels": self._run("select * from refuels order by created_at"),
            },
        }

    def import_backup(self, payload: dict[str, Any]) -> dict[str, int]:
        self._ensure_schema()
        data = payload.get("data", {})
        try:
            with self.engine.begin() as conn:
                conn.execute(text("delete from trips"))
                conn.execute(text("delete from refuels"))
                conn.execute(text("delete from users"))
                conn.execute(text("delete from settings"))
                for key, value in data.get("settings", {}).items():
                    conn.execute(
                        text("insert into settings (key, value) values (:key, :value)"),
                        {"key": str(key), "value": str(value)},
                    )
                for row in data.get("users", []):
                    conn.execute(
                        text(
                            """
                            insert into users (id, username, password_hash, role, created_at)
                            values (:id, :username, :password_hash, :role, :created_at)
                            """
                        ),
                        {
                            "id": _parse_uuid(row["id"]),
                            "username": row["username"],
                            "password_hash": row.get("password_hash"),
                            "role": row.get("role", UserRole.regular.value),
                            "created_at": _as_datetime(row.get("created_at") or store.now()),
                        },
                    )
                for row in data.get("trips", []):
                    conn.execute(
                        text(
                            """
                            insert into trips (id, user_id, date, start_odometer, end_odometer, price_per_liter, daily_price)
                            values (:id, :user_id, :date, :start_odometer, :end_odometer, :price_per_liter, :daily_price)
                            """
                        ),
                        {
                            "id": _parse_uuid(row["id"]),
                            "user_id": _parse_uuid(row["user_id"]),
                            "date": _as_date(row["date"]),
                            "start_odometer": row["start_odometer"],
                            "end_odometer": row["end_odometer"],
                            "price_per_liter": row["price_per_liter"],
                            "daily_price": row["daily_price"],
                        },
                    )
                for row in data.get("refuels", []):
                    conn.execute(
                        text(
                            """
                            insert into refuels (id, user_id, date, amount, liters)
                            values (:id, :user_id, :date, :amount, :liters)
                            """
                        ),
                        {
                            "id": _parse_uuid(row["id"]),
                            "user_id": _parse_uuid(row["user_id"]),
                            "date": _as_date(row["date"]),
                            "amount": row["amount"],
                            "liters": row.get("liters"),
                        },
                    )
        except SQLAlchemyError as exc:
            raise HTTPException(status_code=500, detail=f"postgres error: {exc.__class__.__name__}") from exc
        return self.debug_counts()


def get_persistence() -> Persistence:
    if settings.storage_backend == "postgres":
        return PostgresPersistence(settings.database_url)
    return InMemoryPersistence()
