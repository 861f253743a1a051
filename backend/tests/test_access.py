from datetime import datetime

from fuel_balance.domain import Admin, Regular, User, UserRole
from fuel_balance.services.access import can_modify, viewer_for, visible_records
from fuel_balance.services.calculator import build_refuel, build_trip

RECORDS = [
    build_trip("u1", "2024-05-01", 0, 10, 10),
    build_trip("u2", "2024-05-01", 0, 20, 10),
    build_trip("u1", "2024-05-02", 10, 30, 10),
]


def test_viewer_for_maps_roles() -> None:
    now = datetime(2024, 5, 1)
    assert viewer_for(User(id="a", username="boss", role=UserRole.main, created_at=now)) == Admin(user_id="a")
    assert viewer_for(User(id="b", username="drv", role=UserRole.regular, created_at=now)) == Regular(user_id="b")


def test_admin_sees_everything() -> None:
    assert visible_records(Admin(user_id="u9"), RECORDS) == RECORDS


def test_regular_sees_only_own_records() -> None:
    visible = visible_records(Regular(user_id="u1"), RECORDS)
    assert len(visible) == 2
    assert all(r in RECORDS for r in visible)
    assert all(r.user_id == "u1" for r in visible)
    assert visible_records(Regular(user_id="nobody"), RECORDS) == []


def test_filter_applies_to_refuels_too() -> None:
    refuels = [build_refuel("u1", "2024-05-01", 10), build_refuel("u2", "2024-05-01", 20)]
    assert [r.amount for r in visible_records(Regular(user_id="u2"), refuels)] == [20]


def test_can_modify_owner_or_admin() -> None:
    record = RECORDS[1]
    assert can_modify(Regular(user_id="u2"), record)
    assert not can_modify(Regular(user_id="u1"), record)
    assert can_modify(Admin(user_id="u1"), record)
