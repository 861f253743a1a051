from datetime import datetime

from fuel_balance.domain import User, UserRole, UserSummary
from fuel_balance.services.calculator import build_refuel, build_trip
from fuel_balance.services.reports import BOM, driver_detail_csv, drivers_summary_csv, money

SAMIR = User(id="u1", username="samir", role=UserRole.regular, created_at=datetime(2024, 5, 1))


def test_money_rounds_to_two_places() -> None:
    assert money(10.208333) == "10.21"
    assert money(-50) == "-50.00"


def test_drivers_summary_csv() -> None:
    summaries = [
        UserSummary(user=SAMIR, total_spent=100.0, total_refueled=200.0, balance=100.0),
        UserSummary(
            user=User(id="u2", username="mona", role=UserRole.regular, created_at=datetime(2024, 5, 1)),
            total_spent=50.0,
            total_refueled=0.0,
            balance=-50.0,
        ),
    ]
    content = drivers_summary_csv(summaries, 5, 2024)
    assert content.startswith(BOM)
    lines = content[len(BOM):].splitlines()
    assert lines[0] == "Drivers account summary - month 5 year 2024"
    assert lines[1] == "driver,total refueled,total consumed,balance,status"
    assert lines[2] == "samir,200.00,100.00,100.00,surplus"
    assert lines[3] == "mona,0.00,50.00,-50.00,deficit"


def test_driver_detail_csv_lists_trips_then_refuels() -> None:
    trips = [build_trip("u1", "2024-05-10", 100, 160, 10), build_trip("u1", "2024-05-11", 160, 170, 12.25)]
    refuels = [build_refuel("u1", "2024-05-12", 200, liters=16.5), build_refuel("u1", "2024-05-13", 50)]
    lines = driver_detail_csv(SAMIR, trips, refuels)[len(BOM):].splitlines()

    assert lines[0] == "Detailed log for driver: samir"
    assert lines[1] == "Trips"
    assert lines[3] == "2024-05-10,100,160,60,10,50.00"
    assert lines[4] == "2024-05-11,160,170,10,12.25,10.21"
    assert lines[5] == ""
    assert lines[6] == "Refuels"
    assert lines[8] == "2024-05-12,200,16.5"
    assert lines[9] == "2024-05-13,50,-"
