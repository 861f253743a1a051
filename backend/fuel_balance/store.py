from datetime import datetime, timezone
from itertools import count
from uuid import uuid4

from .config import settings

FUEL_PRICE_KEY = "global_fuel_price"


class InMemoryStore:
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.users: dict[str, dict] = {}
        self.trips: dict[str, dict] = {}
        self.refuels: dict[str, dict] = {}
        self.settings: dict[str, str] = {FUEL_PRICE_KEY: str(settings.default_fuel_price)}
        self._sequence = count(1)

    def next_sequence(self) -> int:
        # Tie-breaker for rows written within the same clock tick.
        return next(self._sequence)

    @staticmethod
    def make_id() -> str:
        return str(uuid4())

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)


store = InMemoryStore()
