class InvalidRange(ValueError):
    """Trip end odometer is not strictly greater than its start."""

    def __init__(self, start_odometer: float, end_odometer: float) -> None:
        self.start_odometer = start_odometer
        self.end_odometer = end_odometer
        super().__init__(
            f"endOdometer ({end_odometer}) must be greater than startOdometer ({start_odometer})"
        )


class InvalidAmount(ValueError):
    """Refuel amount is zero or negative."""

    def __init__(self, amount: float) -> None:
        self.amount = amount
        super().__init__(f"amount must be > 0, got {amount}")


class InvalidFuelPrice(ValueError):
    def __init__(self, price: float) -> None:
        self.price = price
        super().__init__(f"fuel price must be > 0, got {price}")
