from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import UserRole


class ApiErrorDetail(BaseModel):
    field: str
    message: str


class ApiErrorPayload(BaseModel):
    code: str
    message: str
    details: list[ApiErrorDetail] = Field(default_factory=list)


class ApiErrorResponse(BaseModel):
    error: ApiErrorPayload


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: str


def _clean_username(value: str) -> str:
    v = value.strip()
    if not v:
        raise ValueError("username must not be blank")
    return v


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=80)
    password: str = Field(min_length=1, max_length=128)
    rememberMe: bool = False

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        return _clean_username(value)


class UserResponse(BaseModel):
    id: str
    username: str
    role: UserRole
    createdAt: datetime


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=80)
    password: str = Field(min_length=1, max_length=128)
    role: UserRole = UserRole.regular

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        return _clean_username(value)


class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=1, max_length=80)
    password: Optional[str] = Field(default=None, min_length=1, max_length=128)
    role: Optional[UserRole] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _clean_username(value)


class FuelPriceResponse(BaseModel):
    price: float


class FuelPriceUpdate(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)
    price: float


class TripCreate(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)
    date: date
    startOdometer: float = Field(ge=0)
    endOdometer: float = Field(ge=0)


class TripResponse(BaseModel):
    id: str
    userId: str
    date: str
    startOdometer: float
    endOdometer: float
    distance: float
    pricePerLiter: float
    dailyPrice: float


class NextStartResponse(BaseModel):
    startOdometer: float


class RefuelCreate(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)
    date: date
    amount: float = Field(gt=0)
    liters: Optional[float] = Field(default=None, ge=0)


class RefuelResponse(BaseModel):
    id: str
    userId: str
    date: str
    amount: float
    liters: Optional[float] = None


class StatisticsResponse(BaseModel):
    totalDistance: float
    totalCost: float
    averageDailyPrice: float
    tripsCount: int
    totalRefuelAmount: float


class BalanceResponse(BaseModel):
    month: int
    year: int
    monthlyTripsCost: float
    monthlyRefuelTotal: float
    balance: float
    consumptionRatio: float
    consumptionPercent: float
    status: str


class UserSummaryResponse(BaseModel):
    user: UserResponse
    totalSpent: float
    totalRefueled: float
    balance: float
    status: str


class AccountSummaryResponse(BaseModel):
    month: int
    year: int
    users: list[UserSummaryResponse]


class BackupImportResponse(BaseModel):
    replaced: bool
    counts: dict[str, int]
