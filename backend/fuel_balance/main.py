from datetime import date
from typing import Any

from fastapi import Cookie, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .auth_utils import create_session, drop_session, drop_user_sessions, session_user_id
from .config import settings
from .domain import Balance, RefuelRecord, Statistics, TripRecord, User, UserRole, UserSummary
from .logging_utils import get_logger
from .persistence import get_persistence
from .schemas import (
    AccountSummaryResponse,
    ApiErrorDetail,
    ApiErrorPayload,
    ApiErrorResponse,
    AuthResponse,
    BackupImportResponse,
    BalanceResponse,
    FuelPriceResponse,
    FuelPriceUpdate,
    HealthResponse,
    LoginRequest,
    NextStartResponse,
    RefuelCreate,
    RefuelResponse,
    StatisticsResponse,
    TripCreate,
    TripResponse,
    UserCreate,
    UserResponse,
    UserSummaryResponse,
    UserUpdate,
)
from .services.access import can_modify, viewer_for, visible_records
from .services.aggregator import compute_statistics
from .services.balance import compute_balance, summarize_users
from .services.calculator import build_refuel, build_trip, next_start_odometer, validate_fuel_price
from .services.reports import driver_detail_csv, drivers_summary_csv

LOGGER = get_logger(__name__)

app = FastAPI(
    title="Fuel Balance API",
    version="0.1.0",
    description="Trips, refuels and monthly fuel balance for a small team of drivers.",
)

persistence = get_persistence()
SESSION_COOKIE_NAME = "fb_session"
PUBLIC_API = {"/api/v1/health", "/api/v1/auth/login"}


def _extract_token_from_request(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth:
        parts = auth.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1].strip()
    return request.cookies.get(SESSION_COOKIE_NAME)


def build_error_response(details: list[ApiErrorDetail], message: str = "Invalid request payload") -> JSONResponse:
    payload = ApiErrorResponse(
        error=ApiErrorPayload(code="VALIDATION_ERROR", message=message, details=details)
    )
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=payload.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: list[ApiErrorDetail] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item != "body")
        details.append(ApiErrorDetail(field=loc or "body", message=err.get("msg", "validation error")))
    return build_error_response(details)


@app.exception_handler(ValueError)
async def value_error_exception_handler(request: Request, exc: ValueError) -> JSONResponse:
    return build_error_response([ApiErrorDetail(field="body", message=str(exc))], message=str(exc))


@app.middleware("http")
async def api_auth_middleware(request: Request, call_next):
    path = request.url.path
    if path.startswith("/api/v1") and path not in PUBLIC_API:
        token = _extract_token_from_request(request)
        if not session_user_id(token):
            return JSONResponse(status_code=401, content={"detail": "authentication required"})
    return await call_next(request)


def bootstrap_admin() -> User | None:
    """Create the first main account when the user table is empty."""
    if persistence.list_users():
        return None
    user = persistence.create_user(settings.bootstrap_username, settings.bootstrap_password, UserRole.main)
    LOGGER.info("Created bootstrap account %s", user.username)
    return user


@app.on_event("startup")
async def on_startup() -> None:
    bootstrap_admin()


def _token_from_header(authorization: str | None) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="missing Authorization header")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="invalid Authorization header")
    return parts[1].strip()


def _require_user(authorization: str | None = None, session_token: str | None = None) -> User:
    token = session_token
    if authorization:
        token = _token_from_header(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="missing session token")
    user_id = session_user_id(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="invalid or expired token")
    user = persistence.get_user(user_id)
    if user is None:
        drop_session(token)
        raise HTTPException(status_code=401, detail="user not found")
    return user


def _require_admin(authorization: str | None = None, session_token: str | None = None) -> User:
    user = _require_user(authorization, session_token)
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="main account required")
    return user


def _period(month: int | None, year: int | None) -> tuple[int, int]:
    today = date.today()
    return month or today.month, year or today.year


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, username=user.username, role=user.role, createdAt=user.created_at)


def _trip_response(trip: TripRecord) -> TripResponse:
    return TripResponse(
        id=trip.id,
        userId=trip.user_id,
        date=trip.date,
        startOdometer=trip.start_odometer,
        endOdometer=trip.end_odometer,
        distance=trip.distance,
        pricePerLiter=trip.price_per_liter,
        dailyPrice=trip.daily_price,
    )


def _refuel_response(refuel: RefuelRecord) -> RefuelResponse:
    return RefuelResponse(
        id=refuel.id,
        userId=refuel.user_id,
        date=refuel.date,
        amount=refuel.amount,
        liters=refuel.liters,
    )


def _statistics_response(stats: Statistics) -> StatisticsResponse:
    return StatisticsResponse(
        totalDistance=stats.total_distance,
        totalCost=stats.total_cost,
        averageDailyPrice=stats.average_daily_price,
        tripsCount=stats.trips_count,
        totalRefuelAmount=stats.total_refuel_amount,
    )


def _balance_response(result: Balance) -> BalanceResponse:
    return BalanceResponse(
        month=result.month,
        year=result.year,
        monthlyTripsCost=result.monthly_trips_cost,
        monthlyRefuelTotal=result.monthly_refuel_total,
        balance=result.balance,
        consumptionRatio=result.consumption_ratio,
        consumptionPercent=result.consumption_percent,
        status=result.status,
    )


def _summary_response(summary: UserSummary) -> UserSummaryResponse:
    return UserSummaryResponse(
        user=_user_response(summary.user),
        totalSpent=summary.total_spent,
        totalRefueled=summary.total_refueled,
        balance=summary.balance,
        status=summary.status,
    )


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/api/v1/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.post("/api/v1/auth/login", response_model=AuthResponse)
async def auth_login(payload: LoginRequest, response: Response) -> AuthResponse:
    user = persistence.authenticate_user(payload.username, payload.password)
    if user is None:
        LOGGER.warning("Rejected login for %s", payload.username)
        raise HTTPException(status_code=401, detail="invalid username or password")
    token = create_session(user.id)
    if payload.rememberMe:
        response.set_cookie(SESSION_COOKIE_NAME, token, httponly=True, samesite="lax", secure=False, max_age=60 * 60 * 24 * 30)
    else:
        response.set_cookie(SESSION_COOKIE_NAME, token, httponly=True, samesite="lax", secure=False)
    return AuthResponse(token=token, user=_user_response(user))


@app.get("/api/v1/auth/me", response_model=AuthResponse)
async def auth_me(authorization: str | None = Header(default=None), session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME)) -> AuthResponse:
    user = _require_user(authorization, session_token)
    token = _token_from_header(authorization) if authorization else session_token
    return AuthResponse(token=token, user=_user_response(user))


@app.post("/api/v1/auth/logout")
async def auth_logout(
    response: Response,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    token = _token_from_header(authorization) if authorization else session_token
    drop_session(token)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"ok": True}


@app.get("/api/v1/users", response_model=list[UserResponse])
async def list_users(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[UserResponse]:
    _require_admin(authorization, session_token)
    return [_user_response(u) for u in persistence.list_users()]


@app.post("/api/v1/users", response_model=UserResponse, status_code=201)
async def create_user(
    payload: UserCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> UserResponse:
    admin = _require_admin(authorization, session_token)
    user = persistence.create_user(payload.username, payload.password, payload.role)
    LOGGER.info("%s created %s account %s", admin.username, user.role.value, user.username)
    return _user_response(user)


@app.put("/api/v1/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    payload: UserUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> UserResponse:
    current = _require_user(authorization, session_token)
    if not current.is_admin and current.id != user_id:
        raise HTTPException(status_code=403, detail="main account required")
    if current.id == user_id and payload.role is not None and payload.role is not current.role:
        raise HTTPException(status_code=403, detail="cannot change own role")
    user = persistence.update_user(user_id, payload.username, payload.password, payload.role)
    LOGGER.info("%s updated account %s", current.username, user.id)
    return _user_response(user)


@app.delete("/api/v1/users/{user_id}")
async def delete_user(
    user_id: str,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    admin = _require_admin(authorization, session_token)
    if admin.id == user_id:
        raise HTTPException(status_code=400, detail="cannot delete the signed-in account")
    persistence.delete_user(user_id)
    drop_user_sessions(user_id)
    LOGGER.info("%s deleted account %s with all its records", admin.username, user_id)
    return {"deleted": True}


@app.get("/api/v1/settings/fuel-price", response_model=FuelPriceResponse)
async def get_fuel_price(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> FuelPriceResponse:
    _require_user(authorization, session_token)
    return FuelPriceResponse(price=persistence.get_fuel_price())


@app.put("/api/v1/settings/fuel-price", response_model=FuelPriceResponse)
async def update_fuel_price(
    payload: FuelPriceUpdate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> FuelPriceResponse:
    admin = _require_admin(authorization, session_token)
    price = persistence.set_fuel_price(validate_fuel_price(payload.price))
    LOGGER.info("%s set the fuel price to %s", admin.username, price)
    return FuelPriceResponse(price=price)


@app.get("/api/v1/trips", response_model=list[TripResponse])
async def list_trips(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[TripResponse]:
    user = _require_user(authorization, session_token)
    trips = visible_records(viewer_for(user), persistence.list_trips())
    return [_trip_response(t) for t in trips]


@app.get("/api/v1/trips/next-start", response_model=NextStartResponse)
async def get_next_start(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> NextStartResponse:
    user = _require_user(authorization, session_token)
    return NextStartResponse(startOdometer=next_start_odometer(persistence.list_trips(), user.id))


@app.post("/api/v1/trips", response_model=TripResponse, status_code=201)
async def create_trip(
    payload: TripCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> TripResponse:
    user = _require_user(authorization, session_token)
    trip = build_trip(
        user_id=user.id,
        date=payload.date.isoformat(),
        start_odometer=payload.startOdometer,
        end_odometer=payload.endOdometer,
        price_per_liter=persistence.get_fuel_price(),
    )
    persistence.create_trip(trip)
    LOGGER.info("Trip %s recorded for %s (%.1f distance)", trip.id, user.username, trip.distance)
    return _trip_response(trip)


@app.delete("/api/v1/trips/{trip_id}")
async def delete_trip(
    trip_id: str,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    user = _require_user(authorization, session_token)
    trip = persistence.get_trip(trip_id)
    if trip is None:
        raise HTTPException(status_code=404, detail="trip not found")
    if not can_modify(viewer_for(user), trip):
        raise HTTPException(status_code=403, detail="not allowed to delete this trip")
    persistence.delete_trip(trip_id)
    LOGGER.info("%s deleted trip %s", user.username, trip_id)
    return {"deleted": True}


@app.get("/api/v1/refuels", response_model=list[RefuelResponse])
async def list_refuels(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> list[RefuelResponse]:
    user = _require_user(authorization, session_token)
    refuels = visible_records(viewer_for(user), persistence.list_refuels())
    return [_refuel_response(r) for r in refuels]


@app.post("/api/v1/refuels", response_model=RefuelResponse, status_code=201)
async def create_refuel(
    payload: RefuelCreate,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> RefuelResponse:
    user = _require_user(authorization, session_token)
    refuel = build_refuel(
        user_id=user.id,
        date=payload.date.isoformat(),
        amount=payload.amount,
        liters=payload.liters,
    )
    persistence.create_refuel(refuel)
    LOGGER.info("Refuel %s recorded for %s", refuel.id, user.username)
    return _refuel_response(refuel)


@app.delete("/api/v1/refuels/{refuel_id}")
async def delete_refuel(
    refuel_id: str,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, bool]:
    user = _require_user(authorization, session_token)
    refuel = persistence.get_refuel(refuel_id)
    if refuel is None:
        raise HTTPException(status_code=404, detail="refuel not found")
    if not can_modify(viewer_for(user), refuel):
        raise HTTPException(status_code=403, detail="not allowed to delete this refuel")
    persistence.delete_refuel(refuel_id)
    LOGGER.info("%s deleted refuel %s", user.username, refuel_id)
    return {"deleted": True}


@app.get("/api/v1/stats", response_model=StatisticsResponse)
async def get_statistics(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> StatisticsResponse:
    user = _require_user(authorization, session_token)
    viewer = viewer_for(user)
    # Lifetime totals, unlike the month-filtered report and account summary.
    stats = compute_statistics(
        visible_records(viewer, persistence.list_trips()),
        visible_records(viewer, persistence.list_refuels()),
    )
    return _statistics_response(stats)


@app.get("/api/v1/reports/monthly", response_model=BalanceResponse)
async def get_monthly_report(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=1970, le=9999),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> BalanceResponse:
    user = _require_user(authorization, session_token)
    viewer = viewer_for(user)
    month, year = _period(month, year)
    result = compute_balance(
        visible_records(viewer, persistence.list_trips()),
        visible_records(viewer, persistence.list_refuels()),
        month,
        year,
    )
    return _balance_response(result)


@app.get("/api/v1/admin/summary", response_model=AccountSummaryResponse)
async def get_account_summary(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=1970, le=9999),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> AccountSummaryResponse:
    _require_admin(authorization, session_token)
    month, year = _period(month, year)
    summaries = summarize_users(persistence.list_users(), persistence.list_trips(), persistence.list_refuels(), month, year)
    return AccountSummaryResponse(month=month, year=year, users=[_summary_response(s) for s in summaries])


@app.get("/api/v1/admin/export/summary.csv")
async def export_summary_csv(
    month: int | None = Query(default=None, ge=1, le=12),
    year: int | None = Query(default=None, ge=1970, le=9999),
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> Response:
    _require_admin(authorization, session_token)
    month, year = _period(month, year)
    summaries = summarize_users(persistence.list_users(), persistence.list_trips(), persistence.list_refuels(), month, year)
    return _csv_response(drivers_summary_csv(summaries, month, year), f"drivers-summary-{month}-{year}.csv")


@app.get("/api/v1/admin/export/users/{user_id}.csv")
async def export_user_csv(
    user_id: str,
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> Response:
    _require_admin(authorization, session_token)
    user = persistence.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="user not found")
    trips = [t for t in persistence.list_trips() if t.user_id == user.id]
    refuels = [r for r in persistence.list_refuels() if r.user_id == user.id]
    return _csv_response(driver_detail_csv(user, trips, refuels), f"driver-{user.id}.csv")


@app.get("/api/v1/admin/backup/export")
async def export_backup(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> Any:
    _require_admin(authorization, session_token)
    return jsonable_encoder(persistence.export_backup())


@app.post("/api/v1/admin/backup/import", response_model=BackupImportResponse)
async def import_backup(
    payload: dict[str, Any],
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> BackupImportResponse:
    admin = _require_admin(authorization, session_token)
    counts = persistence.import_backup(payload)
    LOGGER.info("%s restored a backup: %s", admin.username, counts)
    return BackupImportResponse(replaced=True, counts=counts)


@app.get("/api/v1/debug/state")
async def debug_state(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict[str, int]:
    _require_admin(authorization, session_token)
    return persistence.debug_counts()
