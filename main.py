import logging
from decimal import Decimal
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import SessionLocal, create_schema
from fleet_session import (
    COOKIE_NAME,
    HEADER_NAME,
    FleetContext,
    resolve_fleet_code,
    sign_fleet_code,
)
from models import Expense
from periods import MonthValidationError
from schemas import (
    ExpenseDeleteIn,
    ExpenseIn,
    ExpenseUpdateIn,
    ExpenseValidationError,
    FleetSessionIn,
    validate_payload,
)
from services import (
    ExpenseNotFound,
    ExpenseService,
    ExpenseStorageError,
    InsightsService,
    MetricsService,
    build_filters,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Fleet Expenses", version=APP_VERSION)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    if settings.auto_create_schema:
        create_schema()
        logger.info("schema ensured on startup")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "invalid request"})


@app.exception_handler(ExpenseStorageError)
async def storage_error_handler(request: Request, exc: ExpenseStorageError):
    return JSONResponse(status_code=500, content={"error": str(exc)})


def session_fleet_code(request: Request) -> Optional[str]:
    return resolve_fleet_code(
        None, request.headers.get(HEADER_NAME), request.cookies.get(COOKIE_NAME)
    )


def get_fleet_context(
    request: Request,
    fleet_code: Optional[str] = Query(default=None, alias="fleetCode"),
) -> FleetContext:
    code = resolve_fleet_code(
        fleet_code,
        request.headers.get(HEADER_NAME),
        request.cookies.get(COOKIE_NAME),
    )
    if not code:
        raise HTTPException(status_code=400, detail="fleetCode is required")
    return FleetContext(fleet_code=code)


async def read_json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail="request body must be valid JSON"
        ) from exc
    if not isinstance(body, dict):
        raise HTTPException(
            status_code=400, detail="request body must be a JSON object"
        )
    if not str(body.get("fleetCode") or "").strip():
        fallback = session_fleet_code(request)
        if fallback:
            body["fleetCode"] = fallback
    return body


def _number(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def expense_payload(expense: Expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "fleet_code": expense.fleet_code,
        "date": expense.date.isoformat(),
        "truck_plate": expense.truck_plate,
        "km": _number(expense.km) or 0.0,
        "category": expense.category.value,
        "amount": _number(expense.amount),
        "liters": _number(expense.liters),
        "invoice_number": expense.invoice_number,
        "note": expense.note,
        "created_at": expense.created_at.isoformat(),
        "updated_at": expense.updated_at.isoformat(),
    }


@app.get("/healthz")
def healthz():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/api/expenses")
def api_list_expenses(
    month: Optional[str] = None,
    truck: Optional[str] = None,
    mode: Optional[str] = None,
    group: Optional[str] = None,
    fleet: FleetContext = Depends(get_fleet_context),
    db: Session = Depends(get_db),
):
    try:
        filters = build_filters(month, truck, mode)
    except MonthValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    expenses = ExpenseService(db, fleet.fleet_code)
    months = expenses.known_months()
    if (group or "").strip().lower() == "month":
        series = InsightsService(db, fleet.fleet_code).monthly_series(
            truck_plate=filters.truck_plate
        )
        return {
            "data": [{"month": p.month, "total": float(p.total)} for p in series],
            "months": months,
        }

    return {
        "data": [expense_payload(e) for e in expenses.list(filters)],
        "months": months,
    }


@app.get("/api/expenses/summary")
def api_expense_summary(
    month: Optional[str] = None,
    truck: Optional[str] = None,
    mode: Optional[str] = None,
    fleet: FleetContext = Depends(get_fleet_context),
    db: Session = Depends(get_db),
):
    try:
        filters = build_filters(month, truck, mode)
    except MonthValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    summary = MetricsService(db, fleet.fleet_code).summary(filters)
    return {
        "totals": {k: float(v) for k, v in summary.totals.items()},
        "by_truck": [
            {"truck": item.truck, "total": float(item.total)}
            for item in summary.by_truck
        ],
        "truck_total": _number(summary.truck_total),
        "plates": summary.plates,
        "liters": float(summary.liters),
    }


@app.post("/api/expenses", status_code=201)
async def api_create_expense(request: Request, db: Session = Depends(get_db)):
    body = await read_json_body(request)
    try:
        data = validate_payload(ExpenseIn, body)
    except ExpenseValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

    expense = ExpenseService(db, data.fleet_code).create(data)
    return {"data": expense_payload(expense)}


@app.put("/api/expenses")
async def api_update_expense(request: Request, db: Session = Depends(get_db)):
    body = await read_json_body(request)
    try:
        data = validate_payload(ExpenseUpdateIn, body)
    except ExpenseValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

    try:
        expense = ExpenseService(db, data.fleet_code).update(data.id, data)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"data": expense_payload(expense)}


@app.delete("/api/expenses")
async def api_delete_expense(request: Request, db: Session = Depends(get_db)):
    body = await read_json_body(request)
    try:
        data = validate_payload(ExpenseDeleteIn, body)
    except ExpenseValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

    ExpenseService(db, data.fleet_code).delete(data.id)
    return {"success": True}


@app.post("/api/session")
async def api_open_session(request: Request):
    body = await read_json_body(request)
    try:
        data = validate_payload(FleetSessionIn, body)
    except ExpenseValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

    response = JSONResponse({"fleetCode": data.fleet_code})
    response.set_cookie(
        COOKIE_NAME,
        sign_fleet_code(data.fleet_code),
        max_age=settings.session_max_age_days * 86400,
        httponly=True,
        samesite="lax",
    )
    return response


@app.delete("/api/session")
def api_close_session():
    response = JSONResponse({"success": True})
    response.delete_cookie(COOKIE_NAME)
    return response


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
