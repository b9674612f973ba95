from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Iterator, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Expense, ExpenseCategory
from periods import (
    MonthRange,
    add_months,
    month_key,
    month_range,
    month_span,
)
from schemas import ExpenseIn, ExpenseValidationError

logger = logging.getLogger(__name__)

# Truck filter values meaning "every truck".
ALL_TRUCKS = {"", "todos", "all"}
MONTH_MODE_ALL = "ALL"


class ExpenseNotFound(ValueError):
    pass


class ExpenseStorageError(RuntimeError):
    pass


@contextmanager
def storage_errors(session: Session, action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("storage_error: action=%s", action)
        message = str(getattr(exc, "orig", None) or exc)
        raise ExpenseStorageError(message) from exc


@dataclass
class ExpenseFilters:
    month: Optional[MonthRange] = None
    truck_plate: Optional[str] = None


def normalize_truck_filter(truck: Optional[str]) -> Optional[str]:
    if truck is None or truck.strip().lower() in ALL_TRUCKS:
        return None
    return truck.strip().upper()


def build_filters(
    month: Optional[str] = None,
    truck: Optional[str] = None,
    mode: Optional[str] = None,
) -> ExpenseFilters:
    """Turn raw query parameters into filters; raises MonthValidationError."""
    month_window = None
    if month and (mode or "").strip().upper() != MONTH_MODE_ALL:
        month_window = month_range(month)
    return ExpenseFilters(month=month_window, truck_plate=normalize_truck_filter(truck))


def _require_fleet_code(fleet_code: Optional[str]) -> str:
    clean = (fleet_code or "").strip()
    if not clean:
        raise ExpenseValidationError("fleetCode", "fleetCode is required")
    return clean


@dataclass(frozen=True)
class MonthlyPoint:
    month: str
    total: Decimal


def _totals_by_month(rows: Iterable[tuple[date, Decimal]]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for day, amount in rows:
        key = month_key(day)
        totals[key] = totals.get(key, Decimal("0")) + Decimal(amount)
    return totals


def _fill_months(months: list[date], totals: dict[str, Decimal]) -> list[MonthlyPoint]:
    return [
        MonthlyPoint(month=month_key(m), total=totals.get(month_key(m), Decimal("0")))
        for m in months
    ]


def build_monthly_series(
    records: Iterable[tuple[date, Decimal]],
) -> list[MonthlyPoint]:
    """Gap-filled per-month totals over ``(date, amount)`` pairs.

    Covers every calendar month between the earliest and latest date, with a
    zero total for months without records. Input order does not matter.
    """
    rows = list(records)
    if not rows:
        return []
    first = min(day for day, _ in rows)
    last = max(day for day, _ in rows)
    months = month_span(first, last)
    window_end = add_months(months[-1], 1)
    in_window = [(day, amount) for day, amount in rows if months[0] <= day < window_end]
    return _fill_months(months, _totals_by_month(in_window))


class ExpenseService:
    def __init__(self, session: Session, fleet_code: str) -> None:
        self.session = session
        self.fleet_code = _require_fleet_code(fleet_code)

    def _scoped(self):
        return select(Expense).where(Expense.fleet_code == self.fleet_code)

    def create(self, data: ExpenseIn) -> Expense:
        expense = Expense(
            fleet_code=self.fleet_code,
            date=data.date,
            truck_plate=data.truck_plate,
            km=data.km,
            category=data.category,
            amount=data.amount,
            liters=data.liters if data.category == ExpenseCategory.fuel else None,
            invoice_number=data.invoice_number,
            note=data.note,
        )
        with storage_errors(self.session, "create"):
            self.session.add(expense)
            self.session.commit()
            self.session.refresh(expense)
        logger.info(
            "expense_created: fleet=%s id=%s truck=%s category=%s",
            self.fleet_code,
            expense.id,
            expense.truck_plate,
            expense.category.value,
        )
        return expense

    def get(self, expense_id: str) -> Expense:
        with storage_errors(self.session, "get"):
            expense = self.session.scalar(
                self._scoped().where(Expense.id == expense_id)
            )
        if not expense:
            raise ExpenseNotFound("Expense not found")
        return expense

    def update(self, expense_id: str, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        expense.date = data.date
        expense.truck_plate = data.truck_plate
        expense.km = data.km
        expense.category = data.category
        expense.amount = data.amount
        expense.liters = data.liters if data.category == ExpenseCategory.fuel else None
        expense.invoice_number = data.invoice_number
        expense.note = data.note
        with storage_errors(self.session, "update"):
            self.session.commit()
            self.session.refresh(expense)
        logger.info("expense_updated: fleet=%s id=%s", self.fleet_code, expense.id)
        return expense

    def delete(self, expense_id: str) -> None:
        """Delete one expense of this fleet.

        Deleting an id that is missing, or that belongs to another fleet, is
        a silent no-op so callers cannot probe other tenants' records.
        """
        with storage_errors(self.session, "delete"):
            result = self.session.execute(
                delete(Expense).where(
                    Expense.id == expense_id,
                    Expense.fleet_code == self.fleet_code,
                )
            )
            self.session.commit()
        logger.info(
            "expense_deleted: fleet=%s id=%s rows=%s",
            self.fleet_code,
            expense_id,
            result.rowcount,
        )

    def list(self, filters: Optional[ExpenseFilters] = None) -> list[Expense]:
        filters = filters or ExpenseFilters()
        stmt = self._scoped().order_by(Expense.date.desc(), Expense.created_at.desc())
        if filters.truck_plate:
            stmt = stmt.where(Expense.truck_plate == filters.truck_plate)
        if filters.month:
            stmt = stmt.where(
                Expense.date >= filters.month.start,
                Expense.date < filters.month.end,
            )
        with storage_errors(self.session, "list"):
            return list(self.session.scalars(stmt).all())

    def known_months(self) -> list[str]:
        with storage_errors(self.session, "known_months"):
            days = self.session.scalars(
                select(Expense.date)
                .where(Expense.fleet_code == self.fleet_code)
                .distinct()
            ).all()
        return sorted({month_key(d) for d in days}, reverse=True)

    def plates(self) -> list[str]:
        with storage_errors(self.session, "plates"):
            plates = self.session.scalars(
                select(Expense.truck_plate)
                .where(Expense.fleet_code == self.fleet_code)
                .distinct()
            ).all()
        return sorted(plates)


class InsightsService:
    def __init__(self, session: Session, fleet_code: str) -> None:
        self.session = session
        self.fleet_code = _require_fleet_code(fleet_code)

    def monthly_series(self, truck_plate: Optional[str] = None) -> list[MonthlyPoint]:
        conditions = [Expense.fleet_code == self.fleet_code]
        if truck_plate:
            conditions.append(Expense.truck_plate == truck_plate)

        with storage_errors(self.session, "monthly_series"):
            first, last = self.session.execute(
                select(func.min(Expense.date), func.max(Expense.date)).where(
                    *conditions
                )
            ).one()
            if first is None or last is None:
                return []

            months = month_span(first, last)
            window_end = add_months(months[-1], 1)
            rows = self.session.execute(
                select(Expense.date, Expense.amount).where(
                    *conditions,
                    Expense.date >= months[0],
                    Expense.date < window_end,
                )
            ).all()

        return _fill_months(months, _totals_by_month((r[0], r[1]) for r in rows))


@dataclass
class TruckTotal:
    truck: str
    total: Decimal


@dataclass
class FleetSummary:
    totals: dict[str, Decimal] = field(default_factory=dict)
    by_truck: list[TruckTotal] = field(default_factory=list)
    truck_total: Optional[Decimal] = None
    plates: list[str] = field(default_factory=list)
    liters: Decimal = Decimal("0")


class MetricsService:
    def __init__(self, session: Session, fleet_code: str) -> None:
        self.session = session
        self.fleet_code = _require_fleet_code(fleet_code)
        self.expenses = ExpenseService(session, self.fleet_code)

    def summary(self, filters: Optional[ExpenseFilters] = None) -> FleetSummary:
        """Dashboard card and chart figures.

        Category totals and liters honour both filters. The per-truck
        breakdown only honours the month window so the chart keeps showing
        every truck while one is selected.
        """
        filters = filters or ExpenseFilters()
        window = self.expenses.list(ExpenseFilters(month=filters.month))

        per_truck: dict[str, Decimal] = {}
        for expense in window:
            per_truck[expense.truck_plate] = per_truck.get(
                expense.truck_plate, Decimal("0")
            ) + Decimal(expense.amount)

        selected = [
            e
            for e in window
            if not filters.truck_plate or e.truck_plate == filters.truck_plate
        ]
        totals = {category.value: Decimal("0") for category in ExpenseCategory}
        liters = Decimal("0")
        for expense in selected:
            totals[expense.category.value] += Decimal(expense.amount)
            if expense.category == ExpenseCategory.fuel and expense.liters is not None:
                liters += Decimal(expense.liters)

        by_truck = sorted(
            (TruckTotal(truck=plate, total=total) for plate, total in per_truck.items()),
            key=lambda item: (-item.total, item.truck),
        )
        truck_total = None
        if filters.truck_plate:
            truck_total = per_truck.get(filters.truck_plate, Decimal("0"))

        return FleetSummary(
            totals=totals,
            by_truck=by_truck,
            truck_total=truck_total,
            plates=self.expenses.plates(),
            liters=liters,
        )
