from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from database import Base
from models import Expense, ExpenseCategory
from periods import MonthValidationError
from schemas import ExpenseIn, ExpenseValidationError
from services import (
    ExpenseNotFound,
    ExpenseService,
    ExpenseStorageError,
    MetricsService,
    build_filters,
)


def make_session() -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _data(**overrides) -> ExpenseIn:
    base = dict(
        fleet_code="FROTA-001",
        date=date(2024, 1, 15),
        truck_plate="ABC-1234",
        category=ExpenseCategory.fuel,
        amount=Decimal("100"),
        km=Decimal("1000"),
        liters=Decimal("20"),
    )
    base.update(overrides)
    return ExpenseIn(**base)


def test_create_stores_record_for_fleet() -> None:
    session = make_session()
    expense = ExpenseService(session, "FROTA-001").create(_data())

    assert expense.id
    assert expense.fleet_code == "FROTA-001"
    assert expense.amount == Decimal("100")
    assert expense.liters == Decimal("20")
    assert expense.created_at is not None


def test_create_maintenance_never_stores_liters() -> None:
    session = make_session()
    data = _data(category=ExpenseCategory.maintenance, amount=Decimal("10.5"))
    # Bypass validation to check the service guards the column as well.
    data = data.model_copy(update={"liters": Decimal("30")})

    expense = ExpenseService(session, "FROTA-001").create(data)
    assert expense.amount == Decimal("10.5")
    assert expense.liters is None


def test_blank_fleet_code_is_rejected_before_storage() -> None:
    session = make_session()
    with pytest.raises(ExpenseValidationError):
        ExpenseService(session, "  ")


def test_constraint_violation_surfaces_as_storage_error() -> None:
    session = make_session()
    bad = _data().model_copy(update={"amount": Decimal("-5")})

    with pytest.raises(ExpenseStorageError):
        ExpenseService(session, "FROTA-001").create(bad)

    assert session.scalars(select(Expense)).all() == []


def test_update_replaces_every_field() -> None:
    session = make_session()
    service = ExpenseService(session, "FROTA-001")
    expense = service.create(_data(note="old"))

    updated = service.update(
        expense.id,
        _data(
            date=date(2024, 2, 1),
            truck_plate="XYZ-9876",
            category=ExpenseCategory.maintenance,
            amount=Decimal("780.40"),
            km=Decimal("1500"),
            liters=None,
            invoice_number="NF-1",
            note=None,
        ),
    )
    assert updated.id == expense.id
    assert updated.date == date(2024, 2, 1)
    assert updated.truck_plate == "XYZ-9876"
    assert updated.category == ExpenseCategory.maintenance
    assert updated.amount == Decimal("780.40")
    assert updated.liters is None
    assert updated.invoice_number == "NF-1"
    assert updated.note is None


def test_update_from_other_fleet_looks_like_missing_record() -> None:
    session = make_session()
    expense = ExpenseService(session, "FROTA-001").create(_data())
    intruder = ExpenseService(session, "FROTA-002")

    with pytest.raises(ExpenseNotFound) as foreign:
        intruder.update(expense.id, _data(fleet_code="FROTA-002"))
    with pytest.raises(ExpenseNotFound) as missing:
        intruder.update("does-not-exist", _data(fleet_code="FROTA-002"))

    assert str(foreign.value) == str(missing.value)
    assert ExpenseService(session, "FROTA-001").get(expense.id).amount == Decimal("100")


def test_delete_is_scoped_to_fleet() -> None:
    session = make_session()
    owner = ExpenseService(session, "FROTA-001")
    expense = owner.create(_data())

    assert ExpenseService(session, "FROTA-002").delete(expense.id) is None
    assert ExpenseService(session, "FROTA-002").delete("does-not-exist") is None
    assert owner.get(expense.id).id == expense.id

    owner.delete(expense.id)
    with pytest.raises(ExpenseNotFound):
        owner.get(expense.id)


def test_list_sorts_newest_first_and_applies_filters() -> None:
    session = make_session()
    service = ExpenseService(session, "FROTA-001")
    jan_a = service.create(_data(date=date(2024, 1, 10)))
    jan_b = service.create(_data(date=date(2024, 1, 10), truck_plate="XYZ-9876"))
    feb = service.create(_data(date=date(2024, 2, 3)))
    ExpenseService(session, "FROTA-002").create(_data(fleet_code="FROTA-002"))

    assert [e.id for e in service.list()] == [feb.id, jan_b.id, jan_a.id]

    january = service.list(build_filters(month="2024-01"))
    assert [e.id for e in january] == [jan_b.id, jan_a.id]

    truck = service.list(build_filters(truck="abc-1234"))
    assert [e.id for e in truck] == [feb.id, jan_a.id]

    assert len(service.list(build_filters(month="2024-01", mode="ALL"))) == 3
    assert len(service.list(build_filters(truck="Todos"))) == 3


def test_build_filters_rejects_bad_month() -> None:
    with pytest.raises(MonthValidationError):
        build_filters(month="2024-13")


def test_known_months_and_plates() -> None:
    session = make_session()
    service = ExpenseService(session, "FROTA-001")
    service.create(_data(date=date(2023, 12, 31), truck_plate="BBB-0002"))
    service.create(_data(date=date(2024, 3, 1)))
    service.create(_data(date=date(2024, 3, 20)))

    assert service.known_months() == ["2024-03", "2023-12"]
    assert service.plates() == ["ABC-1234", "BBB-0002"]
    assert ExpenseService(session, "FROTA-002").known_months() == []


def test_summary_totals_by_category_and_truck() -> None:
    session = make_session()
    service = ExpenseService(session, "FROTA-001")
    service.create(_data(amount=Decimal("100"), liters=Decimal("20")))
    service.create(
        _data(
            category=ExpenseCategory.maintenance,
            amount=Decimal("300"),
            liters=None,
        )
    )
    service.create(
        _data(truck_plate="BBB-0002", amount=Decimal("50"), liters=Decimal("10"))
    )
    service.create(_data(date=date(2024, 2, 1), amount=Decimal("999")))

    summary = MetricsService(session, "FROTA-001").summary(
        build_filters(month="2024-01", truck="ABC-1234")
    )
    assert summary.totals == {"fuel": Decimal("100"), "maintenance": Decimal("300")}
    assert [(t.truck, t.total) for t in summary.by_truck] == [
        ("ABC-1234", Decimal("400")),
        ("BBB-0002", Decimal("50")),
    ]
    assert summary.truck_total == Decimal("400")
    assert summary.liters == Decimal("20")
    assert summary.plates == ["ABC-1234", "BBB-0002"]

    overall = MetricsService(session, "FROTA-001").summary()
    assert overall.totals["fuel"] == Decimal("1149")
    assert overall.truck_total is None
