import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Decimal places kept by each numeric column.
AMOUNT_PLACES = 2
KM_PLACES = 1
LITERS_PLACES = 3


class ExpenseCategory(str, Enum):
    fuel = "fuel"
    maintenance = "maintenance"


EXPENSE_CATEGORY_ENUM = SAEnum(
    ExpenseCategory,
    name="expensecategory",
    native_enum=False,
    create_constraint=True,
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    fleet_code: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    truck_plate: Mapped[str] = mapped_column(String(20), nullable=False)
    km: Mapped[Decimal] = mapped_column(
        Numeric(12, KM_PLACES), nullable=False, default=Decimal("0")
    )
    category: Mapped[ExpenseCategory] = mapped_column(
        EXPENSE_CATEGORY_ENUM, nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, AMOUNT_PLACES), nullable=False)
    liters: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, LITERS_PLACES))
    invoice_number: Mapped[Optional[str]] = mapped_column(String(60))
    note: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_expenses_fleet_code", "fleet_code"),
        Index("ix_expenses_fleet_code_date", "fleet_code", "date"),
        Index("ix_expenses_fleet_code_truck", "fleet_code", "truck_plate"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint("km >= 0", name="ck_expenses_km_non_negative"),
        CheckConstraint(
            "liters IS NULL OR liters > 0", name="ck_expenses_liters_positive"
        ),
    )

