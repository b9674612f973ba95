import datetime as dt
from decimal import Decimal
from typing import Any, Optional, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from models import AMOUNT_PLACES, KM_PLACES, LITERS_PLACES, ExpenseCategory
from parsing import (
    clean_text,
    parse_date,
    parse_decimal,
    parse_optional_decimal,
    quantize_places,
)


class ExpenseValidationError(ValueError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


# Checked in this order; the first failing field is the one reported.
FIELD_MESSAGES: dict[str, str] = {
    "id": "id is required",
    "fleetCode": "fleetCode is required",
    "date": "date is invalid",
    "truckPlate": "truckPlate is required",
    "category": "category is invalid, use fuel or maintenance",
    "amount": "amount must be greater than zero",
    "km": "km must be a number greater than or equal to zero",
    "liters": "liters must be a number greater than zero",
    "invoiceNumber": "invoiceNumber is invalid",
    "note": "note is invalid",
}


def _required_text(value: Any) -> str:
    text = clean_text(value)
    if text is None:
        raise ValueError("required")
    return text


class ExpenseIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_max_length=10_000)

    fleet_code: str = Field(..., alias="fleetCode", max_length=100)
    date: dt.date
    truck_plate: str = Field(..., alias="truckPlate", max_length=20)
    category: ExpenseCategory
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=AMOUNT_PLACES)
    km: Decimal = Field(
        default=Decimal("0"), ge=0, max_digits=12, decimal_places=KM_PLACES
    )
    liters: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=10, decimal_places=LITERS_PLACES
    )
    invoice_number: Optional[str] = Field(
        default=None, alias="invoiceNumber", max_length=60
    )
    note: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def drop_liters_unless_fuel(cls, data: Any) -> Any:
        if isinstance(data, dict):
            category = data.get("category")
            if isinstance(category, ExpenseCategory):
                category = category.value
            category = str(category or "").strip().lower()
            if category != ExpenseCategory.fuel.value and "liters" in data:
                data = {**data, "liters": None}
        return data

    @field_validator("fleet_code", mode="before")
    @classmethod
    def clean_fleet_code(cls, value: Any) -> str:
        return _required_text(value)

    @field_validator("truck_plate", mode="before")
    @classmethod
    def clean_truck_plate(cls, value: Any) -> str:
        return _required_text(value).upper()

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> dt.date:
        return parse_date(value)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, value: Any) -> Decimal:
        return quantize_places(parse_decimal(value), AMOUNT_PLACES)

    @field_validator("km", mode="before")
    @classmethod
    def coerce_km(cls, value: Any) -> Decimal:
        parsed = parse_optional_decimal(value)
        if parsed is None:
            return Decimal("0")
        return quantize_places(parsed, KM_PLACES)

    @field_validator("liters", mode="before")
    @classmethod
    def coerce_liters(cls, value: Any) -> Optional[Decimal]:
        parsed = parse_optional_decimal(value)
        if parsed is None:
            return None
        return quantize_places(parsed, LITERS_PLACES)

    @field_validator("invoice_number", "note", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Optional[str]:
        return clean_text(value)


class ExpenseUpdateIn(ExpenseIn):
    id: str = Field(..., max_length=36)

    @field_validator("id", mode="before")
    @classmethod
    def clean_id(cls, value: Any) -> str:
        return _required_text(value)


class ExpenseDeleteIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., max_length=36)
    fleet_code: str = Field(..., alias="fleetCode", max_length=100)

    @field_validator("id", "fleet_code", mode="before")
    @classmethod
    def required(cls, value: Any) -> str:
        return _required_text(value)


class FleetSessionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fleet_code: str = Field(..., alias="fleetCode", max_length=100)

    @field_validator("fleet_code", mode="before")
    @classmethod
    def required(cls, value: Any) -> str:
        return _required_text(value)


SchemaT = TypeVar("SchemaT", bound=BaseModel)

_FIELD_ALIASES = {
    "fleet_code": "fleetCode",
    "truck_plate": "truckPlate",
    "invoice_number": "invoiceNumber",
}

# Length and size limits get their own wording instead of the field default.
_LIMIT_MESSAGES = {
    "string_too_long": "{field} is too long",
    "decimal_max_digits": "{field} is too large",
    "decimal_whole_digits": "{field} is too large",
}


def validate_payload(schema: type[SchemaT], payload: Any) -> SchemaT:
    """Validate a request body, reporting only the first failing field."""
    if not isinstance(payload, dict):
        raise ExpenseValidationError("body", "request body must be a JSON object")
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        failed: dict[str, str] = {}
        for error in exc.errors():
            loc = error.get("loc") or ()
            if loc:
                name = str(loc[0])
                field = _FIELD_ALIASES.get(name, name)
                failed.setdefault(field, error.get("type", ""))
        for field in FIELD_MESSAGES:
            if field in failed:
                template = _LIMIT_MESSAGES.get(failed[field])
                message = template.format(field=field) if template else FIELD_MESSAGES[field]
                raise ExpenseValidationError(field, message) from exc
        raise ExpenseValidationError("body", "request body is invalid") from exc
