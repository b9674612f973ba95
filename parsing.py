from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional


def parse_decimal(value: object) -> Decimal:
    """Coerce form/JSON input into a finite Decimal.

    Accepts numbers and strings using either ``.`` or ``,`` as the decimal
    separator; when both appear, the last one is taken as the separator.
    """
    if isinstance(value, bool):
        raise ValueError("Invalid number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        clean = value.strip().replace("R$", "").replace(" ", "")
        clean = clean.replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid number") from exc
    else:
        raise ValueError("Invalid number")
    if not amount.is_finite():
        raise ValueError("Invalid number")
    return amount


def quantize_places(value: Decimal, places: int) -> Decimal:
    """Round to the scale the database column keeps."""
    try:
        return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError("Number is too large") from exc


def parse_optional_decimal(value: object) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return parse_decimal(value)


def parse_date(value: object) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Invalid date")
    clean = value.strip()
    # Tolerate a trailing time part, whether separated by "T" or a space.
    clean = clean.replace("T", " ").split(maxsplit=1)[0]
    return datetime.strptime(clean, "%Y-%m-%d").date()


def clean_text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
