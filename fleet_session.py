from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

COOKIE_NAME = "fleet_code"
HEADER_NAME = "X-Fleet-Code"


@dataclass(frozen=True)
class FleetContext:
    """Tenant scope of one request."""

    fleet_code: str


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="fleet-code")


def sign_fleet_code(fleet_code: str) -> str:
    return _serializer().dumps({"f": fleet_code.strip()})


def read_fleet_code(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    max_age = get_settings().session_max_age_days * 86400
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return None
    if not isinstance(data, dict):
        return None
    code = str(data.get("f") or "").strip()
    return code or None


def resolve_fleet_code(
    explicit: Optional[str],
    header: Optional[str] = None,
    cookie: Optional[str] = None,
) -> Optional[str]:
    """Pick the tenant code: explicit value, then header, then signed cookie."""
    for candidate in (explicit, header):
        if candidate and candidate.strip():
            return candidate.strip()
    return read_fleet_code(cookie)
