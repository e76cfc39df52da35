from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Any

from flask import request

from app.halfride.errors import bad_request

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
PASSWORD_MIN_LENGTH = 8
NAME_MAX_LENGTH = 100
IATA_CODE_LENGTH = 3

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
_IATA_RE = re.compile(r"^[A-Z0-9]{3}$")
_GROUP_NAME_RE = re.compile(r"^[A-Za-z\s]+$")

EARTH_RADIUS_METERS = 6_371_000
# largest value a signed 64-bit INTEGER primary key can hold
MAX_DB_ID = 2**63 - 1


def json_body() -> dict[str, Any]:
    """Request JSON as a dict; 400 when the body is not a JSON object."""
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise bad_request("Request body must be a JSON object")
    return body


def clean_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_valid_username(username: str) -> bool:
    return USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH and bool(_USERNAME_RE.match(username))


def is_valid_password(password: str, min_length: int = PASSWORD_MIN_LENGTH) -> bool:
    return isinstance(password, str) and len(password) >= min_length


def is_valid_name(name: str, max_length: int = NAME_MAX_LENGTH) -> bool:
    return 1 <= len(name.strip()) <= max_length


def is_valid_iata_code(code: str) -> bool:
    return bool(_IATA_RE.match(code or ""))


def is_valid_group_name(name: str, max_length: int) -> bool:
    return 1 <= len(name) <= max_length and bool(_GROUP_NAME_RE.match(name))


def parse_iso_date(value: str | None) -> date | None:
    """Parse YYYY-MM-DD; None when blank or malformed."""
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def require_iata_code(raw: Any, label: str = "Airport code") -> str:
    code = clean_str(raw).upper()
    if not code:
        raise bad_request(f"{label} is required")
    if not is_valid_iata_code(code):
        raise bad_request(f"{label} must be a {IATA_CODE_LENGTH}-character IATA code")
    return code


def require_int_id(raw: Any, label: str) -> int:
    s = clean_str(raw)
    if not s:
        raise bad_request(f"{label} is required")
    try:
        value = int(s)
    except ValueError:
        raise bad_request(f"{label} must be an integer id")
    if not 0 < value <= MAX_DB_ID:
        raise bad_request(f"{label} must be a positive integer id")
    return value


def utc_today() -> date:
    return datetime.utcnow().date()


def is_date_today_or_tomorrow(d: date, *, today: date | None = None) -> bool:
    t = today or utc_today()
    return d in (t, t + timedelta(days=1))


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lng2 - lng1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.isoformat(timespec="milliseconds") + "Z"
    return value.isoformat(timespec="milliseconds")


def parse_limit(raw: Any, default: int, maximum: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value < 1:
        return default
    return min(value, maximum)
