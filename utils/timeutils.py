import re
import secrets
from datetime import date, datetime

from services.errors import InvalidInputError

_HHMM = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value) -> int:
    """'09:30' -> 570. Accepts an unpadded hour ('9:30')."""
    match = _HHMM.match((value or "").strip()) if isinstance(value, str) else None
    if not match:
        raise InvalidInputError(f"Invalid time format (HH:MM): {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_hhmm(minutes: int) -> str:
    # 1440 is allowed so a slot can end at midnight
    if minutes < 0 or minutes > MINUTES_PER_DAY:
        raise InvalidInputError(f"Minutes out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_hhmm(value) -> str:
    return format_hhmm(parse_hhmm(value))


def normalize_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise InvalidInputError("Invalid date. Use YYYY-MM-DD")


def generate_booking_code(now: datetime, prefix: str = "SH") -> str:
    return f"{prefix}{now:%y%m%d}{secrets.randbelow(10000):04d}"
