from datetime import datetime, timedelta, timezone

from flask import current_app, has_app_context


class SystemClock:
    """Wall clock returning naive UTC datetimes, matching the DB columns."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FrozenClock:
    """Manually driven clock for tests and replay."""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def set(self, value: datetime):
        self.current = value

    def advance(self, seconds: float = 0, **kwargs):
        self.current = self.current + timedelta(seconds=seconds, **kwargs)
        return self.current


_fallback = SystemClock()


def get_clock():
    if has_app_context():
        return current_app.extensions.get("clock", _fallback)
    return _fallback


def now() -> datetime:
    return get_clock().now()
