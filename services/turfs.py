"""Turf catalogue: the venues slots are generated for.

Turfs are never hard-deleted; bookings and slots keep pointing at them, so
retiring one only flips ``is_active`` and hides it from the public list.
"""
from flask import current_app

from models import db
from models.turf import Turf
from services.errors import InvalidInputError, NotFoundError
from services.queries import paginate
from utils.audit import log_event
from utils.timeutils import normalize_hhmm, parse_hhmm

EDITABLE_FIELDS = ("name", "location", "description", "price_per_hour", "operating_hours", "is_active")


def _clean_text(value, label, required=True):
    value = (value or "").strip() if isinstance(value, str) else ""
    if required and not value:
        raise InvalidInputError(f"{label} is required")
    return value or None


def _clean_price(value, label="price_per_hour") -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f"{label} must be a number")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{label} must be a number")
    if value < 0:
        raise InvalidInputError("Price cannot be negative")
    return value


def _clean_hours(hours, open_default, close_default):
    if not isinstance(hours, dict):
        raise InvalidInputError("operating_hours must be an object with open and close")
    open_time = normalize_hhmm(hours.get("open") or open_default)
    close_time = normalize_hhmm(hours.get("close") or close_default)
    if parse_hhmm(close_time) <= parse_hhmm(open_time):
        raise InvalidInputError("Closing time must be after opening time")
    return open_time, close_time


def get_turf(turf_id, include_inactive=False) -> Turf:
    turf = Turf.query.get(turf_id) if turf_id is not None else None
    if not turf or (not turf.is_active and not include_inactive):
        raise NotFoundError("Turf not found")
    return turf


def list_turfs(city=None, min_price=None, max_price=None, page=1, limit=10):
    """Active turfs, newest first; ``city`` matches anywhere in the location."""
    q = Turf.query.filter(Turf.is_active.is_(True))
    city = (city or "").strip()
    if city:
        q = q.filter(Turf.location.ilike(f"%{city}%"))
    if min_price not in (None, ""):
        q = q.filter(Turf.price_per_hour >= _clean_price(min_price, "minPrice"))
    if max_price not in (None, ""):
        q = q.filter(Turf.price_per_hour <= _clean_price(max_price, "maxPrice"))
    q = q.order_by(Turf.created_at.desc(), Turf.id.desc())
    return paginate(q, page, limit, 10)


def create_turf(data, user_id) -> Turf:
    data = data or {}
    name = _clean_text(data.get("name"), "name")
    location = _clean_text(data.get("location"), "location")
    price = _clean_price(data.get("price_per_hour"))
    open_time, close_time = _clean_hours(
        data.get("operating_hours") or {},
        current_app.config["DEFAULT_OPEN_TIME"],
        current_app.config["DEFAULT_CLOSE_TIME"],
    )

    turf = Turf(
        name=name,
        location=location,
        description=_clean_text(data.get("description"), "description", required=False),
        price_per_hour=price,
        open_time=open_time,
        close_time=close_time,
        created_by=user_id,
    )
    db.session.add(turf)
    db.session.flush()
    log_event("TURF_CREATE", user_id=user_id, entity="turf", entity_id=turf.id, commit=False)
    db.session.commit()
    return turf


def update_turf(turf_id, data, user_id) -> Turf:
    """Partial update. Existing slots keep the price they were generated with."""
    turf = get_turf(turf_id, include_inactive=True)
    data = data or {}
    unknown = sorted(set(data) - set(EDITABLE_FIELDS))
    if unknown:
        raise InvalidInputError("Unknown turf fields", details={"fields": unknown})
    if not data:
        raise InvalidInputError("Nothing to update")

    changes = {}
    if "name" in data:
        changes["name"] = _clean_text(data["name"], "name")
    if "location" in data:
        changes["location"] = _clean_text(data["location"], "location")
    if "description" in data:
        changes["description"] = _clean_text(data["description"], "description", required=False)
    if "price_per_hour" in data:
        changes["price_per_hour"] = _clean_price(data["price_per_hour"])
    if "operating_hours" in data:
        changes["open_time"], changes["close_time"] = _clean_hours(
            data["operating_hours"], turf.open_time, turf.close_time
        )
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise InvalidInputError("is_active must be true or false")
        changes["is_active"] = data["is_active"]

    changed = {k: v for k, v in changes.items() if getattr(turf, k) != v}
    for key, value in changed.items():
        setattr(turf, key, value)

    log_event("TURF_UPDATE", user_id=user_id, entity="turf", entity_id=turf.id,
              metadata={"changed": sorted(changed)}, commit=False)
    db.session.commit()
    return turf


def deactivate_turf(turf_id, user_id) -> Turf:
    turf = get_turf(turf_id, include_inactive=True)
    if turf.is_active:
        turf.is_active = False
        log_event("TURF_DEACTIVATE", user_id=user_id, entity="turf", entity_id=turf.id, commit=False)
        db.session.commit()
        current_app.logger.info("Turf %s deactivated by user %s", turf.id, user_id)
    return turf
