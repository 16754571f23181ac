"""Slot store: slot records, lazy lock expiry and bulk generation."""
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import booking_slots
from models.slot import Slot
from services.errors import ConflictError, InvalidInputError, NotFoundError
from services.states import SlotStatus
from services.turfs import get_turf
from utils.audit import log_event
from utils.clock import now as clock_now
from utils.timeutils import format_hhmm, normalize_date, normalize_hhmm, parse_hhmm

# clears the lock fields when a slot goes back to the pool
RELEASED_LOCK = {
    "status": SlotStatus.AVAILABLE.value,
    "locked_by": None,
    "locked_at": None,
}


def lock_duration_seconds() -> int:
    return int(current_app.config.get("SLOT_LOCK_DURATION", 180))


def lock_cutoff(now: datetime, duration: int = None) -> datetime:
    """Locks taken at or before this instant have expired."""
    if duration is None:
        duration = lock_duration_seconds()
    return now - timedelta(seconds=duration)


def is_lock_expired(slot, now: datetime, duration: int = None) -> bool:
    if slot.status != SlotStatus.LOCKED.value or slot.locked_at is None:
        return False
    if duration is None:
        duration = lock_duration_seconds()
    return now >= slot.locked_at + timedelta(seconds=duration)


def expired_lock_filter(now: datetime, duration: int = None):
    return and_(
        Slot.status == SlotStatus.LOCKED.value,
        Slot.locked_at.isnot(None),
        Slot.locked_at <= lock_cutoff(now, duration),
    )


def release_expired_locks(now: datetime = None, slot_ids=None) -> int:
    """Reset every expired lock (optionally limited to ``slot_ids``) in one UPDATE.

    The WHERE clause re-checks status and lock age, so a slot re-locked
    between the caller's read and this write is left alone.
    """
    now = now or clock_now()
    q = Slot.query.filter(expired_lock_filter(now))
    if slot_ids is not None:
        if not slot_ids:
            return 0
        q = q.filter(Slot.id.in_(list(slot_ids)))
    released = q.update(dict(RELEASED_LOCK), synchronize_session=False)
    db.session.commit()
    return released


def fetch_reconciled_slots(turf_id, day, now: datetime = None):
    """Slots of a turf on a date, ordered by start time.

    Has a write side effect: expired locks among the returned slots are
    persisted back to ``available`` before the list is returned.
    """
    now = now or clock_now()
    get_turf(turf_id)
    day = normalize_date(day)

    slots = Slot.query.filter_by(turf_id=turf_id, date=day).all()
    expired = [s.id for s in slots if is_lock_expired(s, now)]
    if expired:
        release_expired_locks(now, expired)
        slots = Slot.query.filter_by(turf_id=turf_id, date=day).all()

    return sorted(slots, key=lambda s: parse_hhmm(s.start_time))


def fetch_reconciled_slot(slot_id, now: datetime = None) -> Slot:
    """Single slot by id; same write side effect as ``fetch_reconciled_slots``."""
    now = now or clock_now()
    slot = Slot.query.get(slot_id)
    if not slot:
        raise NotFoundError("Slot not found")

    if is_lock_expired(slot, now):
        release_expired_locks(now, [slot.id])
        slot = Slot.query.get(slot_id)
    return slot


def generate_slots(turf_id, start_date, end_date, slot_duration: int = None, user_id=None) -> int:
    """Create slots across the turf's operating hours for every day in range.

    Re-running over the same range creates nothing new. Every slot is priced
    at the flat hourly rate whatever its duration.
    """
    turf = get_turf(turf_id)
    start_day = normalize_date(start_date)
    end_day = normalize_date(end_date)
    if slot_duration is None:
        slot_duration = current_app.config.get("DEFAULT_SLOT_DURATION_MINUTES", 60)
    try:
        slot_duration = int(slot_duration)
    except (TypeError, ValueError):
        raise InvalidInputError("slot_duration must be a number of minutes")

    if slot_duration <= 0:
        raise InvalidInputError("slot_duration must be positive")
    if end_day < start_day:
        raise InvalidInputError("end_date must not be before start_date")

    max_days = current_app.config.get("MAX_GENERATION_DAYS", 90)
    if (end_day - start_day).days + 1 > max_days:
        raise InvalidInputError(f"Cannot generate more than {max_days} days at once")

    open_minutes = parse_hhmm(turf.open_time)
    close_minutes = parse_hhmm(turf.close_time)

    existing = {
        (s.date, s.start_time)
        for s in Slot.query.filter(
            Slot.turf_id == turf.id,
            Slot.date >= start_day,
            Slot.date <= end_day,
        ).all()
    }

    created = []
    day = start_day
    while day <= end_day:
        current = open_minutes
        while current + slot_duration <= close_minutes:
            start_str = format_hhmm(current)
            if (day, start_str) not in existing:
                created.append(Slot(
                    turf_id=turf.id,
                    date=day,
                    start_time=start_str,
                    end_time=format_hhmm(current + slot_duration),
                    price=turf.price_per_hour,
                    status=SlotStatus.AVAILABLE.value,
                ))
            current += slot_duration
        day += timedelta(days=1)

    db.session.add_all(created)
    log_event(
        "SLOT_GENERATE",
        user_id=user_id,
        entity="turf",
        entity_id=turf.id,
        metadata={
            "start_date": start_day.isoformat(),
            "end_date": end_day.isoformat(),
            "slot_duration": slot_duration,
            "created": len(created),
        },
        commit=False,
    )
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Slots were created concurrently for this range; retry")

    current_app.logger.info("Generated %d slots for turf %s", len(created), turf.id)
    return len(created)


def create_slot(turf_id, day, start_time, end_time, price, user_id=None) -> Slot:
    turf = get_turf(turf_id)
    day = normalize_date(day)
    start_str = normalize_hhmm(start_time)
    end_str = normalize_hhmm(end_time)
    if parse_hhmm(end_str) <= parse_hhmm(start_str):
        raise InvalidInputError("end_time must be after start_time")

    try:
        price = int(price)
    except (TypeError, ValueError):
        raise InvalidInputError("price must be a number")
    if price < 0:
        raise InvalidInputError("Price cannot be negative")

    if Slot.query.filter_by(turf_id=turf.id, date=day, start_time=start_str).first():
        raise ConflictError("Slot already exists for this time")

    slot = Slot(
        turf_id=turf.id,
        date=day,
        start_time=start_str,
        end_time=end_str,
        price=price,
        status=SlotStatus.AVAILABLE.value,
    )
    db.session.add(slot)
    try:
        db.session.flush()
        log_event("SLOT_CREATE", user_id=user_id, entity="slot", entity_id=slot.id, commit=False)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # uq_turf_date_start caught a concurrent insert
        raise ConflictError("Slot already exists for this time")
    return slot


def delete_slot(slot_id, user_id=None):
    slot = Slot.query.get(slot_id)
    if not slot:
        raise NotFoundError("Slot not found")

    if slot.status == SlotStatus.BOOKED.value:
        raise ConflictError("Cannot delete a booked slot")

    db.session.execute(booking_slots.delete().where(booking_slots.c.slot_id == slot.id))
    deleted = (
        Slot.query
        .filter(Slot.id == slot.id, Slot.status != SlotStatus.BOOKED.value)
        .delete(synchronize_session=False)
    )
    if not deleted:
        db.session.rollback()
        raise ConflictError("Cannot delete a booked slot")
    log_event("SLOT_DELETE", user_id=user_id, entity="slot", entity_id=slot_id, commit=False)
    db.session.commit()


def owned_by_booking_filter(booking):
    """Slots still held for ``booking``: booked under it, or locked by its owner."""
    return or_(
        and_(Slot.status == SlotStatus.BOOKED.value, Slot.booking_id == booking.id),
        and_(Slot.status == SlotStatus.LOCKED.value, Slot.locked_by == booking.user_id),
    )


def release_booking_slots(booking) -> int:
    """Return the booking's slots to the pool. Caller commits.

    Slots that another user has since locked or booked are not touched.
    """
    slot_ids = booking.slot_ids
    if not slot_ids:
        return 0
    return (
        Slot.query
        .filter(Slot.id.in_(slot_ids), owned_by_booking_filter(booking))
        .update(
            {
                **RELEASED_LOCK,
                "booked_by": None,
                "booking_id": None,
            },
            synchronize_session=False,
        )
    )
