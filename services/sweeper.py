"""Background safety net for abandoned slot holds.

Reads already reconcile expired locks lazily; this sweep bounds how long a
lock nobody looks at can linger, and cancels pending bookings left behind
once their holds are gone.
"""
import threading

from models import db
from models.booking import Booking
from services.slots import release_expired_locks
from services.states import BookingPaymentStatus, BookingStatus, SlotStatus
from utils.audit import log_event
from utils.clock import now as clock_now

ORPHAN_REASON = "Slot hold expired before payment"


def _is_orphaned(booking) -> bool:
    if booking.payment is not None:
        # evidence is waiting for an admin; leave it to verify/fail
        return False
    return not any(
        s.status == SlotStatus.LOCKED.value and s.locked_by == booking.user_id
        for s in booking.slots
    )


def cancel_orphaned_bookings(now=None) -> int:
    now = now or clock_now()
    pending = (
        Booking.query
        .filter(
            Booking.status == BookingStatus.PENDING.value,
            Booking.is_offline.is_(False),
        )
        .all()
    )
    cancelled = []
    for booking in pending:
        if not _is_orphaned(booking):
            continue
        booking.status = BookingStatus.CANCELLED.value
        booking.payment_status = BookingPaymentStatus.FAILED.value
        booking.cancellation_reason = ORPHAN_REASON
        booking.cancelled_at = now
        cancelled.append(booking.id)

    if cancelled:
        log_event("BOOKING_ORPHAN_CANCEL", entity="booking", metadata={"booking_ids": cancelled}, commit=False)
        db.session.commit()
    return len(cancelled)


def sweep(now=None) -> dict:
    now = now or clock_now()
    released = release_expired_locks(now)
    if released:
        log_event("SLOT_LOCKS_EXPIRED", entity="slot", metadata={"released": released})
    cancelled = cancel_orphaned_bookings(now)
    return {"released": released, "cancelled": cancelled}


class LockSweeper(threading.Thread):
    """Runs ``sweep`` every ``interval`` seconds inside an app context."""

    def __init__(self, app, interval: float):
        super().__init__(name="lock-sweeper", daemon=True)
        self.app = app
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self):
        # first pass runs one interval after startup
        while not self._stop_event.wait(self.interval):
            with self.app.app_context():
                try:
                    result = sweep()
                    if result["released"] or result["cancelled"]:
                        self.app.logger.info(
                            "Lock sweep released %d slot(s), cancelled %d booking(s)",
                            result["released"], result["cancelled"],
                        )
                except Exception:
                    # keep the thread alive; the next tick retries
                    db.session.rollback()
                    self.app.logger.exception("Lock sweep failed")
                finally:
                    db.session.remove()

    def stop(self, timeout: float = None):
        self._stop_event.set()
        self.join(timeout)
