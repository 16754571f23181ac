from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .turf import Turf
from .slot import Slot
from .booking import Booking, booking_slots
from .payment import Payment
