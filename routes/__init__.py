from .health import health_bp
from .turfs import turf_bp
from .slots import slot_bp
from .bookings import booking_bp
from .payments import payments_bp
