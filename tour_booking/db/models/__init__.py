from tour_booking.db.models.booking import RELEASED_STATUSES, Booking, BookingStatus
from tour_booking.db.models.checkin import Checkin
from tour_booking.db.models.payment import Payment, PaymentStatus
from tour_booking.db.models.time_slot import TimeSlot
from tour_booking.db.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "TimeSlot",
    "Booking",
    "BookingStatus",
    "RELEASED_STATUSES",
    "Payment",
    "PaymentStatus",
    "Checkin",
]
