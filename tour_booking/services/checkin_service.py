import logging
from datetime import datetime

from sqlalchemy.orm import Session

from tour_booking.core.exceptions import ValidationError
from tour_booking.db.models import Checkin
from tour_booking.services.booking_service import get_booking, mark_checked_in

logger = logging.getLogger("tour_booking.checkins")

INVALID_BOOKING_DETAILS = "Invalid booking details."


def check_in(db: Session, booking_id: str, email: str, now: datetime) -> Checkin:
    booking = get_booking(db, booking_id, for_update=True)

    if booking.user.email.lower() != email.strip().lower():
        logger.warning("checkin_email_mismatch booking_id=%s", booking_id)
        raise ValidationError(INVALID_BOOKING_DETAILS)

    checkin = mark_checked_in(db, booking, now)
    db.commit()
    db.refresh(checkin)

    logger.info("checkin_completed booking_id=%s", booking_id)
    return checkin
