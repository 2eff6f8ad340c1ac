import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from tour_booking.db.models import Booking, BookingStatus
from tour_booking.db.session import SessionLocal
from tour_booking.services.booking_service import expire_lapsed_holds
from tour_booking.services.booking_state import apply_transition
from tour_booking.services.expiry_policy import tour_local_date, utc_now
from tour_booking.tasks.celery_app import celery_app

logger = logging.getLogger("tour_booking.tasks")

# Day-end outcome for bookings still open once their tour date has passed.
DAY_END_OUTCOMES = {
    BookingStatus.CHECKED_IN: BookingStatus.COMPLETED,
    BookingStatus.CONFIRMED: BookingStatus.NO_SHOW,
}


def expire_lapsed_reservations(db: Session, now: datetime | None = None) -> int:
    current_time = now or utc_now()
    expired = expire_lapsed_holds(db, current_time)
    if expired:
        db.commit()
    logger.info("lapsed_reservations_expired count=%s", len(expired))
    return len(expired)


def close_past_tours(db: Session, now: datetime | None = None) -> dict[str, int]:
    current_time = now or utc_now()
    today = tour_local_date(current_time)

    stale_bookings = db.scalars(
        select(Booking).where(
            Booking.status.in_([status.value for status in DAY_END_OUTCOMES]),
            Booking.date < today,
        )
    ).all()

    counts = {outcome.value: 0 for outcome in DAY_END_OUTCOMES.values()}
    for booking in stale_bookings:
        outcome = DAY_END_OUTCOMES[BookingStatus(booking.status)]
        apply_transition(booking, outcome, current_time)
        counts[outcome.value] += 1

    if stale_bookings:
        db.commit()
    logger.info(
        "past_tours_closed completed=%s no_show=%s",
        counts[BookingStatus.COMPLETED.value],
        counts[BookingStatus.NO_SHOW.value],
    )
    return counts


@celery_app.task(name="bookings.expire_lapsed_reservations")
def expire_lapsed_reservations_task() -> dict[str, int]:
    db = SessionLocal()
    try:
        return {"expired": expire_lapsed_reservations(db=db)}
    finally:
        db.close()


@celery_app.task(name="bookings.close_past_tours")
def close_past_tours_task() -> dict[str, int]:
    db = SessionLocal()
    try:
        return close_past_tours(db=db)
    finally:
        db.close()
