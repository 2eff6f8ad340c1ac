from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import ColumnElement, and_, func, not_, select
from sqlalchemy.orm import Session

from tour_booking.db.models import RELEASED_STATUSES, Booking, BookingStatus, TimeSlot
from tour_booking.services.expiry_policy import ensure_utc


@dataclass(frozen=True)
class SlotAvailability:
    slot: str
    available: int
    capacity: int
    user_has_booking: bool = False
    user_booking_status: str | None = None


def active_booking_clause(now: datetime) -> ColumnElement[bool]:
    """Bookings that still occupy a seat: not released and not a lapsed hold."""
    lapsed_hold = and_(
        Booking.status == BookingStatus.SLOT_RESERVED.value,
        Booking.expires_at.is_not(None),
        Booking.expires_at < ensure_utc(now),
    )
    return and_(
        Booking.status.not_in([status.value for status in RELEASED_STATUSES]),
        not_(lapsed_hold),
    )


def list_time_slots(db: Session) -> list[TimeSlot]:
    return list(db.scalars(select(TimeSlot).order_by(TimeSlot.starts_at)).all())


def count_active_bookings(db: Session, tour_date: date, time_slot_id: int, now: datetime) -> int:
    return db.scalar(
        select(func.count(Booking.id)).where(
            Booking.date == tour_date,
            Booking.time_slot_id == time_slot_id,
            active_booking_clause(now),
        )
    ) or 0


def get_available_slots(
    db: Session,
    tour_date: date,
    now: datetime,
    user_id: int | None = None,
) -> list[SlotAvailability]:
    slots = list_time_slots(db)

    counts = dict(
        db.execute(
            select(Booking.time_slot_id, func.count(Booking.id))
            .where(Booking.date == tour_date, active_booking_clause(now))
            .group_by(Booking.time_slot_id)
        ).all()
    )

    own_status: dict[int, str] = {}
    if user_id is not None:
        own_rows = db.execute(
            select(Booking.time_slot_id, Booking.status)
            .where(
                Booking.date == tour_date,
                Booking.user_id == user_id,
                active_booking_clause(now),
            )
            .order_by(Booking.created_at)
        ).all()
        own_status = {time_slot_id: status for time_slot_id, status in own_rows}

    return [
        SlotAvailability(
            slot=slot.label,
            available=max(slot.capacity - counts.get(slot.id, 0), 0),
            capacity=slot.capacity,
            user_has_booking=slot.id in own_status,
            user_booking_status=own_status.get(slot.id),
        )
        for slot in slots
    ]


def find_time_slot_by_label(db: Session, label: str) -> TimeSlot | None:
    normalized = " ".join(label.split())
    for slot in list_time_slots(db):
        if slot.label == normalized:
            return slot
    return None
