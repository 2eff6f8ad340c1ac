import logging
from datetime import date, datetime
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tour_booking.core.config import settings
from tour_booking.core.exceptions import (
    BookingError,
    CapacityExceeded,
    DuplicateReservation,
    InvalidState,
    NotFound,
    ValidationError,
)
from tour_booking.core.metrics import RESERVATION_REJECTIONS
from tour_booking.db.models import Booking, BookingStatus, Checkin, Payment, PaymentStatus, TimeSlot, User
from tour_booking.services.availability_service import (
    active_booking_clause,
    count_active_bookings,
    find_time_slot_by_label,
)
from tour_booking.services.booking_state import apply_transition, check_admin_target, extend_hold, open_hold
from tour_booking.services.expiry_policy import (
    ensure_utc,
    is_expired,
    tour_local_date,
)

logger = logging.getLogger("tour_booking.bookings")

MIN_GROUP_SIZE = 1
MAX_GROUP_SIZE = 50

BOOKING_NOT_FOUND_DETAIL = "Booking not found"
RESERVATION_EXPIRED_DETAIL = "Reservation has expired"
SLOT_FULL_DETAIL = "Selected time slot is fully booked"
DUPLICATE_RESERVATION_DETAIL = "You already hold a booking for this time slot"


def _reject(kind_exc: type[BookingError], message: str) -> BookingError:
    RESERVATION_REJECTIONS.labels(kind=kind_exc.kind).inc()
    logger.info("reservation_rejected kind=%s message=%s", kind_exc.kind, message)
    return kind_exc(message)


def get_booking(db: Session, booking_id: str, for_update: bool = False) -> Booking:
    query = select(Booking).where(Booking.id == booking_id)
    if for_update:
        query = query.with_for_update()
    booking = db.scalar(query)
    if not booking:
        raise NotFound(BOOKING_NOT_FOUND_DETAIL)
    return booking


def ensure_can_access(booking: Booking, user: User) -> None:
    if not (user.is_admin or booking.user_id == user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")


def load_booking_for_actor(db: Session, booking_id: str, actor: User, for_update: bool = False) -> Booking:
    booking = get_booking(db, booking_id, for_update=for_update)
    ensure_can_access(booking, actor)
    return booking


def expire_if_lapsed(db: Session, booking: Booking, now: datetime) -> bool:
    """Persist ``slot_expired`` for a hold whose window has passed."""
    if booking.status != BookingStatus.SLOT_RESERVED.value:
        return False
    if not is_expired(booking.status, booking.expires_at, now):
        return False
    apply_transition(booking, BookingStatus.SLOT_EXPIRED, now)
    db.commit()
    return True


def expire_lapsed_holds(
    db: Session,
    now: datetime,
    tour_date: date | None = None,
    time_slot_id: int | None = None,
    user_id: int | None = None,
) -> list[Booking]:
    query = select(Booking).where(
        Booking.status == BookingStatus.SLOT_RESERVED.value,
        Booking.expires_at.is_not(None),
        Booking.expires_at < ensure_utc(now),
    )
    if tour_date is not None:
        query = query.where(Booking.date == tour_date)
    if time_slot_id is not None:
        query = query.where(Booking.time_slot_id == time_slot_id)
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)

    lapsed = db.scalars(query).all()
    for booking in lapsed:
        apply_transition(booking, BookingStatus.SLOT_EXPIRED, now)
    return list(lapsed)


def _lock_time_slot(db: Session, time_slot_id: int) -> None:
    # A write on the slot row is a row lock on PostgreSQL and the database
    # write lock on SQLite; either way it is held until commit.
    db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == time_slot_id)
        .values(reservation_version=TimeSlot.reservation_version + 1)
        .execution_options(synchronize_session=False)
    )


def reserve_slot(
    db: Session,
    user_id: int,
    tour_date: date,
    time_slot: str,
    group_size: int,
    now: datetime,
    deposit: Decimal | None = None,
) -> Booking:
    if not MIN_GROUP_SIZE <= group_size <= MAX_GROUP_SIZE:
        raise _reject(
            ValidationError,
            f"Invalid group size. Please provide a value between {MIN_GROUP_SIZE} and {MAX_GROUP_SIZE}.",
        )
    if tour_date < tour_local_date(now):
        raise _reject(ValidationError, "Cannot reserve a slot on a past date")

    slot = find_time_slot_by_label(db, time_slot)
    if not slot:
        raise _reject(ValidationError, f"Unknown time slot: {time_slot}")

    amount = Decimal(settings.default_deposit) if deposit is None else Decimal(deposit)
    if amount < 0:
        raise _reject(ValidationError, "Deposit must not be negative")

    try:
        _lock_time_slot(db, slot.id)
        expire_lapsed_holds(db, now, tour_date=tour_date, time_slot_id=slot.id)

        own_active = db.scalar(
            select(Booking.id).where(
                Booking.user_id == user_id,
                Booking.date == tour_date,
                Booking.time_slot_id == slot.id,
                active_booking_clause(now),
            )
        )
        if own_active:
            db.rollback()
            raise _reject(DuplicateReservation, DUPLICATE_RESERVATION_DETAIL)

        if count_active_bookings(db, tour_date, slot.id, now) >= slot.capacity:
            db.rollback()
            raise _reject(CapacityExceeded, SLOT_FULL_DETAIL)

        hold = open_hold(now)
        booking = Booking(
            date=tour_date,
            time_slot_id=slot.id,
            time_slot=slot.label,
            group_size=group_size,
            deposit=amount,
            status=hold.status.value,
            expires_at=hold.expires_at,
            user_id=user_id,
        )
        db.add(booking)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise _reject(DuplicateReservation, DUPLICATE_RESERVATION_DETAIL) from None

    db.refresh(booking)
    logger.info(
        "reservation_created booking_id=%s user_id=%s date=%s slot=%s group_size=%s",
        booking.id,
        user_id,
        tour_date.isoformat(),
        booking.time_slot,
        group_size,
    )
    return booking


def _transition_checked(db: Session, booking: Booking, requested: BookingStatus, now: datetime) -> Booking:
    if expire_if_lapsed(db, booking, now):
        raise InvalidState(RESERVATION_EXPIRED_DETAIL)
    apply_transition(booking, requested, now)
    db.commit()
    db.refresh(booking)
    return booking


def confirm_reservation(db: Session, booking_id: str, actor: User, now: datetime) -> Booking:
    booking = load_booking_for_actor(db, booking_id, actor, for_update=True)
    return _transition_checked(db, booking, BookingStatus.AWAITING_PAYMENT, now)


def cancel_booking(db: Session, booking_id: str, actor: User, now: datetime) -> Booking:
    booking = load_booking_for_actor(db, booking_id, actor, for_update=True)
    return _transition_checked(db, booking, BookingStatus.CANCELLED, now)


def extend_reservation(db: Session, booking_id: str, actor: User, minutes: int, now: datetime) -> Booking:
    if not 1 <= minutes <= settings.reservation_max_extension_minutes:
        raise ValidationError(
            f"Extension must be between 1 and {settings.reservation_max_extension_minutes} minutes"
        )

    booking = load_booking_for_actor(db, booking_id, actor, for_update=True)
    if expire_if_lapsed(db, booking, now):
        raise InvalidState(RESERVATION_EXPIRED_DETAIL)
    extend_hold(booking, minutes, now)
    db.commit()
    db.refresh(booking)
    return booking


def record_payment(
    db: Session,
    booking_id: str,
    actor: User,
    amount: Decimal,
    succeeded: bool,
    now: datetime,
    transaction_id: str | None = None,
    payment_method: str | None = None,
) -> Booking:
    booking = load_booking_for_actor(db, booking_id, actor, for_update=True)
    if booking.status != BookingStatus.AWAITING_PAYMENT.value:
        raise InvalidState(f"Booking is not awaiting payment, it is {booking.status}")
    if succeeded and amount < booking.deposit:
        raise ValidationError(f"Payment of {amount} does not cover the deposit of {booking.deposit}")

    db.add(
        Payment(
            booking_id=booking.id,
            amount=amount,
            transaction_id=transaction_id,
            payment_method=payment_method,
            status=PaymentStatus.PAID.value if succeeded else PaymentStatus.FAILED.value,
        )
    )
    apply_transition(booking, BookingStatus.PAID if succeeded else BookingStatus.PAYMENT_FAILED, now)
    if succeeded and settings.auto_confirm_paid_bookings:
        apply_transition(booking, BookingStatus.CONFIRMED, now)

    db.commit()
    db.refresh(booking)
    return booking


def request_refund(db: Session, booking_id: str, actor: User, now: datetime) -> Booking:
    booking = load_booking_for_actor(db, booking_id, actor, for_update=True)
    return _transition_checked(db, booking, BookingStatus.REFUND_PENDING, now)


def mark_checked_in(db: Session, booking: Booking, now: datetime) -> Checkin:
    """Move a booking to ``checked_in`` and add its ``Checkin`` row, without committing."""
    if booking.checkin is not None:
        logger.warning("checkin_duplicate booking_id=%s", booking.id)
        raise InvalidState("Booking has already been checked in.")

    apply_transition(booking, BookingStatus.CHECKED_IN, now)
    checkin = Checkin(booking_id=booking.id, checked_in_at=ensure_utc(now))
    db.add(checkin)
    return checkin


def admin_set_status(db: Session, booking_id: str, requested: str, now: datetime) -> Booking:
    target = check_admin_target(requested)
    booking = get_booking(db, booking_id, for_update=True)
    if target != BookingStatus.CHECKED_IN:
        return _transition_checked(db, booking, target, now)

    mark_checked_in(db, booking, now)
    db.commit()
    db.refresh(booking)
    logger.info("checkin_completed booking_id=%s source=admin_status", booking.id)
    return booking


def get_booking_for_actor(db: Session, booking_id: str, actor: User, now: datetime) -> Booking:
    booking = load_booking_for_actor(db, booking_id, actor)
    if expire_if_lapsed(db, booking, now):
        db.refresh(booking)
    return booking


def list_bookings(
    db: Session,
    now: datetime,
    user_id: int | None = None,
    status_filter: BookingStatus | None = None,
    tour_date: date | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Booking]:
    if expire_lapsed_holds(db, now, tour_date=tour_date, user_id=user_id):
        db.commit()

    query = select(Booking)
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    if status_filter:
        query = query.where(Booking.status == status_filter.value)
    if tour_date:
        query = query.where(Booking.date == tour_date)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.join(User, Booking.user_id == User.id).where(
            or_(Booking.id.ilike(pattern), User.email.ilike(pattern))
        )

    return list(db.scalars(query.order_by(Booking.created_at, Booking.id).limit(limit).offset(offset)).all())
