"""Booking lifecycle transitions.

Every write of ``Booking.status`` / ``Booking.expires_at`` after creation goes
through :func:`apply_transition`, which validates the move against
``TRANSITIONS`` via :func:`transition`.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from tour_booking.core.exceptions import InvalidState
from tour_booking.core.metrics import BOOKING_TRANSITIONS
from tour_booking.db.models import Booking, BookingStatus
from tour_booking.services.expiry_policy import (
    ensure_utc,
    extended_expires_at,
    hold_expires_at,
    hold_lapsed,
    tour_local_date,
)

logger = logging.getLogger("tour_booking.transitions")

S = BookingStatus

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.SLOT_RESERVED: frozenset({S.SLOT_EXPIRED, S.AWAITING_PAYMENT, S.CANCELLED}),
    S.AWAITING_PAYMENT: frozenset({S.PAID, S.PAYMENT_FAILED, S.CANCELLED}),
    S.PAID: frozenset({S.CONFIRMED, S.CANCELLED, S.REFUND_PENDING}),
    S.CONFIRMED: frozenset({S.CHECKED_IN, S.NO_SHOW, S.CANCELLED, S.REFUND_PENDING}),
    S.CHECKED_IN: frozenset({S.COMPLETED}),
    S.REFUND_PENDING: frozenset({S.REFUNDED, S.REFUND_FAILED}),
    S.SLOT_EXPIRED: frozenset(),
    S.PAYMENT_FAILED: frozenset(),
    S.CANCELLED: frozenset(),
    S.COMPLETED: frozenset(),
    S.NO_SHOW: frozenset(),
    S.REFUNDED: frozenset(),
    S.REFUND_FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({S.CANCELLED, S.COMPLETED, S.NO_SHOW, S.REFUNDED, S.REFUND_FAILED})

# Targets an admin may request directly. SLOT_RESERVED is only ever created,
# SLOT_EXPIRED is only ever reached by the clock and AWAITING_PAYMENT belongs
# to the booking owner.
ADMIN_TARGETS = frozenset(
    {
        S.PAID,
        S.PAYMENT_FAILED,
        S.CONFIRMED,
        S.CANCELLED,
        S.CHECKED_IN,
        S.COMPLETED,
        S.NO_SHOW,
        S.REFUND_PENDING,
        S.REFUNDED,
        S.REFUND_FAILED,
    }
)


@dataclass(frozen=True)
class BookingState:
    status: BookingStatus
    expires_at: datetime | None


def parse_status(value: BookingStatus | str) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError:
        raise InvalidState(f"Unknown booking status: {value}") from None


def allowed_targets(current: BookingStatus | str) -> frozenset[BookingStatus]:
    return TRANSITIONS[parse_status(current)]


def transition(
    current: BookingStatus | str,
    requested: BookingStatus | str,
    now: datetime,
    expires_at: datetime | None,
    *,
    tour_date: date | None = None,
) -> BookingState:
    current_status = parse_status(current)
    requested_status = parse_status(requested)

    if requested_status not in TRANSITIONS[current_status]:
        raise InvalidState(
            f"Cannot move booking from {current_status.value} to {requested_status.value}"
        )

    if current_status == S.SLOT_RESERVED:
        lapsed = hold_lapsed(expires_at, now)
        if requested_status == S.SLOT_EXPIRED and not lapsed:
            raise InvalidState("Reservation hold has not lapsed yet")
        if requested_status != S.SLOT_EXPIRED and lapsed:
            raise InvalidState("Reservation has expired")

    if requested_status == S.CHECKED_IN and tour_date is not None:
        if tour_local_date(now) != tour_date:
            raise InvalidState("Check-in is only possible on the tour date")

    # Only slot_reserved carries a hold, and nothing transitions into it.
    return BookingState(status=requested_status, expires_at=None)


def apply_transition(booking: Booking, requested: BookingStatus | str, now: datetime) -> BookingStatus:
    previous = parse_status(booking.status)
    state = transition(
        previous,
        requested,
        now=now,
        expires_at=booking.expires_at,
        tour_date=booking.date,
    )
    booking.status = state.status.value
    booking.expires_at = state.expires_at
    if state.status == S.CANCELLED:
        booking.cancelled_at = ensure_utc(now)

    BOOKING_TRANSITIONS.labels(from_status=previous.value, to_status=state.status.value).inc()
    logger.info(
        "booking_transition booking_id=%s from=%s to=%s",
        booking.id,
        previous.value,
        state.status.value,
    )
    return state.status


def check_admin_target(requested: BookingStatus | str) -> BookingStatus:
    requested_status = parse_status(requested)
    if requested_status not in ADMIN_TARGETS:
        raise InvalidState(f"Status {requested_status.value} cannot be set by an admin")
    return requested_status


def extend_hold(booking: Booking, minutes: int, now: datetime) -> datetime:
    status = parse_status(booking.status)
    if status != S.SLOT_RESERVED:
        raise InvalidState(f"Only a held reservation can be extended, booking is {status.value}")
    if hold_lapsed(booking.expires_at, now):
        raise InvalidState("Reservation has expired")

    booking.expires_at = extended_expires_at(booking.expires_at, now, minutes)
    logger.info("hold_extended booking_id=%s minutes=%s expires_at=%s", booking.id, minutes, booking.expires_at)
    return booking.expires_at


def open_hold(now: datetime) -> BookingState:
    """Initial state of a fresh reservation."""
    return BookingState(status=S.SLOT_RESERVED, expires_at=hold_expires_at(now))
