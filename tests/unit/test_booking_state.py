from datetime import UTC, date, datetime, timedelta

import pytest

from tour_booking.core.exceptions import InvalidState
from tour_booking.db.models import Booking, BookingStatus
from tour_booking.services.booking_state import (
    ADMIN_TARGETS,
    TRANSITIONS,
    allowed_targets,
    apply_transition,
    check_admin_target,
    extend_hold,
    open_hold,
    transition,
)

NOW = datetime(2025, 3, 20, 9, 0, tzinfo=UTC)


def test_open_hold_starts_fifteen_minute_reservation():
    state = open_hold(NOW)

    assert state.status == BookingStatus.SLOT_RESERVED
    assert state.expires_at == NOW + timedelta(minutes=15)


def test_confirm_within_hold_clears_expiry():
    state = transition(
        BookingStatus.SLOT_RESERVED,
        BookingStatus.AWAITING_PAYMENT,
        now=NOW,
        expires_at=NOW + timedelta(minutes=5),
    )

    assert state.status == BookingStatus.AWAITING_PAYMENT
    assert state.expires_at is None


def test_confirm_after_hold_lapsed_is_invalid_state():
    with pytest.raises(InvalidState, match="expired"):
        transition(
            BookingStatus.SLOT_RESERVED,
            BookingStatus.AWAITING_PAYMENT,
            now=NOW,
            expires_at=NOW - timedelta(seconds=1),
        )


def test_expiry_requires_lapsed_hold():
    with pytest.raises(InvalidState):
        transition(
            BookingStatus.SLOT_RESERVED,
            BookingStatus.SLOT_EXPIRED,
            now=NOW,
            expires_at=NOW + timedelta(minutes=1),
        )

    state = transition(
        BookingStatus.SLOT_RESERVED,
        BookingStatus.SLOT_EXPIRED,
        now=NOW,
        expires_at=NOW - timedelta(minutes=1),
    )
    assert state.status == BookingStatus.SLOT_EXPIRED
    assert state.expires_at is None


@pytest.mark.parametrize(
    "current",
    [
        BookingStatus.CANCELLED,
        BookingStatus.COMPLETED,
        BookingStatus.NO_SHOW,
        BookingStatus.REFUNDED,
        BookingStatus.REFUND_FAILED,
        BookingStatus.SLOT_EXPIRED,
        BookingStatus.PAYMENT_FAILED,
    ],
)
def test_terminal_statuses_have_no_exit(current):
    assert allowed_targets(current) == frozenset()
    with pytest.raises(InvalidState):
        transition(current, BookingStatus.CANCELLED, now=NOW, expires_at=None)


def test_unknown_status_is_invalid_state():
    with pytest.raises(InvalidState, match="Unknown booking status"):
        transition(BookingStatus.CONFIRMED, "teleported", now=NOW, expires_at=None)


def test_nothing_transitions_back_into_slot_reserved():
    for targets in TRANSITIONS.values():
        assert BookingStatus.SLOT_RESERVED not in targets


def test_check_in_only_on_tour_date():
    with pytest.raises(InvalidState, match="tour date"):
        transition(
            BookingStatus.CONFIRMED,
            BookingStatus.CHECKED_IN,
            now=NOW,
            expires_at=None,
            tour_date=date(2025, 3, 21),
        )

    state = transition(
        BookingStatus.CONFIRMED,
        BookingStatus.CHECKED_IN,
        now=NOW,
        expires_at=None,
        tour_date=date(2025, 3, 20),
    )
    assert state.status == BookingStatus.CHECKED_IN


def test_admin_targets_exclude_clock_and_owner_moves():
    assert BookingStatus.SLOT_RESERVED not in ADMIN_TARGETS
    assert BookingStatus.SLOT_EXPIRED not in ADMIN_TARGETS
    assert BookingStatus.AWAITING_PAYMENT not in ADMIN_TARGETS
    assert check_admin_target("cancelled") == BookingStatus.CANCELLED
    with pytest.raises(InvalidState):
        check_admin_target(BookingStatus.SLOT_EXPIRED)


def test_apply_transition_stamps_cancellation():
    booking = Booking(
        id="b-1",
        date=date(2025, 3, 20),
        status=BookingStatus.CONFIRMED.value,
        expires_at=None,
    )

    apply_transition(booking, BookingStatus.CANCELLED, NOW)

    assert booking.status == BookingStatus.CANCELLED.value
    assert booking.expires_at is None
    assert booking.cancelled_at == NOW


def test_extend_hold_adds_minutes_to_current_expiry():
    booking = Booking(
        id="b-2",
        date=date(2025, 3, 20),
        status=BookingStatus.SLOT_RESERVED.value,
        expires_at=NOW + timedelta(minutes=3),
    )

    new_expiry = extend_hold(booking, 10, NOW)

    assert new_expiry == NOW + timedelta(minutes=13)
    assert booking.expires_at == new_expiry


def test_extend_hold_rejects_non_reserved_booking():
    booking = Booking(id="b-3", date=date(2025, 3, 20), status=BookingStatus.CONFIRMED.value, expires_at=None)

    with pytest.raises(InvalidState):
        extend_hold(booking, 5, NOW)
