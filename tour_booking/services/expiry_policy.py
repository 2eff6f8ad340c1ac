from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from tour_booking.core.config import settings
from tour_booking.db.models import BookingStatus


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive timestamps; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def tour_local_date(now: datetime) -> date:
    return ensure_utc(now).astimezone(ZoneInfo(settings.tour_timezone)).date()


def hold_lapsed(expires_at: datetime | None, now: datetime) -> bool:
    return expires_at is not None and ensure_utc(now) > ensure_utc(expires_at)


def is_expired(status: BookingStatus | str, expires_at: datetime | None, now: datetime) -> bool:
    """Whether a booking's soft hold is over.

    A booking is expired once it has been flipped to ``slot_expired``, or while
    it is still nominally ``slot_reserved`` but ``now`` is past its
    ``expires_at``. Every other status is never expired.
    """
    status = BookingStatus(status)
    if status == BookingStatus.SLOT_EXPIRED:
        return True
    return status == BookingStatus.SLOT_RESERVED and hold_lapsed(expires_at, now)


def hold_expires_at(now: datetime, minutes: int | None = None) -> datetime:
    hold_minutes = settings.reservation_hold_minutes if minutes is None else minutes
    return ensure_utc(now) + timedelta(minutes=hold_minutes)


def extended_expires_at(current: datetime | None, now: datetime, minutes: int) -> datetime:
    if minutes < 1:
        raise ValueError("minutes must be positive")
    base = ensure_utc(current) if current is not None else ensure_utc(now)
    return base + timedelta(minutes=minutes)
