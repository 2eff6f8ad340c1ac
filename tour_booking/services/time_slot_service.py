import logging
from datetime import time

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tour_booking.core.config import settings
from tour_booking.db.models import TimeSlot

logger = logging.getLogger("tour_booking.time_slots")

DEFAULT_SLOT_HOURS: tuple[tuple[int, int], ...] = (
    (9, 10),
    (10, 11),
    (11, 12),
    (13, 14),
    (14, 15),
    (15, 16),
)


def seed_default_time_slots(db: Session, capacity: int | None = None) -> int:
    if db.scalar(select(func.count(TimeSlot.id))):
        return 0

    slot_capacity = settings.default_slot_capacity if capacity is None else capacity
    db.add_all(
        [
            TimeSlot(starts_at=time(start), ends_at=time(end), capacity=slot_capacity)
            for start, end in DEFAULT_SLOT_HOURS
        ]
    )
    db.commit()
    logger.info("time_slots_seeded count=%s capacity=%s", len(DEFAULT_SLOT_HOURS), slot_capacity)
    return len(DEFAULT_SLOT_HOURS)
