from datetime import datetime, time

from sqlalchemy import DateTime, Integer, Time, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from tour_booking.db.base import Base


class TimeSlot(Base):
    """A recurring daily tour slot. Capacity counts bookings, not visitors."""

    __tablename__ = "time_slots"
    __table_args__ = (UniqueConstraint("starts_at", "ends_at", name="uq_time_slots_starts_ends"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    starts_at: Mapped[time] = mapped_column(Time(), nullable=False)
    ends_at: Mapped[time] = mapped_column(Time(), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    # Bumped by every reservation so the row write lock serializes them.
    reservation_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    @property
    def label(self) -> str:
        return format_slot_label(self.starts_at, self.ends_at)


def format_slot_label(starts_at: time, ends_at: time) -> str:
    return f"{starts_at:%H:%M} - {ends_at:%H:%M}"
