import datetime as dt
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric, String, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tour_booking.db.base import Base


class BookingStatus(str, Enum):
    SLOT_RESERVED = "slot_reserved"
    SLOT_EXPIRED = "slot_expired"
    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_FAILED = "payment_failed"
    PAID = "paid"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"
    CHECKED_IN = "checked_in"
    NO_SHOW = "no_show"
    COMPLETED = "completed"


# Statuses that no longer occupy a seat in their slot.
RELEASED_STATUSES = frozenset(
    {
        BookingStatus.CANCELLED,
        BookingStatus.SLOT_EXPIRED,
        BookingStatus.PAYMENT_FAILED,
        BookingStatus.REFUNDED,
    }
)

_RELEASED_SQL = ", ".join(f"'{s.value}'" for s in sorted(RELEASED_STATUSES, key=lambda s: s.value))
_HOLDING_PREDICATE = text(f"status NOT IN ({_RELEASED_SQL})")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("group_size >= 1 AND group_size <= 50", name="ck_bookings_group_size_range"),
        Index("ix_bookings_date_time_slot", "date", "time_slot_id"),
        Index(
            "uq_bookings_active_user_slot",
            "user_id",
            "date",
            "time_slot_id",
            unique=True,
            postgresql_where=_HOLDING_PREDICATE,
            sqlite_where=_HOLDING_PREDICATE,
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time_slot_id: Mapped[int] = mapped_column(
        ForeignKey("time_slots.id", ondelete="RESTRICT"), nullable=False
    )
    time_slot: Mapped[str] = mapped_column(String(50), nullable=False)
    group_size: Mapped[int] = mapped_column(nullable=False)
    deposit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("50.00"))
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.SLOT_RESERVED.value, index=True
    )
    expires_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    modified_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="bookings")
    slot = relationship("TimeSlot")
    payment = relationship("Payment", back_populates="booking", uselist=False)
    checkin = relationship("Checkin", back_populates="booking", uselist=False)
