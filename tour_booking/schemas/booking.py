from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from tour_booking.services.expiry_policy import ensure_utc

CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReserveSlotRequest(BaseModel):
    model_config = CAMEL_CONFIG

    date: date
    time_slot: str = Field(min_length=1, max_length=50)
    # Range is enforced by the reservation service so it reports ValidationError.
    group_size: int
    deposit: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)


class ExtendReservationRequest(BaseModel):
    model_config = CAMEL_CONFIG

    minutes: int = Field(ge=1, le=120)


class PaymentCallbackRequest(BaseModel):
    model_config = CAMEL_CONFIG

    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    succeeded: bool = True
    transaction_id: str | None = Field(default=None, max_length=255)
    payment_method: str | None = Field(default=None, max_length=100)


class BookingStatusUpdateRequest(BaseModel):
    # Kept as a plain string: unknown values are an invalid transition, not a schema error.
    status: str = Field(min_length=1, max_length=32)


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    date: date
    time_slot: str
    group_size: int
    deposit: Decimal
    status: str
    expires_at: datetime | None
    created_at: datetime
    cancelled_at: datetime | None = None
    user_id: int

    @field_validator("expires_at", "created_at", "cancelled_at")
    @classmethod
    def as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class SlotAvailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    slot: str
    available: int
    capacity: int
    user_has_booking: bool = False
    user_booking_status: str | None = None
