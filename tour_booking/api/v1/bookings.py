from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tour_booking.api.deps import get_current_user, get_now, get_optional_current_user, require_roles
from tour_booking.api.pagination import LimitParam, OffsetParam
from tour_booking.db.models import BookingStatus, User, UserRole
from tour_booking.db.session import get_db
from tour_booking.schemas.booking import (
    BookingResponse,
    BookingStatusUpdateRequest,
    ExtendReservationRequest,
    PaymentCallbackRequest,
    ReserveSlotRequest,
    SlotAvailabilityResponse,
)
from tour_booking.services import booking_service
from tour_booking.services.availability_service import get_available_slots

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get(
    "/available-slots",
    response_model=list[SlotAvailabilityResponse],
    status_code=status.HTTP_200_OK,
)
def available_slots(
    date_filter: date = Query(alias="date"),
    current_user: User | None = Depends(get_optional_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> list[SlotAvailabilityResponse]:
    slots = get_available_slots(
        db=db,
        tour_date=date_filter,
        now=now,
        user_id=current_user.id if current_user else None,
    )
    return [SlotAvailabilityResponse.model_validate(slot) for slot in slots]


@router.post("/reserve", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def reserve_slot(
    payload: ReserveSlotRequest,
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.reserve_slot(
        db=db,
        user_id=current_user.id,
        tour_date=payload.date,
        time_slot=payload.time_slot,
        group_size=payload.group_size,
        deposit=payload.deposit,
        now=now,
    )
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/confirm-reservation", response_model=BookingResponse)
def confirm_reservation(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.confirm_reservation(db=db, booking_id=booking_id, actor=current_user, now=now)
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/cancel-reservation", response_model=BookingResponse)
def cancel_reservation(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.cancel_booking(db=db, booking_id=booking_id, actor=current_user, now=now)
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/extend-reservation", response_model=BookingResponse)
def extend_reservation(
    booking_id: str,
    payload: ExtendReservationRequest,
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.extend_reservation(
        db=db,
        booking_id=booking_id,
        actor=current_user,
        minutes=payload.minutes,
        now=now,
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/payments", response_model=BookingResponse)
def record_payment(
    booking_id: str,
    payload: PaymentCallbackRequest,
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.record_payment(
        db=db,
        booking_id=booking_id,
        actor=current_user,
        amount=payload.amount,
        succeeded=payload.succeeded,
        transaction_id=payload.transaction_id,
        payment_method=payload.payment_method,
        now=now,
    )
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/refund", response_model=BookingResponse)
def request_refund(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.request_refund(db=db, booking_id=booking_id, actor=current_user, now=now)
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdateRequest,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.admin_set_status(db=db, booking_id=booking_id, requested=payload.status, now=now)
    return BookingResponse.model_validate(booking)


@router.get("/me", response_model=list[BookingResponse])
def list_my_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    date_filter: date | None = Query(default=None, alias="date"),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> list[BookingResponse]:
    bookings = booking_service.list_bookings(
        db=db,
        now=now,
        user_id=current_user.id,
        status_filter=status_filter,
        tour_date=date_filter,
        limit=limit,
        offset=offset,
    )
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("", response_model=list[BookingResponse])
def list_all_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    date_filter: date | None = Query(default=None, alias="date"),
    search: str | None = Query(default=None, max_length=255),
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> list[BookingResponse]:
    bookings = booking_service.list_bookings(
        db=db,
        now=now,
        status_filter=status_filter,
        tour_date=date_filter,
        search=search,
        limit=limit,
        offset=offset,
    )
    return [BookingResponse.model_validate(booking) for booking in bookings]


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking_by_id(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> BookingResponse:
    booking = booking_service.get_booking_for_actor(db=db, booking_id=booking_id, actor=current_user, now=now)
    return BookingResponse.model_validate(booking)
