from datetime import datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tour_booking.api.deps import get_now, require_roles
from tour_booking.db.models import User, UserRole
from tour_booking.db.session import get_db
from tour_booking.schemas.checkin import CheckinRequest, CheckinResponse
from tour_booking.services.checkin_service import check_in

router = APIRouter(prefix="/checkins", tags=["checkins"])


@router.post("", response_model=CheckinResponse, status_code=status.HTTP_201_CREATED)
def create_checkin(
    payload: CheckinRequest,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
) -> CheckinResponse:
    checkin = check_in(db=db, booking_id=payload.booking_id, email=payload.email, now=now)
    return CheckinResponse.model_validate(checkin)
