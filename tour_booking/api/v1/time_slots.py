from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tour_booking.db.session import get_db
from tour_booking.schemas.slot import TimeSlotResponse
from tour_booking.services.availability_service import list_time_slots

router = APIRouter(prefix="/time-slots", tags=["time-slots"])


@router.get("", response_model=list[TimeSlotResponse], status_code=status.HTTP_200_OK)
def get_time_slots(db: Session = Depends(get_db)) -> list[TimeSlotResponse]:
    return [TimeSlotResponse.model_validate(slot) for slot in list_time_slots(db)]
