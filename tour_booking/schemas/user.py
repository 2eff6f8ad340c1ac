from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr

from tour_booking.db.models.user import UserRole


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    role: UserRole
    is_admin: bool
    is_active: bool
    created_at: datetime
