from pydantic import BaseModel, EmailStr, Field, field_validator

from tour_booking.core.config import settings
from tour_booking.db.models.user import UserRole


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    role: UserRole = UserRole.USER

    @field_validator("password")
    @classmethod
    def password_mixes_letters_and_digits(cls, value: str) -> str:
        if not any(char.isalpha() for char in value) or not any(char.isdigit() for char in value):
            raise ValueError("Password must contain both letters and digits")
        return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(default_factory=lambda: settings.access_token_expire_minutes * 60)
