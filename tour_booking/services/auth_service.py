from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tour_booking.core.config import settings
from tour_booking.core.security import create_access_token, get_password_hash, verify_password
from tour_booking.db.models.user import User, UserRole
from tour_booking.schemas.auth import LoginRequest, RegisterRequest, TokenResponse

DUPLICATE_EMAIL_DETAIL = "User with this email already exists"


def create_user(db: Session, email: str, password: str, role: UserRole = UserRole.USER) -> User:
    user = User(
        email=email.lower(),
        hashed_password=get_password_hash(password),
        role=role.value,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_EMAIL_DETAIL) from None
    db.refresh(user)
    return user


def register_user(payload: RegisterRequest, db: Session) -> User:
    if payload.role == UserRole.ADMIN and not settings.allow_admin_registration:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin accounts cannot be self-registered",
        )

    email = payload.email.lower()
    if db.scalar(select(User).where(User.email == email)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_EMAIL_DETAIL)
    return create_user(db, email=email, password=payload.password, role=payload.role)


def login_user(payload: LoginRequest, db: Session) -> TokenResponse:
    email = payload.email.lower()
    user = db.scalar(select(User).where(User.email == email))
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    token = create_access_token(subject=str(user.id), extra_claims={"role": user.role, "email": user.email})
    return TokenResponse(access_token=token)
