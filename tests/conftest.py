import sys
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[1]))

from tour_booking.api.deps import get_now
from tour_booking.db.base import Base
from tour_booking.db.models import Booking, Checkin, Payment, TimeSlot, User, UserRole  # noqa: F401
from tour_booking.db.session import get_db
from tour_booking.main import app
from tour_booking.services.auth_service import create_user
from tour_booking.services.time_slot_service import seed_default_time_slots

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

START_TIME = datetime(2025, 3, 19, 12, 0, tzinfo=UTC)
TOUR_DATE = date(2025, 3, 20)
FIRST_SLOT = "09:00 - 10:00"
PASSWORD = "StrongPass123"


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        seed_default_time_slots(db)
    finally:
        db.close()


@pytest.fixture()
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def clock() -> MutableClock:
    return MutableClock(START_TIME)


@pytest.fixture()
def client(clock) -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _login(client: TestClient, email: str) -> dict[str, str]:
    response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture()
def user_headers(client):
    def make(email: str = "visitor@example.com") -> dict[str, str]:
        response = client.post("/auth/register", json={"email": email, "password": PASSWORD})
        assert response.status_code == 201, response.text
        return _login(client, email)

    return make


@pytest.fixture()
def admin_headers(client) -> dict[str, str]:
    db = TestingSessionLocal()
    try:
        create_user(db, email="admin@example.com", password=PASSWORD, role=UserRole.ADMIN)
    finally:
        db.close()
    return _login(client, "admin@example.com")


@pytest.fixture()
def reserve(client):
    def make(headers, tour_date: date = TOUR_DATE, time_slot: str = FIRST_SLOT, group_size: int = 5):
        return client.post(
            "/bookings/reserve",
            headers=headers,
            json={"date": tour_date.isoformat(), "timeSlot": time_slot, "groupSize": group_size},
        )

    return make
