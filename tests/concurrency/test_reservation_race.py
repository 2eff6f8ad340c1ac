from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from tour_booking.core.exceptions import CapacityExceeded, DuplicateReservation
from tour_booking.db.base import Base
from tour_booking.db.models import Booking, TimeSlot, User, UserRole
from tour_booking.services.booking_service import reserve_slot
from tour_booking.services.time_slot_service import seed_default_time_slots

NOW = datetime(2025, 3, 19, 12, 0, tzinfo=UTC)
TOUR_DATE = date(2025, 3, 20)
SLOT = "09:00 - 10:00"


def _file_session_factory(tmp_path):
    db_file = tmp_path / "race.db"
    engine = create_engine(
        f"sqlite+pysqlite:///{db_file}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    seed_session = SessionLocal()
    seed_default_time_slots(seed_session)
    seed_session.close()
    return SessionLocal


def _seed_users(SessionLocal, count: int) -> list[int]:
    db = SessionLocal()
    users = [
        User(email=f"race-visitor-{i}@example.com", hashed_password="x", role=UserRole.USER.value)
        for i in range(count)
    ]
    db.add_all(users)
    db.commit()
    user_ids = [user.id for user in users]
    db.close()
    return user_ids


def _attempt(SessionLocal, user_id: int) -> str:
    session = SessionLocal()
    try:
        reserve_slot(db=session, user_id=user_id, tour_date=TOUR_DATE, time_slot=SLOT, group_size=3, now=NOW)
        return "created"
    except CapacityExceeded:
        return "capacity_exceeded"
    except DuplicateReservation:
        return "duplicate"
    finally:
        session.close()


def _active_count(SessionLocal) -> int:
    check = SessionLocal()
    try:
        slot_id = check.scalar(select(TimeSlot.id).order_by(TimeSlot.starts_at).limit(1))
        return check.scalar(
            select(func.count(Booking.id)).where(Booking.date == TOUR_DATE, Booking.time_slot_id == slot_id)
        )
    finally:
        check.close()


@pytest.mark.concurrent
def test_two_parallel_requests_for_last_seat_only_one_succeeds(tmp_path):
    SessionLocal = _file_session_factory(tmp_path)
    user_ids = _seed_users(SessionLocal, 6)
    for user_id in user_ids[:4]:
        assert _attempt(SessionLocal, user_id) == "created"

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda uid: _attempt(SessionLocal, uid), user_ids[4:]))

    assert sorted(results) == ["capacity_exceeded", "created"]
    assert _active_count(SessionLocal) == 5


@pytest.mark.concurrent
def test_parallel_duplicate_requests_create_one_booking(tmp_path):
    SessionLocal = _file_session_factory(tmp_path)
    (user_id,) = _seed_users(SessionLocal, 1)

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: _attempt(SessionLocal, user_id), range(2)))

    assert sorted(results) == ["created", "duplicate"]
    assert _active_count(SessionLocal) == 1


@pytest.mark.concurrent
def test_burst_of_requests_never_overbooks(tmp_path):
    SessionLocal = _file_session_factory(tmp_path)
    user_ids = _seed_users(SessionLocal, 12)

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda uid: _attempt(SessionLocal, uid), user_ids))

    assert results.count("created") == 5
    assert results.count("capacity_exceeded") == 7
    assert _active_count(SessionLocal) == 5
