"""Client-side mirror of a held reservation.

The tracker keeps a local countdown towards the server-side ``expiresAt`` so a
UI can show the remaining hold time and clean up when it runs out. It is never
authoritative: the server decides expiry on the next API call.
"""

import json
import logging
import math
import threading
from collections.abc import Callable
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tour_booking.client.api_client import ApiError
from tour_booking.core.config import settings
from tour_booking.services.expiry_policy import ensure_utc, utc_now

logger = logging.getLogger("tour_booking.client.session")

STORAGE_KEY = "booking_reservation"


class ReservationSession(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    booking_id: str
    expires_at: datetime | None = None
    group_size: int
    date: date
    time_slot: str
    deposit: Decimal


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStore:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Key-value store persisted as one JSON object on disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            logger.warning("session_store_unreadable path=%s", self._path)
            return {}
        if not isinstance(data, dict):
            logger.warning("session_store_unreadable path=%s", self._path)
            return {}
        return data

    def _write(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data), encoding="utf-8")

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)


class BookingSessionTracker:
    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] = utc_now,
        cancel_reservation: Callable[[str], object] | None = None,
        on_expired: Callable[[], None] | None = None,
        hold_minutes: int | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._cancel_reservation = cancel_reservation
        self._on_expired = on_expired
        self._hold_minutes = settings.reservation_hold_minutes if hold_minutes is None else hold_minutes

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._expiry_notified = False

        self.reservation: ReservationSession | None = None
        self.time_remaining = 0
        self.is_expired = False

    def _seconds_until(self, expires_at: datetime) -> int:
        return math.floor((ensure_utc(expires_at) - ensure_utc(self._clock())).total_seconds())

    def _notify_expired(self) -> None:
        with self._lock:
            if self._expiry_notified:
                return
            self._expiry_notified = True
        if self._on_expired is not None:
            self._on_expired()

    def load(self) -> ReservationSession | None:
        raw = self._store.get(STORAGE_KEY)
        if raw is None:
            return None

        try:
            session = ReservationSession.model_validate_json(raw)
        except ValueError:
            logger.warning("stored_reservation_unreadable key=%s", STORAGE_KEY)
            self._store.remove(STORAGE_KEY)
            return None

        remaining = self._seconds_until(session.expires_at) if session.expires_at else 0
        if remaining <= 0:
            self._store.remove(STORAGE_KEY)
            with self._lock:
                self.reservation = None
                self.time_remaining = 0
                self.is_expired = True
            logger.info("stored_reservation_expired booking_id=%s", session.booking_id)
            self._notify_expired()
            return None

        with self._lock:
            self.reservation = session
            self.time_remaining = remaining
            self.is_expired = False
            self._expiry_notified = False
        return session

    def tick(self) -> int:
        with self._lock:
            if self.reservation is None or self.time_remaining <= 0:
                return self.time_remaining
            self.time_remaining -= 1
            if self.time_remaining > 0:
                return self.time_remaining

            booking_id = self.reservation.booking_id
            self.reservation = None
            self.is_expired = True
            self._store.remove(STORAGE_KEY)
            self._stop_event.set()

        logger.info("reservation_countdown_finished booking_id=%s", booking_id)
        self._notify_expired()
        return 0

    def start(self, interval: float = 1.0) -> bool:
        with self._lock:
            if self.reservation is None or self.time_remaining <= 0:
                return False
            if self._thread is not None and self._thread.is_alive():
                return True
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                args=(interval,),
                name="reservation-countdown",
                daemon=True,
            )
            self._thread.start()
            return True

    def _run(self, interval: float) -> None:
        while not self._stop_event.wait(interval):
            if self.tick() <= 0:
                break

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)
        self._thread = None

    def save_reservation(self, session: ReservationSession) -> ReservationSession:
        if session.expires_at is None:
            logger.warning("reservation_missing_expiry booking_id=%s", session.booking_id)
            session = session.model_copy(
                update={"expires_at": ensure_utc(self._clock()) + timedelta(minutes=self._hold_minutes)}
            )

        self._store.set(STORAGE_KEY, session.model_dump_json(by_alias=True))
        with self._lock:
            self.reservation = session
            self.time_remaining = max(self._seconds_until(session.expires_at), 0)
            self.is_expired = False
            self._expiry_notified = False
        return session

    def clear_reservation(self, call_backend: bool = False) -> None:
        with self._lock:
            current = self.reservation
            self._store.remove(STORAGE_KEY)
            self.reservation = None
            self.time_remaining = 0
            self.is_expired = False
        self.stop()

        if call_backend and current is not None and self._cancel_reservation is not None:
            try:
                self._cancel_reservation(current.booking_id)
            except ApiError as exc:
                # Local state stays cleared: the user asked to cancel.
                logger.warning(
                    "backend_cancel_failed booking_id=%s kind=%s message=%s",
                    current.booking_id,
                    exc.kind,
                    exc.message,
                )
            except Exception:
                logger.exception("backend_cancel_failed booking_id=%s kind=unexpected", current.booking_id)

    def extend_reservation(self, minutes: int) -> ReservationSession | None:
        with self._lock:
            current = self.reservation
        if current is None:
            return None
        new_expires_at = ensure_utc(self._clock()) + timedelta(minutes=minutes)
        return self.save_reservation(current.model_copy(update={"expires_at": new_expires_at}))
