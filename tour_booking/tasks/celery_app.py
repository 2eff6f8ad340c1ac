from datetime import timedelta

from celery import Celery

from tour_booking.core.config import settings

celery_app = Celery(
    "tour_booking",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["tour_booking.tasks.expirations"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "expire-lapsed-reservations": {
            "task": "bookings.expire_lapsed_reservations",
            "schedule": timedelta(minutes=settings.celery_expiration_interval_minutes),
        },
        "close-past-tours": {
            "task": "bookings.close_past_tours",
            "schedule": timedelta(minutes=settings.celery_day_end_sweep_interval_minutes),
        },
    },
)
