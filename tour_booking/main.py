import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError

from tour_booking.api.v1.auth import router as auth_router
from tour_booking.api.v1.bookings import router as bookings_router
from tour_booking.api.v1.checkins import router as checkins_router
from tour_booking.api.v1.time_slots import router as time_slots_router
from tour_booking.api.v1.users import router as users_router
from tour_booking.core.exceptions import (
    BookingError,
    booking_exception_handler,
    http_exception_handler,
    storage_exception_handler,
    validation_exception_handler,
)
from tour_booking.core.logging import setup_logging
from tour_booking.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, render_metrics
from tour_booking.core.request_context import request_id_ctx_var

app = FastAPI(title="Campus Tour Booking API", version="0.1.0")
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(BookingError, booking_exception_handler)
app.add_exception_handler(OperationalError, storage_exception_handler)
setup_logging()
logger = logging.getLogger("tour_booking.request")

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(time_slots_router)
app.include_router(bookings_router)
app.include_router(checkins_router)


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    token = request_id_ctx_var.set(request_id)
    start = time.perf_counter()
    method = request.method
    try:
        response = await call_next(request)
    except Exception:
        elapsed = time.perf_counter() - start
        path = _route_path(request)
        REQUEST_COUNT.labels(method=method, path=path, status_code=500).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
        logger.exception(
            "request_failed method=%s path=%s status=500 duration_ms=%.2f",
            method,
            path,
            elapsed * 1000,
        )
        request_id_ctx_var.reset(token)
        raise

    elapsed = time.perf_counter() - start
    path = _route_path(request)
    REQUEST_COUNT.labels(method=method, path=path, status_code=response.status_code).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request_completed method=%s path=%s status=%s duration_ms=%.2f",
        method,
        path,
        response.status_code,
        elapsed * 1000,
    )
    request_id_ctx_var.reset(token)
    return response


def _route_path(request: Request) -> str:
    # Route templates keep metric label cardinality bounded.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics", tags=["observability"])
def metrics() -> Response:
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)
