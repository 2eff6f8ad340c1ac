from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from tour_booking.core.request_context import request_id_ctx_var


class BookingError(Exception):
    """Base for booking failures the caller can act on.

    Each subclass carries a stable ``kind`` that ends up as the ``error.code``
    of the response body, and the HTTP status it is rendered with.
    """

    kind = "booking_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(BookingError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(BookingError):
    kind = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class CapacityExceeded(BookingError):
    kind = "capacity_exceeded"
    status_code = status.HTTP_409_CONFLICT


class DuplicateReservation(BookingError):
    kind = "duplicate_reservation"
    status_code = status.HTTP_409_CONFLICT


class ValidationError(BookingError):
    kind = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


def _error_payload(code: str, message: str, detail):
    return {
        "error": {
            "code": code,
            "message": message,
            "detail": detail,
        },
        "detail": detail,
        "request_id": request_id_ctx_var.get(),
    }


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(
            code=f"http_{exc.status_code}",
            message=str(exc.detail),
            detail=exc.detail,
        ),
        headers=exc.headers,
    )


async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_payload(
            code="validation_error",
            message="Request validation failed",
            detail=jsonable_encoder(exc.errors()),
        ),
    )


async def booking_exception_handler(_: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(code=exc.kind, message=exc.message, detail=exc.message),
    )


async def storage_exception_handler(_: Request, exc: OperationalError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_payload(
            code="storage_unavailable",
            message="Storage is temporarily unavailable. Retry the request.",
            detail="Storage is temporarily unavailable. Retry the request.",
        ),
        headers={"Retry-After": "1"},
    )
