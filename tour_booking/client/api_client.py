from datetime import date
from decimal import Decimal
from typing import Any

import httpx

NETWORK_ERROR = "network_error"
INVALID_RESPONSE = "invalid_response"
UNKNOWN_ERROR = "unknown_error"


class ApiError(Exception):
    """Failure of a booking API call, flattened from the server error payload."""

    def __init__(self, kind: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            body = response.json()
        except ValueError:
            body = None

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            kind = str(error.get("code") or UNKNOWN_ERROR)
            message = str(error.get("message") or response.reason_phrase)
        else:
            kind = f"http_{response.status_code}"
            message = response.text or response.reason_phrase
        return cls(kind=kind, message=message, status_code=response.status_code)


class TourBookingClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.Client(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "TourBookingClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ApiError(kind=NETWORK_ERROR, message=str(exc)) from exc
        if response.is_error:
            raise ApiError.from_response(response)
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                kind=INVALID_RESPONSE,
                message="Response body is not valid JSON",
                status_code=response.status_code,
            ) from exc

    def available_slots(self, tour_date: date) -> list[dict[str, Any]]:
        return self._request("GET", "/bookings/available-slots", params={"date": tour_date.isoformat()})

    def reserve(
        self,
        tour_date: date,
        time_slot: str,
        group_size: int,
        deposit: Decimal | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "date": tour_date.isoformat(),
            "timeSlot": time_slot,
            "groupSize": group_size,
        }
        if deposit is not None:
            payload["deposit"] = str(deposit)
        return self._request("POST", "/bookings/reserve", json=payload)

    def confirm_reservation(self, booking_id: str) -> dict[str, Any]:
        return self._request("PATCH", f"/bookings/{booking_id}/confirm-reservation")

    def cancel_reservation(self, booking_id: str) -> dict[str, Any]:
        return self._request("PATCH", f"/bookings/{booking_id}/cancel-reservation")

    def extend_reservation(self, booking_id: str, minutes: int) -> dict[str, Any]:
        return self._request("PATCH", f"/bookings/{booking_id}/extend-reservation", json={"minutes": minutes})
