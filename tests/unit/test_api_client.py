import json
from datetime import date

import httpx
import pytest

from tour_booking.client.api_client import ApiError, TourBookingClient


def _client(handler) -> TourBookingClient:
    return TourBookingClient("http://tours.test", token="token-1", transport=httpx.MockTransport(handler))


def test_reserve_sends_camel_case_payload_with_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "b-1", "status": "slot_reserved"})

    with _client(handler) as client:
        body = client.reserve(date(2025, 3, 20), "09:00 - 10:00", 5)

    assert body["status"] == "slot_reserved"
    assert seen["auth"] == "Bearer token-1"
    assert seen["path"] == "/bookings/reserve"
    assert seen["body"] == {"date": "2025-03-20", "timeSlot": "09:00 - 10:00", "groupSize": 5}


def test_error_payload_becomes_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409,
            json={"error": {"code": "capacity_exceeded", "message": "Selected time slot is fully booked"}},
        )

    with _client(handler) as client:
        with pytest.raises(ApiError) as exc_info:
            client.reserve(date(2025, 3, 20), "09:00 - 10:00", 5)

    assert exc_info.value.kind == "capacity_exceeded"
    assert exc_info.value.message == "Selected time slot is fully booked"
    assert exc_info.value.status_code == 409


def test_non_json_error_keeps_status_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with _client(handler) as client:
        with pytest.raises(ApiError) as exc_info:
            client.cancel_reservation("b-1")

    assert exc_info.value.kind == "http_502"
    assert exc_info.value.status_code == 502


def test_transport_failure_is_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(ApiError) as exc_info:
            client.available_slots(date(2025, 3, 20))

    assert exc_info.value.kind == "network_error"
    assert exc_info.value.status_code is None


def test_extend_reservation_patches_minutes():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "b-1"})

    with _client(handler) as client:
        client.extend_reservation("b-1", 10)

    assert seen == {"method": "PATCH", "path": "/bookings/b-1/extend-reservation", "body": {"minutes": 10}}


def test_non_json_success_body_is_invalid_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>ok</html>")

    with _client(handler) as client:
        with pytest.raises(ApiError) as exc_info:
            client.cancel_reservation("b-1")

    assert exc_info.value.kind == "invalid_response"
    assert exc_info.value.status_code == 200
