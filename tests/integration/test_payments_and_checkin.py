from datetime import UTC, datetime

TOUR_DAY_MORNING = datetime(2025, 3, 20, 8, 30, tzinfo=UTC)


def _awaiting_payment(client, headers, reserve) -> dict:
    booking = reserve(headers).json()
    response = client.patch(f"/bookings/{booking['id']}/confirm-reservation", headers=headers)
    assert response.json()["status"] == "awaiting_payment"
    return response.json()


def _confirmed(client, headers, reserve) -> dict:
    booking = _awaiting_payment(client, headers, reserve)
    response = client.post(f"/bookings/{booking['id']}/payments", headers=headers, json={"amount": "50.00"})
    assert response.json()["status"] == "confirmed"
    return response.json()


def test_successful_payment_confirms_booking(client, user_headers, reserve):
    headers = user_headers()
    booking = _awaiting_payment(client, headers, reserve)

    response = client.post(
        f"/bookings/{booking['id']}/payments",
        headers=headers,
        json={"amount": "50.00", "transactionId": "txn-1", "paymentMethod": "card"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"


def test_failed_payment_releases_the_seat(client, user_headers, reserve):
    headers = user_headers()
    booking = _awaiting_payment(client, headers, reserve)

    response = client.post(
        f"/bookings/{booking['id']}/payments",
        headers=headers,
        json={"amount": "50.00", "succeeded": False},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "payment_failed"
    slots = client.get("/bookings/available-slots", params={"date": "2025-03-20"}).json()
    assert slots[0]["available"] == 5


def test_payment_below_deposit_is_rejected(client, user_headers, reserve):
    headers = user_headers()
    booking = _awaiting_payment(client, headers, reserve)

    response = client.post(f"/bookings/{booking['id']}/payments", headers=headers, json={"amount": "10.00"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_payment_on_held_booking_is_invalid_state(client, user_headers, reserve):
    headers = user_headers()
    booking = reserve(headers).json()

    response = client.post(f"/bookings/{booking['id']}/payments", headers=headers, json={"amount": "50.00"})

    assert response.status_code == 409


def test_refund_request_on_confirmed_booking(client, user_headers, reserve):
    headers = user_headers()
    booking = _confirmed(client, headers, reserve)

    response = client.post(f"/bookings/{booking['id']}/refund", headers=headers)

    assert response.status_code == 200
    assert response.json()["status"] == "refund_pending"


def test_check_in_on_tour_day(client, clock, user_headers, admin_headers, reserve):
    headers = user_headers("guest@example.com")
    booking = _confirmed(client, headers, reserve)
    clock.now = TOUR_DAY_MORNING

    response = client.post(
        "/checkins",
        headers=admin_headers,
        json={"bookingId": booking["id"], "email": "Guest@Example.com"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["bookingId"] == booking["id"]
    assert body["message"] == "Check-in successful"
    stored = client.get(f"/bookings/{booking['id']}", headers=headers).json()
    assert stored["status"] == "checked_in"


def test_check_in_with_wrong_email_is_rejected(client, clock, user_headers, admin_headers, reserve):
    booking = _confirmed(client, user_headers("guest@example.com"), reserve)
    clock.now = TOUR_DAY_MORNING

    response = client.post(
        "/checkins",
        headers=admin_headers,
        json={"bookingId": booking["id"], "email": "someone-else@example.com"},
    )

    assert response.status_code == 422
    assert response.json()["error"]["message"] == "Invalid booking details."


def test_check_in_twice_is_invalid_state(client, clock, user_headers, admin_headers, reserve):
    booking = _confirmed(client, user_headers("guest@example.com"), reserve)
    clock.now = TOUR_DAY_MORNING
    payload = {"bookingId": booking["id"], "email": "guest@example.com"}

    first = client.post("/checkins", headers=admin_headers, json=payload)
    second = client.post("/checkins", headers=admin_headers, json=payload)

    assert first.status_code == 201
    assert second.status_code == 409


def test_check_in_before_tour_day_is_invalid_state(client, user_headers, admin_headers, reserve):
    booking = _confirmed(client, user_headers("guest@example.com"), reserve)

    response = client.post(
        "/checkins",
        headers=admin_headers,
        json={"bookingId": booking["id"], "email": "guest@example.com"},
    )

    assert response.status_code == 409
    assert "tour date" in response.json()["error"]["message"]


def test_check_in_requires_admin(client, user_headers, reserve):
    headers = user_headers("guest@example.com")
    booking = _confirmed(client, headers, reserve)

    response = client.post("/checkins", headers=headers, json={"bookingId": booking["id"], "email": "guest@example.com"})

    assert response.status_code == 403
