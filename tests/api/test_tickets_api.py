import io
from datetime import date

import pytest
from PIL import Image

from checkin_service.crud.booking_crud import booking_crud
from checkin_service.services.ticketing.payload_codec import parse_token
from tests.utils.booking import create_random_booking


def test_get_ticket_issues_once(test_client, db_session):
    booking = create_random_booking(db_session, confirmation_code="TIX001")

    first = test_client.get(f"/api/v1/bookings/{booking.id}/ticket")
    second = test_client.get(f"/api/v1/bookings/{booking.id}/ticket")

    assert first.status_code == 200
    data = first.json()
    assert data["bookingId"] == booking.id
    assert data["filename"] == "ticket-TIX001.png"
    assert data["expiresAt"] > data["issuedAt"]
    assert second.json()["token"] == data["token"]

    claims = parse_token(data["token"]).claims
    assert claims.confirmation_code == "TIX001"
    assert claims.group_size == 4
    assert "guest@example.com" not in str(claims.model_dump()).lower()
    assert booking_crud.get(db_session, booking.id).ticket_issued_at == data["issuedAt"]


def test_get_ticket_for_unknown_booking_is_404(test_client):
    response = test_client.get("/api/v1/bookings/bk_missing/ticket")

    assert response.status_code == 404
    assert response.json()["code"] == "unknown_booking"


def test_download_png(test_client, db_session):
    booking = create_random_booking(db_session, confirmation_code="TIX002")

    response = test_client.get(f"/api/v1/bookings/{booking.id}/ticket.png?size=256")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.headers["content-disposition"] == 'attachment; filename="ticket-TIX002.png"'
    image = Image.open(io.BytesIO(response.content))
    assert image.size == (256, 256)


def test_download_svg(test_client, db_session):
    booking = create_random_booking(db_session, confirmation_code="TIX003")

    response = test_client.get(f"/api/v1/bookings/{booking.id}/ticket.svg")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("image/svg+xml")
    assert 'filename="ticket-TIX003.svg"' in response.headers["content-disposition"]
    assert b"<svg" in response.content


def test_download_unknown_format_is_404(test_client, db_session):
    booking = create_random_booking(db_session)

    response = test_client.get(f"/api/v1/bookings/{booking.id}/ticket.gif")

    assert response.status_code == 404


def test_download_size_out_of_range_is_422(test_client, db_session):
    booking = create_random_booking(db_session)

    response = test_client.get(f"/api/v1/bookings/{booking.id}/ticket.png?size=10")

    assert response.status_code == 422


def test_reschedule_invalidates_old_ticket(test_client, db_session):
    booking = create_random_booking(db_session)
    old_token = test_client.get(f"/api/v1/bookings/{booking.id}/ticket").json()["token"]

    response = test_client.patch(
        f"/api/v1/bookings/{booking.id}/schedule",
        json={"date": "2031-03-04", "time": "18:00", "durationMinutes": 90},
    )

    assert response.status_code == 200
    new_ticket = response.json()
    assert new_ticket["token"] != old_token
    new_claims = parse_token(new_ticket["token"]).claims
    assert new_claims.date == "2031-03-04"
    assert new_claims.time == "18:00"

    stale = test_client.post(
        "/api/v1/check-in",
        json={"bookingId": booking.id, "signature": old_token, "action": "check_in"},
    )
    assert stale.status_code == 401
    assert stale.json()["code"] == "superseded_ticket"

    fresh = test_client.post(
        "/api/v1/check-in",
        json={"bookingId": booking.id, "signature": new_ticket["token"], "action": "check_in"},
    )
    assert fresh.status_code == 200
    assert fresh.json()["success"] is True


def test_reschedule_after_check_in_is_409(test_client, db_session):
    booking = create_random_booking(db_session)
    token = test_client.get(f"/api/v1/bookings/{booking.id}/ticket").json()["token"]
    test_client.post(
        "/api/v1/check-in",
        json={"bookingId": booking.id, "signature": token, "action": "check_in"},
    )

    response = test_client.patch(
        f"/api/v1/bookings/{booking.id}/schedule",
        json={"date": "2031-03-04", "time": "18:00"},
    )

    assert response.status_code == 409


def test_reschedule_rejects_bad_date(test_client, db_session):
    booking = create_random_booking(db_session)

    response = test_client.patch(
        f"/api/v1/bookings/{booking.id}/schedule",
        json={"date": "next tuesday", "time": "18:00"},
    )

    assert response.status_code == 422


def test_download_too_small_for_ticket_is_422(test_client, db_session):
    booking = create_random_booking(db_session)

    response = test_client.get(f"/api/v1/bookings/{booking.id}/ticket.png?size=64")

    assert response.status_code == 422
    assert "at least" in response.json()["detail"]


@pytest.mark.parametrize(
    "schedule",
    [
        {"date": "2031-02-30", "time": "18:00"},
        {"date": "2031-03-04", "time": "25:99"},
    ],
)
def test_reschedule_rejects_impossible_date_or_time(test_client, db_session, schedule):
    booking = create_random_booking(db_session)

    response = test_client.patch(f"/api/v1/bookings/{booking.id}/schedule", json=schedule)

    assert response.status_code == 422
    assert booking_crud.get(db_session, booking.id).booking_date != date(2031, 3, 4)
