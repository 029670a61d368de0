"""
Customer self-service: listing, 48h cancellation and PIX refund requests
"""
from datetime import timedelta

import pytest

from app.auth import create_session_token
from app.domain.scheduling.business_hours import create_date_in_brazil_timezone, utcnow
from app.models import Booking, Credit, RefundRequest, User

PIX_REFUND = {"requestRefund": True, "pixKeyType": "CPF", "pixKey": "529.982.247-25", "reason": "Imprevisto"}


@pytest.fixture
def paid_booking(db_session, rooms, customer, booking_day):
    """Confirmed booking paid by PIX, 10:00-11:00 local"""
    start = create_date_in_brazil_timezone(booking_day.isoformat(), 10)
    booking = Booking(
        user_id=customer.id,
        room_id=rooms["sala-a"].id,
        start_time=start,
        end_time=start + timedelta(hours=1),
        status="CONFIRMED",
        payment_status="APPROVED",
        financial_status="PAID",
        gross_amount=5999,
        net_amount=5999,
        amount_paid=5999,
        payment_method="PIX",
    )
    db_session.add(booking)
    db_session.commit()
    db_session.refresh(booking)
    return booking


class TestMyBookings:

    def test_list_and_detail(self, client, paid_booking, customer_headers):
        response = client.get("/me/bookings", headers=customer_headers)
        assert response.status_code == 200
        bookings = response.json()["bookings"]
        assert [b["id"] for b in bookings] == [paid_booking.id]
        assert bookings[0]["roomName"] == "Sala A"
        assert bookings[0]["startTime"].endswith("Z")

        detail = client.get(f"/me/bookings/{paid_booking.id}", headers=customer_headers)
        assert detail.status_code == 200
        assert detail.json()["amountPaid"] == 5999

    def test_other_users_booking_hidden(self, client, db_session, paid_booking):
        other = User(name="Outra Pessoa", email="outra@example.com", phone="31998765432")
        db_session.add(other)
        db_session.commit()
        headers = {"Authorization": f"Bearer {create_session_token(other)}"}

        assert client.get("/me/bookings", headers=headers).json()["bookings"] == []
        assert client.get(f"/me/bookings/{paid_booking.id}", headers=headers).status_code == 404
        cancel = client.post(f"/me/bookings/{paid_booking.id}/cancel", headers=headers)
        assert cancel.status_code == 403

    def test_requires_session(self, client, rooms):
        assert client.get("/me/bookings").status_code == 401


class TestSelfCancel:

    def test_cancel_with_pix_refund(self, client, db_session, paid_booking, customer_headers, sent_emails):
        response = client.post(f"/me/bookings/{paid_booking.id}/cancel", json=PIX_REFUND, headers=customer_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["refundAmount"] == 5999
        assert data["refundRequestId"] is not None
        assert data["hoursBeforeStart"] >= 48

        db_session.refresh(paid_booking)
        assert paid_booking.status == "CANCELLED"
        assert paid_booking.cancel_source == "USER"

        refund = db_session.query(RefundRequest).one()
        assert refund.status == "REQUESTED"
        assert refund.pix_key == "52998224725"
        assert refund.amount == 5999

        recipients = {e["to"] for e in sent_emails}
        assert recipients == {"admin@example.com", "maria@example.com"}

        refunds = client.get("/me/refunds", headers=customer_headers).json()["refunds"]
        assert [r["id"] for r in refunds] == [refund.id]
        assert "pixKey" not in refunds[0]

    def test_cancel_is_idempotent(self, client, db_session, paid_booking, customer_headers):
        client.post(f"/me/bookings/{paid_booking.id}/cancel", json=PIX_REFUND, headers=customer_headers)
        again = client.post(f"/me/bookings/{paid_booking.id}/cancel", json=PIX_REFUND, headers=customer_headers)
        assert again.status_code == 200
        assert again.json()["alreadyCancelled"] is True
        assert db_session.query(RefundRequest).count() == 1

    def test_cancel_without_refund(self, client, db_session, paid_booking, customer_headers):
        response = client.post(f"/me/bookings/{paid_booking.id}/cancel", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["refundRequestId"] is None
        assert db_session.query(RefundRequest).count() == 0

    def test_refund_needs_pix_key(self, client, paid_booking, customer_headers):
        response = client.post(
            f"/me/bookings/{paid_booking.id}/cancel", json={"requestRefund": True}, headers=customer_headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PIX_KEY"

    def test_invalid_pix_key(self, client, paid_booking, customer_headers):
        response = client.post(
            f"/me/bookings/{paid_booking.id}/cancel",
            json={"requestRefund": True, "pixKeyType": "CPF", "pixKey": "123"},
            headers=customer_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_refund_without_payment(self, client, db_session, paid_booking, customer_headers):
        paid_booking.amount_paid = 0
        db_session.commit()
        response = client.post(f"/me/bookings/{paid_booking.id}/cancel", json=PIX_REFUND, headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_too_late(self, client, db_session, paid_booking, customer_headers):
        paid_booking.start_time = utcnow() + timedelta(hours=24)
        paid_booking.end_time = paid_booking.start_time + timedelta(hours=1)
        db_session.commit()
        response = client.post(f"/me/bookings/{paid_booking.id}/cancel", headers=customer_headers)
        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "CANCELLATION_TOO_LATE"
        assert "48 horas" in data["error"]

    def test_credits_go_back(self, client, db_session, rooms, customer, customer_headers, booking_day, local_iso):
        credit = Credit(
            user_id=customer.id,
            room_id=rooms["sala-a"].id,
            amount=10000,
            remaining_amount=10000,
            type="MANUAL",
            usage_type="HOURLY",
            status="CONFIRMED",
            expires_at=utcnow() + timedelta(days=60),
        )
        db_session.add(credit)
        db_session.commit()

        created = client.post(
            "/bookings/with-credit",
            json={"roomId": "sala-a", "startAt": local_iso(booking_day, 15), "endAt": local_iso(booking_day, 16)},
            headers=customer_headers,
        ).json()
        db_session.refresh(credit)
        assert credit.remaining_amount == 10000 - 5999

        response = client.post(f"/me/bookings/{created['bookingId']}/cancel", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["creditsRestored"] == 5999
        db_session.refresh(credit)
        assert credit.remaining_amount == 10000
