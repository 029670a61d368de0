"""
Asaas webhook processing and the maintenance jobs behind /jobs
"""
from datetime import timedelta

import pytest

from app.domain.catalog.pricing import get_booking_total_cents
from app.domain.jobs.service import auto_cancel_unpaid_bookings, cleanup_pending_bookings
from app.domain.scheduling.business_hours import utcnow
from app.domain.webhooks.service import AsaasWebhookService
from app.models import AuditLog, Booking, Credit, CouponUsage, Payment, Product, WebhookEvent

WEBHOOK_HEADERS = {"asaas-access-token": "test-webhook-token"}

BUYER = {
    "userName": "João Souza",
    "userPhone": "(21) 99876-5432",
    "userEmail": "joao@example.com",
    "userCpf": "529.982.247-25",
}


def asaas_event(event, payment_id, reference, value, event_id=None):
    payload = {
        "event": event,
        "payment": {
            "id": payment_id,
            "externalReference": reference,
            "value": value,
            "billingType": "PIX",
            "status": "RECEIVED",
        },
    }
    if event_id:
        payload["id"] = event_id
    return payload


@pytest.fixture
def pending_booking(client, rooms, booking_day, local_iso):
    """Guest booking with a mock PIX charge, 10:00-12:00 local in Sala A"""
    response = client.post(
        "/bookings",
        json={
            **BUYER,
            "roomId": "sala-a",
            "startAt": local_iso(booking_day, 10),
            "endAt": local_iso(booking_day, 12),
            "payNow": True,
        },
    )
    assert response.status_code == 201
    return response.json()


class TestWebhookAuth:

    def test_wrong_token(self, client, pending_booking):
        payload = asaas_event("PAYMENT_CONFIRMED", pending_booking["paymentId"], "booking:1", 119.98)
        response = client.post("/webhooks/asaas", json=payload, headers={"asaas-access-token": "nope"})
        assert response.status_code == 401

    def test_missing_payment(self, client):
        response = client.post("/webhooks/asaas", json={"event": "PAYMENT_CONFIRMED"}, headers=WEBHOOK_HEADERS)
        assert response.status_code == 400

    def test_invalid_json(self, client):
        response = client.post(
            "/webhooks/asaas",
            content=b"not json",
            headers={**WEBHOOK_HEADERS, "content-type": "application/json"},
        )
        assert response.status_code == 400


class TestBookingPayments:

    def test_confirms_booking(self, client, db_session, pending_booking, sent_emails):
        booking_id = pending_booking["bookingId"]
        payload = asaas_event(
            "PAYMENT_RECEIVED", pending_booking["paymentId"], f"booking:{booking_id}", 119.98, event_id="evt_1"
        )
        response = client.post("/webhooks/asaas", json=payload, headers=WEBHOOK_HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CONFIRMED"
        assert data["creditCreated"] is False

        booking = db_session.query(Booking).filter(Booking.id == booking_id).one()
        assert booking.status == "CONFIRMED"
        assert booking.financial_status == "PAID"
        assert booking.amount_paid == 11998
        assert booking.expires_at is None
        payment = db_session.query(Payment).filter(Payment.booking_id == booking_id).one()
        assert payment.status == "APPROVED"
        assert payment.paid_at is not None

        event = db_session.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_1").one()
        assert event.status == "PROCESSED"
        assert sent_emails[-1]["to"] == "joao@example.com"

    def test_duplicate_event(self, client, db_session, pending_booking):
        payload = asaas_event(
            "PAYMENT_CONFIRMED", pending_booking["paymentId"], f"booking:{pending_booking['bookingId']}", 119.98
        )
        client.post("/webhooks/asaas", json=payload, headers=WEBHOOK_HEADERS)
        again = client.post("/webhooks/asaas", json=payload, headers=WEBHOOK_HEADERS)
        assert again.status_code == 200
        assert again.json() == {"received": True, "duplicate": True}

        event_id = f"PAYMENT_CONFIRMED:{pending_booking['paymentId']}"
        assert db_session.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).count() == 1

    def test_already_confirmed(self, client, pending_booking):
        reference = f"booking:{pending_booking['bookingId']}"
        client.post(
            "/webhooks/asaas",
            json=asaas_event("PAYMENT_CONFIRMED", pending_booking["paymentId"], reference, 119.98),
            headers=WEBHOOK_HEADERS,
        )
        response = client.post(
            "/webhooks/asaas",
            json=asaas_event("PAYMENT_RECEIVED", pending_booking["paymentId"], reference, 119.98),
            headers=WEBHOOK_HEADERS,
        )
        assert response.json()["alreadyConfirmed"] is True

    def test_ignored_event(self, client, db_session, pending_booking):
        payload = asaas_event(
            "PAYMENT_CREATED", pending_booking["paymentId"], f"booking:{pending_booking['bookingId']}", 119.98
        )
        response = client.post("/webhooks/asaas", json=payload, headers=WEBHOOK_HEADERS)
        assert response.status_code == 200
        assert response.json()["ignored"] is True
        booking = db_session.query(Booking).filter(Booking.id == pending_booking["bookingId"]).one()
        assert booking.status == "PENDING"

    def test_unknown_booking(self, client, db_session, rooms):
        payload = asaas_event("PAYMENT_CONFIRMED", "pay_x", "booking:9999", 10.0)
        response = client.post("/webhooks/asaas", json=payload, headers=WEBHOOK_HEADERS)
        assert response.status_code == 404
        event = db_session.query(WebhookEvent).one()
        assert event.status == "FAILED"

    def test_refund_event(self, client, db_session, pending_booking):
        reference = f"booking:{pending_booking['bookingId']}"
        client.post(
            "/webhooks/asaas",
            json=asaas_event("PAYMENT_CONFIRMED", pending_booking["paymentId"], reference, 119.98),
            headers=WEBHOOK_HEADERS,
        )
        response = client.post(
            "/webhooks/asaas",
            json=asaas_event("PAYMENT_REFUNDED", pending_booking["paymentId"], None, 119.98),
            headers=WEBHOOK_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "REFUNDED"
        booking = db_session.query(Booking).filter(Booking.id == pending_booking["bookingId"]).one()
        assert booking.financial_status == "REFUNDED"
        assert booking.payment_status == "REFUNDED"

    def test_package_booking_creates_credit(self, client, db_session, rooms, booking_day, local_iso):
        product = (
            db_session.query(Product)
            .filter(Product.room_id == rooms["sala-a"].id, Product.type == "PACKAGE_10H")
            .one()
        )
        created = client.post(
            "/bookings",
            json={
                **BUYER,
                "roomId": "sala-a",
                "productId": product.id,
                "startAt": local_iso(booking_day, 8),
                "endAt": local_iso(booking_day, 10),
                "payNow": True,
            },
        ).json()
        assert created["netAmount"] == 55990

        response = client.post(
            "/webhooks/asaas",
            json=asaas_event("PAYMENT_CONFIRMED", created["paymentId"], f"booking:{created['bookingId']}", 559.90),
            headers=WEBHOOK_HEADERS,
        )
        assert response.json()["creditCreated"] is True

        credit = db_session.query(Credit).filter(Credit.source_booking_id == created["bookingId"]).one()
        assert credit.type == "PURCHASE"
        assert credit.status == "CONFIRMED"
        assert credit.amount == 10 * 5999
        assert credit.remaining_amount == credit.amount
        assert credit.hours == 10

    @pytest.fixture
    def package_booking(self, client, db_session, rooms, booking_day, local_iso):
        product = (
            db_session.query(Product)
            .filter(Product.room_id == rooms["sala-a"].id, Product.type == "PACKAGE_10H")
            .one()
        )
        return client.post(
            "/bookings",
            json={
                **BUYER,
                "roomId": "sala-a",
                "productId": product.id,
                "startAt": local_iso(booking_day, 8),
                "endAt": local_iso(booking_day, 10),
                "payNow": True,
            },
        ).json()

    def test_package_credit_survives_audit_failure(self, client, db_session, package_booking, monkeypatch):
        def broken_audit_log(**kwargs):
            raise RuntimeError("audit_logs unavailable")

        monkeypatch.setattr("app.domain.audit.service.AuditLog", broken_audit_log)

        response = client.post(
            "/webhooks/asaas",
            json=asaas_event(
                "PAYMENT_CONFIRMED", package_booking["paymentId"], f"booking:{package_booking['bookingId']}", 559.90
            ),
            headers=WEBHOOK_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["creditCreated"] is True

        db_session.expire_all()
        credit = db_session.query(Credit).filter(Credit.source_booking_id == package_booking["bookingId"]).one()
        assert credit.amount == 10 * 5999
        assert db_session.get(Booking, package_booking["bookingId"]).status == "CONFIRMED"

    def test_package_credit_failure_keeps_booking_and_retries(
        self, client, db_session, package_booking, monkeypatch
    ):
        original = AsaasWebhookService._create_package_credit
        attempts = []

        def flaky_credit(self, booking, payment_id):
            attempts.append(booking.id)
            if len(attempts) == 1:
                raise RuntimeError("credits table locked")
            return original(self, booking, payment_id)

        monkeypatch.setattr(AsaasWebhookService, "_create_package_credit", flaky_credit)
        reference = f"booking:{package_booking['bookingId']}"

        response = client.post(
            "/webhooks/asaas",
            json=asaas_event("PAYMENT_CONFIRMED", package_booking["paymentId"], reference, 559.90, event_id="evt_1"),
            headers=WEBHOOK_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"
        assert response.json()["creditCreated"] is False

        db_session.expire_all()
        assert db_session.get(Booking, package_booking["bookingId"]).status == "CONFIRMED"
        assert db_session.query(Credit).filter(Credit.source_booking_id == package_booking["bookingId"]).count() == 0
        assert db_session.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_1").one().status == "PROCESSED"
        failure = db_session.query(AuditLog).filter(AuditLog.action == "CREDIT_CREATION_FAILED").one()
        assert failure.target_id == str(package_booking["bookingId"])

        retry = client.post(
            "/webhooks/asaas",
            json=asaas_event("PAYMENT_RECEIVED", package_booking["paymentId"], reference, 559.90, event_id="evt_2"),
            headers=WEBHOOK_HEADERS,
        )
        assert retry.json()["alreadyConfirmed"] is True
        assert retry.json()["creditCreated"] is True
        assert db_session.query(Credit).filter(Credit.source_booking_id == package_booking["bookingId"]).count() == 1


class TestCreditPurchases:

    def test_purchase_then_confirm(self, client, db_session, rooms, sent_emails):
        response = client.post(
            "/credits/purchase", json={**BUYER, "roomId": "sala-b", "productType": "PACKAGE_10H"}
        )
        assert response.status_code == 200
        purchase = response.json()
        assert purchase["amount"] == 45990
        assert purchase["paymentId"].startswith("pay_mock_")

        credit = db_session.query(Credit).filter(Credit.id == purchase["creditId"]).one()
        assert credit.status == "PENDING"
        assert credit.remaining_amount == 0

        confirm = client.post(
            "/webhooks/asaas",
            json=asaas_event("PAYMENT_CONFIRMED", purchase["paymentId"], f"purchase:{credit.id}", 459.90),
            headers=WEBHOOK_HEADERS,
        )
        assert confirm.json()["status"] == "CONFIRMED"
        db_session.refresh(credit)
        assert credit.status == "CONFIRMED"
        assert credit.remaining_amount == 45990
        assert sent_emails[-1]["to"] == "joao@example.com"

    def test_loose_hours_with_coupon(self, client, db_session, rooms):
        response = client.post(
            "/credits/purchase", json={**BUYER, "roomId": "sala-c", "hours": 3, "couponCode": "ARTHEMI10"}
        )
        assert response.status_code == 200
        data = response.json()
        # Loose hours follow the table for the current day
        gross = get_booking_total_cents(rooms["sala-c"], utcnow(), 3)
        assert data["grossAmount"] == gross
        assert data["discountAmount"] == round(gross * 10 / 100)
        assert data["amount"] == gross - data["discountAmount"]
        usage = db_session.query(CouponUsage).one()
        assert usage.context == "CREDIT_PURCHASE"
        assert usage.credit_id == data["creditId"]

    def test_discontinued_product(self, client, rooms):
        response = client.post("/credits/purchase", json={**BUYER, "roomId": "sala-a", "productType": "DAY_PASS"})
        assert response.status_code == 400
        assert response.json()["code"] == "PRODUCT_DISCONTINUED"

    def test_offer_required(self, client, rooms):
        response = client.post("/credits/purchase", json={**BUYER, "roomId": "sala-a"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_my_credits(self, client, db_session, rooms, customer, customer_headers):
        db_session.add(
            Credit(
                user_id=customer.id,
                room_id=rooms["sala-a"].id,
                amount=3000,
                remaining_amount=3000,
                type="MANUAL",
                status="CONFIRMED",
                expires_at=utcnow() + timedelta(days=30),
            )
        )
        db_session.commit()
        response = client.get("/me/credits", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 3000


class TestJobs:

    def test_cron_secret_required(self, client):
        assert client.post("/jobs/cleanup-pending").status_code == 401
        wrong = client.post("/jobs/cleanup-pending", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401

    def test_cleanup_expired_pending(self, client, db_session, pending_booking, cron_headers):
        booking = db_session.query(Booking).filter(Booking.id == pending_booking["bookingId"]).one()
        booking.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        response = client.post("/jobs/cleanup-pending", headers=cron_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["bookingIds"] == [booking.id]

        db_session.refresh(booking)
        assert booking.status == "CANCELLED"
        assert booking.cancel_source == "SYSTEM"
        assert booking.cancel_reason == "EXPIRED"
        payment = db_session.query(Payment).filter(Payment.booking_id == booking.id).one()
        assert payment.status == "CANCELLED"

    def test_cleanup_keeps_live_bookings(self, db_session, pending_booking):
        result = cleanup_pending_bookings(db_session)
        assert result["cancelled"] == 0
        booking = db_session.query(Booking).filter(Booking.id == pending_booking["bookingId"]).one()
        assert booking.status == "PENDING"

    def test_auto_cancel_close_to_start(self, db_session, pending_booking):
        booking = db_session.query(Booking).filter(Booking.id == pending_booking["bookingId"]).one()
        now = booking.start_time - timedelta(minutes=20)

        result = auto_cancel_unpaid_bookings(db_session, now)

        assert result["cancelled"] == 1
        assert result["bookings"] == [{"id": booking.id, "minutesBefore": 20}]
        db_session.refresh(booking)
        assert booking.status == "CANCELLED"
        assert "[AUTO-CANCELADO]" in booking.notes

    def test_auto_cancel_leaves_distant_bookings(self, client, db_session, pending_booking, cron_headers):
        response = client.post("/jobs/auto-cancel", headers=cron_headers)
        assert response.status_code == 200
        assert response.json()["cancelled"] == 0

    def test_expire_credits_endpoint(self, client, db_session, customer, cron_headers):
        credit = Credit(
            user_id=customer.id,
            amount=1000,
            remaining_amount=1000,
            type="MANUAL",
            status="CONFIRMED",
            expires_at=utcnow() - timedelta(days=1),
        )
        db_session.add(credit)
        db_session.commit()

        response = client.post("/jobs/expire-credits", headers=cron_headers)
        assert response.status_code == 200
        assert response.json()["creditIds"] == [credit.id]
