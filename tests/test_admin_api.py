"""
Back-office API: admin sessions, manual bookings, cancellations, coupons,
credits, refund requests, settings and the audit trail
"""
from datetime import timedelta

import pytest

from app.domain.scheduling.business_hours import create_date_in_brazil_timezone, utcnow
from app.models import AuditLog, Booking, Coupon, Credit, RefundRequest


@pytest.fixture
def manual_booking(client, rooms, customer, admin_headers, booking_day, local_iso):
    """Admin booking paid at the front desk, with a custom price"""
    response = client.post(
        "/admin/bookings",
        json={
            "userId": customer.id,
            "roomId": "sala-a",
            "startAt": local_iso(booking_day, 14),
            "endAt": local_iso(booking_day, 16),
            "amountOverride": 10000,
            "overrideReason": "Pacote negociado",
        },
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.json()["booking"]


class TestAdminAuth:

    def test_login_sets_cookie(self, client, db_session):
        response = client.post(
            "/admin/auth/login", json={"email": "Admin@Example.com", "password": "admin-password-123"}
        )
        assert response.status_code == 200
        assert response.json()["email"] == "admin@example.com"
        assert "admin_token" in response.cookies

        assert client.get("/admin/settings").status_code == 200
        log = db_session.query(AuditLog).filter(AuditLog.action == "ADMIN_LOGIN").one()
        assert log.actor_email == "admin@example.com"
        assert log.source == "ADMIN"

        client.post("/admin/auth/logout")
        client.cookies.clear()
        assert client.get("/admin/settings").status_code == 401

    def test_bad_credentials(self, client):
        wrong_password = client.post(
            "/admin/auth/login", json={"email": "admin@example.com", "password": "nope"}
        )
        assert wrong_password.status_code == 401
        wrong_email = client.post(
            "/admin/auth/login", json={"email": "other@example.com", "password": "admin-password-123"}
        )
        assert wrong_email.status_code == 401

    def test_admin_routes_need_session(self, client, customer_headers):
        assert client.get("/admin/bookings").status_code == 401
        response = client.get("/admin/bookings", headers=customer_headers)
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"


class TestAdminBookings:

    def test_manual_booking(self, client, db_session, manual_booking):
        assert manual_booking["origin"] == "ADMIN_MANUAL"
        assert manual_booking["status"] == "CONFIRMED"
        assert manual_booking["financialStatus"] == "PAID"
        assert manual_booking["grossAmount"] == 11998
        assert manual_booking["netAmount"] == 10000
        assert manual_booking["discountAmount"] == 1998
        assert manual_booking["amountPaid"] == 10000

        log = db_session.query(AuditLog).filter(AuditLog.action == "BOOKING_MANUAL_CREATED").one()
        assert log.details["overrideReason"] == "Pacote negociado"

    def test_courtesy_booking(self, client, rooms, admin_headers, booking_day, local_iso):
        response = client.post(
            "/admin/bookings",
            json={
                "userName": "Convidada Especial",
                "userPhone": "(11) 95555-4444",
                "roomId": "sala-b",
                "startAt": local_iso(booking_day, 9),
                "endAt": local_iso(booking_day, 10),
                "courtesy": True,
                "courtesyReason": "Parceria",
            },
            headers=admin_headers,
        )
        assert response.status_code == 201
        booking = response.json()["booking"]
        assert booking["origin"] == "ADMIN_COURTESY"
        assert booking["financialStatus"] == "COURTESY"
        assert booking["netAmount"] == 0

    def test_courtesy_needs_reason(self, client, rooms, customer, admin_headers, booking_day, local_iso):
        response = client.post(
            "/admin/bookings",
            json={
                "userId": customer.id,
                "roomId": "sala-a",
                "startAt": local_iso(booking_day, 9),
                "endAt": local_iso(booking_day, 10),
                "courtesy": True,
            },
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_conflict(self, client, manual_booking, customer, admin_headers, booking_day, local_iso):
        response = client.post(
            "/admin/bookings",
            json={
                "userId": customer.id,
                "roomId": "sala-a",
                "startAt": local_iso(booking_day, 16),
                "endAt": local_iso(booking_day, 17),
            },
            headers=admin_headers,
        )
        assert response.status_code == 409
        assert response.json()["details"]["conflictingBookings"] == [manual_booking["id"]]

    def test_list_and_detail(self, client, manual_booking, admin_headers):
        listing = client.get("/admin/bookings", params={"roomId": "sala-a"}, headers=admin_headers)
        assert listing.status_code == 200
        data = listing.json()
        assert data["total"] == 1
        assert data["bookings"][0]["userEmail"] == "maria@example.com"

        assert client.get("/admin/bookings", params={"status": "CANCELLED"}, headers=admin_headers).json()[
            "total"
        ] == 0

        detail = client.get(f"/admin/bookings/{manual_booking['id']}", headers=admin_headers)
        assert detail.json()["overrideReason"] == "Pacote negociado"
        assert detail.json()["refundRequest"] is None

    def test_update_status_and_notes(self, client, manual_booking, admin_headers):
        response = client.patch(
            f"/admin/bookings/{manual_booking['id']}",
            json={"status": "COMPLETED", "notes": "Cliente compareceu"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        booking = response.json()["booking"]
        assert booking["status"] == "COMPLETED"
        assert booking["notes"] == "Cliente compareceu"

    def test_update_cannot_cancel(self, client, db_session, manual_booking, admin_headers):
        response = client.patch(
            f"/admin/bookings/{manual_booking['id']}", json={"status": "CANCELLED"}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert db_session.get(Booking, manual_booking["id"]).status != "CANCELLED"

    def test_cancel_with_credit_refund(self, client, db_session, manual_booking, admin_headers):
        response = client.post(
            f"/admin/bookings/{manual_booking['id']}/cancel",
            json={"reason": "Sala em manutenção", "refundType": "CREDITS"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["refundType"] == "CREDITS"
        assert data["creditAmount"] == 10000

        credit = db_session.query(Credit).filter(Credit.id == data["creditId"]).one()
        assert credit.type == "REFUND"
        assert credit.remaining_amount == 10000
        assert credit.source_booking_id == manual_booking["id"]

        booking = db_session.query(Booking).filter(Booking.id == manual_booking["id"]).one()
        assert booking.status == "CANCELLED"
        assert booking.cancel_source == "ADMIN"

        again = client.post(f"/admin/bookings/{manual_booking['id']}/cancel", headers=admin_headers)
        assert again.status_code == 409
        assert again.json()["code"] == "INVALID_STATUS"

    def test_cancel_with_pix_refund_then_pay(self, client, db_session, manual_booking, admin_headers):
        response = client.post(
            f"/admin/bookings/{manual_booking['id']}/cancel",
            json={"refundType": "MONEY", "pixKeyType": "EMAIL", "pixKey": "Maria@Example.com"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        refund_id = response.json()["refundRequestId"]
        refund = db_session.query(RefundRequest).filter(RefundRequest.id == refund_id).one()
        assert refund.status == "APPROVED"
        assert refund.amount == 10000

        listed = client.get("/admin/refunds", params={"status": "APPROVED"}, headers=admin_headers).json()
        assert [r["id"] for r in listed["refunds"]] == [refund_id]
        assert listed["refunds"][0]["pixKey"] == "maria@example.com"

        paid = client.patch(
            f"/admin/refunds/{refund_id}", json={"status": "PAID", "adminNotes": "PIX enviado"}, headers=admin_headers
        )
        assert paid.status_code == 200
        assert paid.json()["status"] == "PAID"
        assert paid.json()["processedAt"] is not None

        booking = db_session.query(Booking).filter(Booking.id == manual_booking["id"]).one()
        db_session.refresh(booking)
        assert booking.financial_status == "REFUNDED"

        reopened = client.patch(f"/admin/refunds/{refund_id}", json={"status": "REJECTED"}, headers=admin_headers)
        assert reopened.status_code == 409
        assert reopened.json()["code"] == "INVALID_STATUS"

    def test_money_refund_needs_pix_key(self, client, manual_booking, admin_headers):
        response = client.post(
            f"/admin/bookings/{manual_booking['id']}/cancel", json={"refundType": "MONEY"}, headers=admin_headers
        )
        assert response.status_code == 400

    def test_default_refund_follows_policy(self, client, db_session, manual_booking, admin_headers):
        booking = db_session.query(Booking).filter(Booking.id == manual_booking["id"]).one()
        booking.start_time = utcnow() + timedelta(hours=5)
        booking.end_time = booking.start_time + timedelta(hours=1)
        db_session.commit()

        response = client.post(f"/admin/bookings/{booking.id}/cancel", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["refundType"] == "NONE"
        assert response.json()["creditId"] is None


class TestAdminCoupons:

    def test_create_update_deactivate(self, client, db_session, admin_headers):
        created = client.post(
            "/admin/coupons",
            json={"code": " verao25 ", "discountType": "PERCENT", "value": 25, "maxUses": 100},
            headers=admin_headers,
        )
        assert created.status_code == 201
        coupon = created.json()
        assert coupon["code"] == "VERAO25"
        assert coupon["currentUses"] == 0

        duplicate = client.post(
            "/admin/coupons", json={"code": "VERAO25", "discountType": "FIXED", "value": 500}, headers=admin_headers
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "DUPLICATE_ENTRY"

        updated = client.patch(f"/admin/coupons/{coupon['id']}", json={"value": 30}, headers=admin_headers)
        assert updated.json()["value"] == 30

        too_much = client.patch(f"/admin/coupons/{coupon['id']}", json={"value": 150}, headers=admin_headers)
        assert too_much.status_code == 400

        assert client.delete(f"/admin/coupons/{coupon['id']}", headers=admin_headers).status_code == 200
        row = db_session.query(Coupon).filter(Coupon.id == coupon["id"]).one()
        db_session.refresh(row)
        assert row.is_active is False

        codes = [c["code"] for c in client.get("/admin/coupons", headers=admin_headers).json()["coupons"]]
        assert codes == ["VERAO25"]

    def test_percent_over_100_rejected(self, client, admin_headers):
        response = client.post(
            "/admin/coupons", json={"code": "DEMAIS", "discountType": "PERCENT", "value": 120}, headers=admin_headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestAdminCredits:

    def test_manual_credit(self, client, rooms, customer, admin_headers):
        response = client.post(
            "/admin/credits",
            json={"userId": customer.id, "amount": 2500, "roomId": rooms["sala-b"].id, "notes": "Compensação"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        credit = response.json()
        assert credit["remainingAmount"] == 2500
        assert credit["type"] == "MANUAL"
        assert credit["roomName"] == "Sala B"

        detail = client.get(f"/admin/users/{customer.id}", headers=admin_headers).json()
        assert detail["creditBalance"] == 2500
        assert detail["cpf"] == "52998224725"

    def test_manual_credit_unknown_user(self, client, admin_headers):
        response = client.post("/admin/credits", json={"userId": 999, "amount": 100}, headers=admin_headers)
        assert response.status_code == 404

    def test_sublet_once_per_month(self, client, rooms, customer, admin_headers):
        payload = {"userId": customer.id, "roomId": rooms["sala-a"].id}
        first = client.post("/admin/credits/sublet", json=payload, headers=admin_headers)
        assert first.status_code == 201
        assert first.json()["amount"] == 2999
        assert first.json()["type"] == "SUBLET"

        second = client.post("/admin/credits/sublet", json=payload, headers=admin_headers)
        assert second.status_code == 400
        assert second.json()["code"] == "CREDIT_LIMIT_REACHED"

    def test_user_search(self, client, customer, admin_headers):
        found = client.get("/admin/users", params={"search": "maria"}, headers=admin_headers).json()
        assert [u["id"] for u in found["users"]] == [customer.id]
        assert client.get("/admin/users/999", headers=admin_headers).status_code == 404


class TestSettingsAndAudit:

    def test_upsert_setting(self, client, db_session, admin_headers):
        created = client.put(
            "/admin/settings/whatsapp_number", json={"value": "5511999990000"}, headers=admin_headers
        )
        assert created.status_code == 200
        updated = client.put("/admin/settings/whatsapp_number", json={"value": "5511888880000"}, headers=admin_headers)
        assert updated.json()["value"] == "5511888880000"

        settings = client.get("/admin/settings", headers=admin_headers).json()["settings"]
        assert [s["key"] for s in settings] == ["whatsapp_number"]

        log = (
            db_session.query(AuditLog)
            .filter(AuditLog.action == "SETTING_UPDATED")
            .order_by(AuditLog.id.desc())
            .first()
        )
        assert log.details == {"from": "5511999990000", "to": "5511888880000"}

    def test_audit_filters(self, client, manual_booking, admin_headers):
        response = client.get("/admin/audit", params={"action": "BOOKING_MANUAL_CREATED"}, headers=admin_headers)
        assert response.status_code == 200
        logs = response.json()["logs"]
        assert len(logs) == 1
        assert logs[0]["targetType"] == "Booking"
        assert logs[0]["targetId"] == str(manual_booking["id"])
        assert logs[0]["actorEmail"] == "admin@example.com"

    def test_audit_bad_date(self, client, admin_headers):
        response = client.get("/admin/audit", params={"dateFrom": "18/10/2026"}, headers=admin_headers)
        assert response.status_code == 400

    def test_courtesy_start_uses_local_time(self, client, rooms, customer, admin_headers, booking_day, local_iso):
        response = client.post(
            "/admin/bookings",
            json={
                "userId": customer.id,
                "roomId": "sala-c",
                "startAt": local_iso(booking_day, 8),
                "endAt": local_iso(booking_day, 9),
                "courtesy": True,
                "courtesyReason": "Teste de sala",
            },
            headers=admin_headers,
        )
        expected = create_date_in_brazil_timezone(booking_day.isoformat(), 8)
        assert response.json()["booking"]["startTime"] == expected.isoformat() + "Z"
