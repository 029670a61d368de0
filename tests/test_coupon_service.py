"""
Coupon resolution, dev-coupon access and the per-user usage ledger
"""
from datetime import timedelta

import pytest

from app.domain.coupons.service import CouponService
from app.domain.scheduling.business_hours import utcnow
from app.errors import BusinessError
from app.models import Coupon, CouponUsage


@pytest.fixture
def service(db_session):
    return CouponService(db_session)


class TestResolution:

    def test_static_coupon(self, service):
        quote = service.quote(10000, "arthemi10")
        assert quote["net_amount"] == 9000
        assert quote["discount_amount"] == 1000
        assert quote["coupon"]["code"] == "ARTHEMI10"
        assert quote["snapshot"]["code"] == "ARTHEMI10"

    def test_no_code(self, service):
        quote = service.quote(10000, None)
        assert quote["net_amount"] == 10000
        assert quote["coupon"] is None
        assert quote["snapshot"] is None

    def test_unknown_coupon(self, service):
        with pytest.raises(BusinessError) as exc:
            service.get_valid_coupon("NOPE")
        assert exc.value.code == "COUPON_INVALID"
        assert exc.value.status_code == 400

    def test_database_row_takes_precedence(self, db_session, service):
        db_session.add(Coupon(code="ARTHEMI10", discount_type="PERCENT", value=20))
        db_session.commit()
        assert service.quote(10000, "ARTHEMI10")["net_amount"] == 8000

    def test_inactive_and_expired_rows(self, db_session, service):
        db_session.add(Coupon(code="OFF", discount_type="FIXED", value=500, is_active=False))
        db_session.add(
            Coupon(code="OLD", discount_type="FIXED", value=500, valid_until=utcnow() - timedelta(days=1))
        )
        db_session.add(Coupon(code="FULL", discount_type="FIXED", value=500, max_uses=1, current_uses=1))
        db_session.commit()

        with pytest.raises(BusinessError) as exc:
            service.get_valid_coupon("OFF")
        assert exc.value.code == "COUPON_INVALID"

        with pytest.raises(BusinessError) as exc:
            service.get_valid_coupon("OLD")
        assert exc.value.code == "COUPON_EXPIRED"

        with pytest.raises(BusinessError) as exc:
            service.get_valid_coupon("FULL")
        assert exc.value.code == "COUPON_EXPIRED"

    def test_minimum_amount(self, db_session, service):
        db_session.add(Coupon(code="BIG", discount_type="FIXED", value=1000, min_amount_cents=20000))
        db_session.commit()
        with pytest.raises(BusinessError) as exc:
            service.get_valid_coupon("BIG", 10000)
        assert exc.value.details == {"minAmountCents": 20000}


class TestDevCoupons:
    """Dev coupons need a whitelisted session email"""

    def test_no_session(self, service):
        with pytest.raises(BusinessError) as exc:
            service.check_dev_coupon_access(service.resolve_coupon("DEVTEST"), None)
        assert exc.value.code == "DEV_COUPON_NO_SESSION"
        assert exc.value.status_code == 403

    def test_other_email_blocked(self, service):
        with pytest.raises(BusinessError) as exc:
            service.check_dev_coupon_access(service.resolve_coupon("DEVTEST"), "maria@example.com")
        assert exc.value.code == "DEV_COUPON_BLOCKED"

    def test_admin_allowed(self, service):
        service.check_dev_coupon_access(service.resolve_coupon("DEVTEST"), "Admin@Example.com")

    def test_regular_coupon_ignores_session(self, service):
        service.check_dev_coupon_access(service.resolve_coupon("ARTHEMI10"), None)


class TestUsageLedger:
    """One USED row per (user, coupon, context)"""

    def test_create_then_idempotent(self, db_session, service, customer):
        first = service.record_coupon_usage_idempotent(customer.id, "ARTHEMI10", "BOOKING", booking_id=1)
        assert first == {"ok": True, "mode": "CREATED"}

        again = service.record_coupon_usage_idempotent(customer.id, "ARTHEMI10", "BOOKING", booking_id=1)
        assert again == {"ok": True, "mode": "IDEMPOTENT"}

        other = service.record_coupon_usage_idempotent(customer.id, "ARTHEMI10", "BOOKING", booking_id=2)
        assert other["ok"] is False
        assert other["code"] == "COUPON_ALREADY_USED"
        assert other["existing_booking_id"] == 1

    def test_contexts_are_independent(self, service, customer):
        service.record_or_raise(customer.id, "ARTHEMI10", "BOOKING", booking_id=1)
        result = service.record_or_raise(customer.id, "ARTHEMI10", "CREDIT_PURCHASE", credit_id=1)
        assert result["mode"] == "CREATED"

    def test_check_usage_blocks_used_row(self, service, customer):
        service.record_or_raise(customer.id, "ARTHEMI10", "BOOKING", booking_id=1)
        with pytest.raises(BusinessError) as exc:
            service.check_coupon_usage(customer.id, "arthemi10", "BOOKING")
        assert exc.value.code == "COUPON_ALREADY_USED"

    def test_restore_then_claim(self, db_session, service, customer):
        service.record_or_raise(customer.id, "ARTHEMI10", "BOOKING", booking_id=1)
        assert service.restore_coupon_usage(booking_id=1) is True
        db_session.commit()

        usage = db_session.query(CouponUsage).filter(CouponUsage.user_id == customer.id).one()
        assert usage.status == "RESTORED"
        service.check_coupon_usage(customer.id, "ARTHEMI10", "BOOKING")

        result = service.record_or_raise(customer.id, "ARTHEMI10", "BOOKING", booking_id=2)
        assert result["mode"] == "CLAIMED_RESTORED"
        db_session.refresh(usage)
        assert usage.status == "USED"
        assert usage.booking_id == 2

    def test_single_use_coupon_is_never_restored(self, db_session, service, customer):
        service.record_or_raise(customer.id, "PRIMEIRACOMPRA", "BOOKING", booking_id=1)
        assert service.restore_coupon_usage(booking_id=1) is False
        usage = db_session.query(CouponUsage).one()
        assert usage.status == "USED"

    def test_dev_coupons_are_not_recorded(self, db_session, service, customer):
        result = service.record_coupon_usage_idempotent(customer.id, "DEVTEST", "BOOKING", booking_id=1)
        assert result == {"ok": True, "mode": "SKIPPED_DEV"}
        assert db_session.query(CouponUsage).count() == 0

    def test_database_coupon_use_counter(self, db_session, service, customer):
        db_session.add(Coupon(code="PROMO", discount_type="FIXED", value=500))
        db_session.commit()
        service.record_or_raise(customer.id, "PROMO", "BOOKING", booking_id=1)
        service.restore_coupon_usage(booking_id=1)
        db_session.commit()
        coupon = db_session.query(Coupon).filter(Coupon.code == "PROMO").one()
        assert coupon.current_uses == 0


class TestPreviewEndpoint:

    def test_preview(self, client):
        response = client.post("/coupons/validate", json={"code": "arthemi10", "amountCents": 5999})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["code"] == "ARTHEMI10"
        assert data["finalAmount"] == 5399

    def test_invalid_coupon_error_shape(self, client):
        response = client.post("/coupons/validate", json={"code": "NOPE", "amountCents": 5999})
        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["code"] == "COUPON_INVALID"
        assert "requestId" in data

    def test_dev_coupon_without_session(self, client):
        response = client.post("/coupons/validate", json={"code": "DEVTEST", "amountCents": 5999})
        assert response.status_code == 403
        assert response.json()["code"] == "DEV_COUPON_NO_SESSION"

    def test_dev_coupon_with_admin_session(self, client, admin_headers):
        response = client.post(
            "/coupons/validate", json={"code": "DEVTEST", "amountCents": 5999}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["finalAmount"] == 2999
