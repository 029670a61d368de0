"""
Coupon service - resolution, access checks and usage ledger

Usage rows are unique per (user, code, context). A row is USED while a
booking or credit purchase holds it and RESTORED once that booking/purchase
is cancelled, at which point the next purchase claims it again. None of
these methods commit; callers own the transaction.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import can_use_dev_coupons
from ...config import COUPONS_ENABLED
from ...errors import BusinessError
from ...models import Coupon, CouponUsage
from ..scheduling.business_hours import utcnow
from .repository import CouponRepository
from .rules import apply_discount, create_coupon_snapshot, get_static_coupon, normalize_code

logger = logging.getLogger(__name__)

USAGE_CONTEXTS = ("BOOKING", "CREDIT_PURCHASE")


def coupon_to_config(coupon: Coupon) -> dict:
    return {
        "code": coupon.code,
        "discount_type": coupon.discount_type,
        "value": coupon.value,
        "description": coupon.description,
        "single_use_per_user": bool(coupon.single_use_per_user),
        "is_dev_coupon": bool(coupon.is_dev_coupon),
        "min_amount_cents": coupon.min_amount_cents,
        "source": "DATABASE",
    }


class CouponService:
    """Business logic for coupons"""

    def __init__(self, db: Session):
        self.db = db

    # ========================================
    # RESOLUTION
    # ========================================

    def resolve_coupon(self, code: Optional[str]) -> Optional[dict]:
        """Coupon config by code: database row first, then the built-in registry"""
        normalized = normalize_code(code)
        if not normalized:
            return None

        coupon = CouponRepository.get_by_code(self.db, normalized)
        if coupon:
            return coupon_to_config(coupon)

        static = get_static_coupon(normalized)
        if static:
            return {**static, "source": "STATIC"}
        return None

    def get_valid_coupon(self, code: Optional[str], amount_cents: Optional[int] = None) -> dict:
        """Resolved coupon that can be applied now, or BusinessError"""
        if not COUPONS_ENABLED:
            raise BusinessError("COUPON_INVALID", "Cupons estão desativados no momento.")

        normalized = normalize_code(code)
        coupon = CouponRepository.get_by_code(self.db, normalized) if normalized else None
        if coupon:
            now = utcnow()
            if not coupon.is_active:
                raise BusinessError("COUPON_INVALID")
            if coupon.valid_from and now < coupon.valid_from:
                raise BusinessError("COUPON_INVALID", "Este cupom ainda não está válido.")
            if coupon.valid_until and now > coupon.valid_until:
                raise BusinessError("COUPON_EXPIRED")
            if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
                raise BusinessError("COUPON_EXPIRED", "Este cupom atingiu o limite de usos.")
            if coupon.min_amount_cents and amount_cents is not None and amount_cents < coupon.min_amount_cents:
                raise BusinessError(
                    "COUPON_INVALID",
                    "Valor mínimo para este cupom não atingido.",
                    details={"minAmountCents": coupon.min_amount_cents},
                )
            return coupon_to_config(coupon)

        config = self.resolve_coupon(normalized)
        if not config:
            logger.info(f"🎟️ Unknown coupon {normalized!r}")
            raise BusinessError("COUPON_INVALID")
        return config

    def check_dev_coupon_access(self, config: dict, session_email: Optional[str]) -> None:
        """Development coupons need a session whose email is whitelisted"""
        if not config.get("is_dev_coupon"):
            return
        if not session_email:
            raise BusinessError("DEV_COUPON_NO_SESSION", "Cupom de teste exige login.")
        if not can_use_dev_coupons(session_email):
            logger.warning(f"⚠️ Dev coupon {config['code']} blocked for {session_email}")
            raise BusinessError("DEV_COUPON_BLOCKED", "Cupom de teste não permitido para esta conta.")

    def quote(self, amount_cents: int, code: Optional[str]) -> dict:
        """
        Gross/discount/net for an amount and an optional coupon.

        Returns the resolved coupon config (or None) and the snapshot to store.
        """
        if not code:
            return {
                "gross_amount": amount_cents,
                "discount_amount": 0,
                "net_amount": amount_cents,
                "coupon": None,
                "snapshot": None,
            }
        config = self.get_valid_coupon(code, amount_cents)
        result = apply_discount(amount_cents, config)
        return {
            "gross_amount": amount_cents,
            "discount_amount": result["discount_amount"],
            "net_amount": result["final_amount"],
            "coupon": config,
            "snapshot": create_coupon_snapshot(config),
        }

    # ========================================
    # USAGE LEDGER
    # ========================================

    def check_coupon_usage(self, user_id: Optional[int], code: str, context: str) -> None:
        """Raise COUPON_ALREADY_USED when the user holds a USED row for this coupon and context"""
        if user_id is None:
            return
        usage = CouponRepository.get_usage(self.db, user_id, normalize_code(code), context)
        if usage and usage.status == "USED":
            raise BusinessError(
                "COUPON_ALREADY_USED",
                details={"existingBookingId": usage.booking_id, "existingCreditId": usage.credit_id},
            )

    def _claim_restored(
        self, user_id: int, code: str, context: str, booking_id: Optional[int], credit_id: Optional[int]
    ) -> bool:
        updated = (
            self.db.query(CouponUsage)
            .filter(
                CouponUsage.user_id == user_id,
                CouponUsage.coupon_code == code,
                CouponUsage.context == context,
                CouponUsage.status == "RESTORED",
            )
            .update(
                {
                    CouponUsage.status: "USED",
                    CouponUsage.booking_id: booking_id,
                    CouponUsage.credit_id: credit_id,
                    CouponUsage.used_at: utcnow(),
                    CouponUsage.restored_at: None,
                },
                synchronize_session=False,
            )
        )
        return updated > 0

    def _resolve_existing(
        self, usage: CouponUsage, user_id: int, code: str, context: str,
        booking_id: Optional[int], credit_id: Optional[int], claim_mode: str,
    ) -> dict:
        if usage.status == "USED":
            same_target = (booking_id is not None and usage.booking_id == booking_id) or (
                credit_id is not None and usage.credit_id == credit_id
            )
            if same_target:
                return {"ok": True, "mode": "IDEMPOTENT"}
            return {
                "ok": False,
                "code": "COUPON_ALREADY_USED",
                "existing_booking_id": usage.booking_id,
                "existing_credit_id": usage.credit_id,
            }
        if usage.status == "RESTORED" and self._claim_restored(user_id, code, context, booking_id, credit_id):
            return {"ok": True, "mode": claim_mode}
        return {"ok": False, "code": "COUPON_INVALID_STATE"}

    def _bump_uses(self, code: str, delta: int) -> None:
        coupon = CouponRepository.get_by_code(self.db, code)
        if coupon:
            coupon.current_uses = max(0, (coupon.current_uses or 0) + delta)

    def record_coupon_usage_idempotent(
        self,
        user_id: int,
        code: str,
        context: str,
        booking_id: Optional[int] = None,
        credit_id: Optional[int] = None,
    ) -> dict:
        """
        Take the (user, code, context) slot for a booking or credit purchase.

        Returns {"ok": True, "mode": CREATED | CLAIMED_RESTORED | IDEMPOTENT |
        CLAIMED_AFTER_RACE | SKIPPED_DEV} or {"ok": False, "code": ...}.
        """
        normalized = normalize_code(code)
        if context not in USAGE_CONTEXTS:
            raise ValueError(f"Invalid coupon usage context: {context}")

        config = self.resolve_coupon(normalized)
        if config and config.get("is_dev_coupon"):
            logger.info(f"🧪 Dev coupon {normalized} not recorded")
            return {"ok": True, "mode": "SKIPPED_DEV"}

        if self._claim_restored(user_id, normalized, context, booking_id, credit_id):
            self._bump_uses(normalized, 1)
            logger.info(f"🎟️ Coupon {normalized} reclaimed by user {user_id} ({context})")
            return {"ok": True, "mode": "CLAIMED_RESTORED"}

        existing = CouponRepository.get_usage(self.db, user_id, normalized, context)
        if existing:
            return self._resolve_existing(
                existing, user_id, normalized, context, booking_id, credit_id, "CLAIMED_RESTORED"
            )

        try:
            with self.db.begin_nested():
                self.db.add(
                    CouponUsage(
                        user_id=user_id,
                        coupon_code=normalized,
                        context=context,
                        booking_id=booking_id,
                        credit_id=credit_id,
                        status="USED",
                        used_at=utcnow(),
                    )
                )
        except IntegrityError:
            # Concurrent purchase took the slot first
            existing = CouponRepository.get_usage(self.db, user_id, normalized, context)
            if not existing:
                return {"ok": False, "code": "COUPON_INVALID_STATE"}
            return self._resolve_existing(
                existing, user_id, normalized, context, booking_id, credit_id, "CLAIMED_AFTER_RACE"
            )

        self._bump_uses(normalized, 1)
        logger.info(f"🎟️ Coupon {normalized} used by user {user_id} ({context})")
        return {"ok": True, "mode": "CREATED"}

    def record_or_raise(
        self,
        user_id: int,
        code: str,
        context: str,
        booking_id: Optional[int] = None,
        credit_id: Optional[int] = None,
    ) -> dict:
        result = self.record_coupon_usage_idempotent(user_id, code, context, booking_id, credit_id)
        if not result["ok"]:
            details = None
            if result.get("existing_booking_id"):
                details = {"existingBookingId": result["existing_booking_id"]}
            raise BusinessError(result["code"], details=details)
        return result

    def restore_coupon_usage(self, booking_id: Optional[int] = None, credit_id: Optional[int] = None) -> bool:
        """
        Release the usage held by a cancelled booking or purchase.
        Single-use-per-user coupons are never released.
        """
        if booking_id is not None:
            usage = CouponRepository.get_usage_for_booking(self.db, booking_id)
        elif credit_id is not None:
            usage = CouponRepository.get_usage_for_credit(self.db, credit_id)
        else:
            return False

        if not usage or usage.status != "USED":
            return False

        config = self.resolve_coupon(usage.coupon_code)
        if config and config.get("single_use_per_user"):
            logger.info(f"🎟️ Single-use coupon {usage.coupon_code} kept as used")
            return False

        usage.status = "RESTORED"
        usage.restored_at = utcnow()
        self._bump_uses(usage.coupon_code, -1)
        logger.info(f"♻️ Coupon {usage.coupon_code} restored for user {usage.user_id}")
        return True

    # ========================================
    # PREVIEW
    # ========================================

    def preview(
        self,
        code: str,
        amount_cents: int,
        context: str = "BOOKING",
        user_id: Optional[int] = None,
        session_email: Optional[str] = None,
    ) -> dict:
        """Validate a coupon for display before checkout"""
        quote = self.quote(amount_cents, code)
        config = quote["coupon"]
        self.check_dev_coupon_access(config, session_email)
        self.check_coupon_usage(user_id, config["code"], context)
        return {
            "valid": True,
            "code": config["code"],
            "discountType": config["discount_type"],
            "value": config["value"],
            "description": config.get("description"),
            "singleUsePerUser": bool(config.get("single_use_per_user")),
            "grossAmount": quote["gross_amount"],
            "discountAmount": quote["discount_amount"],
            "finalAmount": quote["net_amount"],
        }
