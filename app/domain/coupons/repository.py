"""Coupon repository - Database operations for coupons and coupon usage"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Coupon, CouponUsage


class CouponRepository:
    """Repository for coupon database operations"""

    @staticmethod
    def get_by_code(db: Session, code: str) -> Optional[Coupon]:
        return db.query(Coupon).filter(Coupon.code == code).first()

    @staticmethod
    def get_by_id(db: Session, coupon_id: int) -> Optional[Coupon]:
        return db.query(Coupon).filter(Coupon.id == coupon_id).first()

    @staticmethod
    def list_coupons(db: Session, include_inactive: bool = True) -> list[Coupon]:
        query = db.query(Coupon)
        if not include_inactive:
            query = query.filter(Coupon.is_active.is_(True))
        return query.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()

    @staticmethod
    def create_coupon(db: Session, **data) -> Coupon:
        coupon = Coupon(**data)
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
        return coupon

    @staticmethod
    def update_coupon(db: Session, coupon: Coupon, **updates) -> Coupon:
        for key, value in updates.items():
            if value is not None and hasattr(coupon, key):
                setattr(coupon, key, value)
        db.commit()
        db.refresh(coupon)
        return coupon

    @staticmethod
    def get_usage(db: Session, user_id: int, code: str, context: str) -> Optional[CouponUsage]:
        return (
            db.query(CouponUsage)
            .filter(
                CouponUsage.user_id == user_id,
                CouponUsage.coupon_code == code,
                CouponUsage.context == context,
            )
            .first()
        )

    @staticmethod
    def get_usage_for_booking(db: Session, booking_id: int) -> Optional[CouponUsage]:
        return db.query(CouponUsage).filter(CouponUsage.booking_id == booking_id).first()

    @staticmethod
    def get_usage_for_credit(db: Session, credit_id: int) -> Optional[CouponUsage]:
        return db.query(CouponUsage).filter(CouponUsage.credit_id == credit_id).first()
