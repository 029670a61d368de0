"""Payment repository - Database operations for payment records"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Payment

ACTIVE_PAYMENT_STATUSES = ("PENDING", "APPROVED", "IN_PROCESS")


class PaymentRepository:
    """Repository for payment database operations"""

    @staticmethod
    def get_by_idempotency_key(db: Session, key: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.idempotency_key == key).first()

    @staticmethod
    def get_by_external_id(db: Session, external_id: str) -> Optional[Payment]:
        return db.query(Payment).filter(Payment.external_id == external_id).first()

    @staticmethod
    def get_for_booking(db: Session, booking_id: int) -> list[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.booking_id == booking_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    @staticmethod
    def get_for_purchase(db: Session, credit_id: int) -> list[Payment]:
        return db.query(Payment).filter(Payment.purchase_id == credit_id).all()

    @staticmethod
    def get_active_for_booking(db: Session, booking_id: int) -> Optional[Payment]:
        return (
            db.query(Payment)
            .filter(Payment.booking_id == booking_id, Payment.status.in_(ACTIVE_PAYMENT_STATUSES))
            .order_by(Payment.id.desc())
            .first()
        )
