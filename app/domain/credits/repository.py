"""Credit repository - Database operations for credits"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Credit


class CreditRepository:
    """Repository for credit database operations"""

    @staticmethod
    def get_by_id(db: Session, credit_id: int) -> Optional[Credit]:
        return db.query(Credit).filter(Credit.id == credit_id).first()

    @staticmethod
    def get_available(db: Session, user_id: int, now: datetime) -> list[Credit]:
        """CONFIRMED credits with balance, soonest expiry first (no expiry last)"""
        return (
            db.query(Credit)
            .filter(
                Credit.user_id == user_id,
                Credit.status == "CONFIRMED",
                Credit.remaining_amount > 0,
                or_(Credit.expires_at.is_(None), Credit.expires_at > now),
            )
            .order_by(Credit.expires_at.is_(None), Credit.expires_at.asc(), Credit.id.asc())
            .all()
        )

    @staticmethod
    def list_for_user(db: Session, user_id: int) -> list[Credit]:
        return (
            db.query(Credit)
            .filter(Credit.user_id == user_id)
            .order_by(Credit.created_at.desc(), Credit.id.desc())
            .all()
        )

    @staticmethod
    def count_by_type_in_month(db: Session, user_id: int, credit_type: str, month: int, year: int) -> int:
        return (
            db.query(Credit)
            .filter(
                Credit.user_id == user_id,
                Credit.type == credit_type,
                Credit.reference_month == month,
                Credit.reference_year == year,
                Credit.status != "CANCELLED",
            )
            .count()
        )

    @staticmethod
    def get_expired_confirmed(db: Session, now: datetime, limit: int = 100) -> list[Credit]:
        return (
            db.query(Credit)
            .filter(
                Credit.status == "CONFIRMED",
                Credit.expires_at.isnot(None),
                Credit.expires_at < now,
            )
            .limit(limit)
            .all()
        )
