"""Booking repository - Database operations for bookings and refund requests"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking, RefundRequest


class BookingRepository:
    """Repository for booking queries"""

    @staticmethod
    def get_by_id(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_for_user(db: Session, booking_id: int, user_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id, Booking.user_id == user_id).first()

    @staticmethod
    def list_for_user(db: Session, user_id: int) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.user_id == user_id)
            .order_by(Booking.start_time.desc())
            .all()
        )

    @staticmethod
    def list_filtered(
        db: Session,
        status: Optional[str] = None,
        room_id: Optional[int] = None,
        user_id: Optional[int] = None,
        start_from: Optional[datetime] = None,
        start_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        query = db.query(Booking)
        if status:
            query = query.filter(Booking.status == status)
        if room_id:
            query = query.filter(Booking.room_id == room_id)
        if user_id:
            query = query.filter(Booking.user_id == user_id)
        if start_from:
            query = query.filter(Booking.start_time >= start_from)
        if start_to:
            query = query.filter(Booking.start_time < start_to)

        total = query.count()
        bookings = query.order_by(Booking.start_time.desc()).offset(offset).limit(limit).all()
        return bookings, total

    @staticmethod
    def get_expired_pending(db: Session, now: datetime, created_before: datetime, limit: int = 100) -> list[Booking]:
        """PENDING bookings past expires_at, or without one and older than created_before"""
        return (
            db.query(Booking)
            .filter(
                Booking.status == "PENDING",
                (Booking.expires_at < now)
                | (Booking.expires_at.is_(None) & (Booking.created_at < created_before)),
            )
            .order_by(Booking.id.asc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_refunds_for_user(db: Session, user_id: int) -> list[RefundRequest]:
        return (
            db.query(RefundRequest)
            .filter(RefundRequest.user_id == user_id)
            .order_by(RefundRequest.created_at.desc(), RefundRequest.id.desc())
            .all()
        )

    @staticmethod
    def get_refund_for_booking(db: Session, booking_id: int) -> Optional[RefundRequest]:
        return db.query(RefundRequest).filter(RefundRequest.booking_id == booking_id).first()
