"""
Maintenance jobs

Each job works in small batches, commits per booking or credit and returns
a summary dict. They are plain functions taking a session so the arq worker
and the HTTP cron endpoints share them.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import PENDING_BOOKING_EXPIRATION_HOURS
from ...models import Booking
from ..audit.service import log_audit
from ..bookings.repository import BookingRepository
from ..bookings.service import release_booking
from ..credits.repository import CreditRepository
from ..scheduling.business_hours import utcnow

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
AUTO_CANCEL_THRESHOLD_MINUTES = 30


def cleanup_pending_bookings(db: Session, now: Optional[datetime] = None, batch_size: int = BATCH_SIZE) -> dict:
    """Release unpaid bookings whose payment window is over"""
    now = now or utcnow()
    created_before = now - timedelta(hours=PENDING_BOOKING_EXPIRATION_HOURS)
    bookings = BookingRepository.get_expired_pending(db, now, created_before, limit=batch_size)

    cancelled = []
    failed = 0
    for booking in bookings:
        try:
            released = release_booking(db, booking, "SYSTEM", "EXPIRED", now)
            db.commit()
        except Exception as e:
            db.rollback()
            failed += 1
            logger.error(f"❌ Failed to expire booking {booking.id}: {e}")
            continue

        cancelled.append(booking.id)
        log_audit(
            db,
            "BOOKING_EXPIRED",
            target_type="Booking",
            target_id=booking.id,
            metadata={
                "expiresAt": booking.expires_at.isoformat() if booking.expires_at else None,
                "creditsRestored": released["credits_restored"],
                "couponRestored": released["coupon_restored"],
            },
        )

    if bookings:
        logger.info(f"🧹 Pending cleanup: {len(cancelled)} expired, {failed} failed")
    return {"checked": len(bookings), "cancelled": len(cancelled), "failed": failed, "bookingIds": cancelled}


def auto_cancel_unpaid_bookings(db: Session, now: Optional[datetime] = None, batch_size: int = BATCH_SIZE) -> dict:
    """Cancel PENDING bookings still unpaid 30 minutes before they start"""
    now = now or utcnow()
    threshold = now + timedelta(minutes=AUTO_CANCEL_THRESHOLD_MINUTES)
    bookings = (
        db.query(Booking)
        .filter(
            Booking.status == "PENDING",
            Booking.financial_status == "PENDING_PAYMENT",
            Booking.start_time <= threshold,
        )
        .order_by(Booking.start_time.asc())
        .limit(batch_size)
        .all()
    )

    cancelled = []
    for booking in bookings:
        minutes_before = int((booking.start_time - now).total_seconds() // 60)
        note = f"[AUTO-CANCELADO] Pagamento não confirmado até {minutes_before}min antes do início"
        try:
            release_booking(db, booking, "SYSTEM", "Pagamento não confirmado dentro do prazo", now)
            booking.notes = f"{booking.notes}\n{note}" if booking.notes else note
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to auto-cancel booking {booking.id}: {e}")
            continue

        cancelled.append({"id": booking.id, "minutesBefore": minutes_before})
        log_audit(
            db,
            "BOOKING_CANCELLED",
            target_type="Booking",
            target_id=booking.id,
            metadata={"minutesBefore": minutes_before, "reason": "AUTO_CANCEL_UNPAID"},
        )

    return {"cancelled": len(cancelled), "bookings": cancelled}


def expire_credits(db: Session, now: Optional[datetime] = None, batch_size: int = BATCH_SIZE) -> dict:
    """CONFIRMED credits past their expiry become EXPIRED"""
    now = now or utcnow()
    credits = CreditRepository.get_expired_confirmed(db, now, limit=batch_size)

    expired = []
    for credit in credits:
        credit.status = "EXPIRED"
        expired.append((credit.id, credit.user_id, credit.remaining_amount))
    db.commit()

    for credit_id, user_id, remaining in expired:
        log_audit(
            db,
            "CREDIT_EXPIRED",
            target_type="Credit",
            target_id=credit_id,
            metadata={"userId": user_id, "remainingAmount": remaining},
        )

    if expired:
        logger.info(f"⌛ {len(expired)} credits expired")
    return {"expired": len(expired), "creditIds": [c[0] for c in expired]}
