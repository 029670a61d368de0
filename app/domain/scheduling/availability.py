"""
Room availability

Only PENDING and CONFIRMED bookings hold a room. Each existing booking is
followed by a cleaning buffer, so a new booking conflicts when

    new_start < existing_end + buffer  and  new_end > existing_start
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking
from .business_hours import generate_time_slots, utcnow

logger = logging.getLogger(__name__)

BUFFER_MINUTES = 30
BLOCKING_STATUSES = ("PENDING", "CONFIRMED")


def get_conflicts(
    db: Session,
    room_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int] = None,
) -> list[Booking]:
    """Bookings that overlap [start, end) once the buffer is applied"""
    buffer = timedelta(minutes=BUFFER_MINUTES)

    # Coarse filter in SQL, exact buffer rule in Python
    query = db.query(Booking).filter(
        Booking.room_id == room_id,
        Booking.status.in_(BLOCKING_STATUSES),
        Booking.start_time < end,
        Booking.end_time > start - buffer,
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)

    return [b for b in query.all() if start < b.end_time + buffer and end > b.start_time]


def is_available(
    db: Session,
    room_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    conflicts = get_conflicts(db, room_id, start, end, exclude_booking_id)
    if conflicts:
        logger.info(
            f"⛔ Room {room_id} unavailable {start}-{end}: conflicts with {[b.id for b in conflicts]}"
        )
    return not conflicts


def get_available_slots(db: Session, room_id: int, day: date, now: Optional[datetime] = None) -> list[dict]:
    """Hourly slots of a day flagged available/unavailable (past slots are unavailable)"""
    now = now or utcnow()
    slots = generate_time_slots(day)
    if not slots:
        return []

    day_start = slots[0][0]
    day_end = slots[-1][1]
    buffer = timedelta(minutes=BUFFER_MINUTES)
    bookings = (
        db.query(Booking)
        .filter(
            Booking.room_id == room_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.start_time < day_end,
            Booking.end_time > day_start - buffer,
        )
        .all()
    )

    result = []
    for start, end in slots:
        taken = any(start < b.end_time + buffer and end > b.start_time for b in bookings)
        result.append(
            {
                "start": start,
                "end": end,
                "available": not taken and start > now,
            }
        )
    return result
