"""
Opening hours and booking-time rules

Datetimes are stored as naive UTC. Every rule that depends on the wall
clock (opening hours, Saturday pricing, shift blocks, booking window) is
evaluated in the business timezone (America/Sao_Paulo).
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from dateutil import tz

from ...config import BUSINESS_TIMEZONE

logger = logging.getLogger(__name__)

BUSINESS_TZ = tz.gettz(BUSINESS_TIMEZONE)

# Python weekday(): Monday = 0 ... Sunday = 6
SATURDAY = 5
SUNDAY = 6

# (open_hour, close_hour); Sunday closed
WEEKDAY_HOURS = (8, 20)
SATURDAY_HOURS = (8, 12)

SHIFT_DURATION_HOURS = 4
WEEKDAY_SHIFT_BLOCKS = {"MORNING": (8, 12), "AFTERNOON": (12, 16), "EVENING": (16, 20)}
SATURDAY_SHIFT_BLOCKS = {"MORNING": (8, 12)}

MIN_ADVANCE_MINUTES = 30
BOOKING_WINDOW_DAYS = 30
MIN_CANCELLATION_HOURS = 24
MIN_RESCHEDULE_HOURS = 24
USER_CANCEL_MIN_HOURS = 48

# Days of validity used when a package is sold without a catalog override
PACKAGE_VALIDITY_DAYS = {
    "PACKAGE_10H": 90,
    "PACKAGE_20H": 90,
    "PACKAGE_40H": 180,
    "SHIFT_FIXED": 180,
    "DAY_PASS": 1,
    "SATURDAY_PASS": 1,
    "HOURLY_RATE": 1,
}


# ============================================================================
# TIMEZONE HELPERS
# ============================================================================


def utcnow() -> datetime:
    """Current time as naive UTC (the storage convention)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_business_tz(dt: datetime) -> datetime:
    """Naive UTC (or aware) datetime -> aware datetime in the business timezone"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(BUSINESS_TZ)


def to_utc_naive(dt: datetime) -> datetime:
    """
    Normalize an API datetime for storage.

    Aware datetimes are converted to UTC. Naive datetimes coming from clients
    are wall-clock times in the business timezone.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=BUSINESS_TZ)
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def create_date_in_brazil_timezone(date_string: str, hour: int, minute: int = 0) -> datetime:
    """'2026-03-10' (or a full ISO string) at hour:minute São Paulo -> naive UTC"""
    date_part = date_string.split("T")[0]
    year, month, day = (int(p) for p in date_part.split("-"))
    local = datetime(year, month, day, hour, minute, tzinfo=BUSINESS_TZ)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def get_day_of_week(dt: datetime) -> int:
    return to_business_tz(dt).weekday()


def is_saturday(dt: datetime) -> bool:
    return get_day_of_week(dt) == SATURDAY


def get_business_hours(day_of_week: int) -> Optional[tuple[int, int]]:
    """Opening window for a weekday number, None when closed"""
    if day_of_week == SUNDAY:
        return None
    if day_of_week == SATURDAY:
        return SATURDAY_HOURS
    return WEEKDAY_HOURS


# ============================================================================
# OPENING HOURS
# ============================================================================


def is_within_business_hours(dt: datetime) -> bool:
    """True when the instant falls inside opening hours (19:59 yes, 20:00 no)"""
    local = to_business_tz(dt)
    hours = get_business_hours(local.weekday())
    if not hours:
        return False
    return hours[0] <= local.hour < hours[1]


def is_booking_within_business_hours(start: datetime, end: datetime) -> bool:
    """
    Whole booking must fit inside one day's opening window.
    Ending exactly at closing time is allowed.
    """
    local_start = to_business_tz(start)
    local_end = to_business_tz(end)

    if local_end <= local_start:
        return False

    hours = get_business_hours(local_start.weekday())
    if not hours:
        return False

    open_at = local_start.replace(hour=hours[0], minute=0, second=0, microsecond=0)
    close_at = local_start.replace(hour=hours[1], minute=0, second=0, microsecond=0)

    return local_start >= open_at and local_end <= close_at


def _shift_blocks_for(day_of_week: int) -> dict[str, tuple[int, int]]:
    if day_of_week == SUNDAY:
        return {}
    if day_of_week == SATURDAY:
        return SATURDAY_SHIFT_BLOCKS
    return WEEKDAY_SHIFT_BLOCKS


def get_shift_block(start: datetime, end: datetime) -> Optional[str]:
    """Name of the shift block matching start/end exactly, if any"""
    local_start = to_business_tz(start)
    local_end = to_business_tz(end)

    if local_start.date() != local_end.date():
        return None
    if local_start.minute or local_start.second or local_end.minute or local_end.second:
        return None

    for name, (block_start, block_end) in _shift_blocks_for(local_start.weekday()).items():
        if local_start.hour == block_start and local_end.hour == block_end:
            return name
    return None


def is_valid_shift_block(start: datetime, end: datetime) -> bool:
    return get_shift_block(start, end) is not None


def is_valid_hourly_booking(start: datetime, end: datetime) -> bool:
    """Exactly one hour, starting on the hour"""
    local_start = to_business_tz(start)
    if local_start.minute or local_start.second:
        return False
    return end - start == timedelta(hours=1)


def generate_time_slots(day: date) -> list[tuple[datetime, datetime]]:
    """Hourly (start, end) slots for a calendar day, as naive UTC"""
    hours = get_business_hours(day.weekday())
    if not hours:
        return []

    slots = []
    for hour in range(hours[0], hours[1]):
        local_start = datetime.combine(day, time(hour, 0), tzinfo=BUSINESS_TZ)
        start = local_start.astimezone(timezone.utc).replace(tzinfo=None)
        slots.append((start, start + timedelta(hours=1)))
    return slots


# ============================================================================
# BOOKING-TIME RULES
# ============================================================================


def has_min_advance(start: datetime, now: Optional[datetime] = None) -> bool:
    """Bookings that still need payment must start at least 30 minutes ahead"""
    now = now or utcnow()
    return start - now >= timedelta(minutes=MIN_ADVANCE_MINUTES)


def get_booking_window_limit(now: Optional[datetime] = None) -> date:
    """Last calendar day (business timezone) that can be booked"""
    today = to_business_tz(now or utcnow()).date()
    return today + timedelta(days=BOOKING_WINDOW_DAYS)


def validate_booking_window(start: datetime, now: Optional[datetime] = None) -> bool:
    """Start day must be within 30 days from today (day 30 included)"""
    return to_business_tz(start).date() <= get_booking_window_limit(now)


def hours_until(start: datetime, now: Optional[datetime] = None) -> float:
    now = now or utcnow()
    return (start - now).total_seconds() / 3600


def can_cancel_with_refund(start: datetime, now: Optional[datetime] = None) -> bool:
    return hours_until(start, now) >= MIN_CANCELLATION_HOURS


def can_reschedule(start: datetime, now: Optional[datetime] = None) -> bool:
    return hours_until(start, now) >= MIN_RESCHEDULE_HOURS


def can_user_self_cancel(start: datetime, now: Optional[datetime] = None) -> bool:
    return hours_until(start, now) >= USER_CANCEL_MIN_HOURS


def is_booking_in_past(start: datetime, now: Optional[datetime] = None) -> bool:
    return start < (now or utcnow())


def apply_validity(product_type: str, purchased_at: Optional[datetime] = None) -> datetime:
    """Expiry instant for a package bought at purchased_at"""
    purchased_at = purchased_at or utcnow()
    days = PACKAGE_VALIDITY_DAYS.get(product_type)
    if days is None:
        raise ValueError(f"Unknown package type: {product_type}")
    return purchased_at + timedelta(days=days)
