"""
Opening hours, shift blocks and booking-time rules (São Paulo, UTC-3)

2026-03-09 is a Monday, 2026-03-14 a Saturday and 2026-03-15 a Sunday.
Times below are naive UTC, local time + 3h.
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from app.domain.scheduling.business_hours import (
    apply_validity,
    can_cancel_with_refund,
    can_user_self_cancel,
    create_date_in_brazil_timezone,
    generate_time_slots,
    get_booking_window_limit,
    get_shift_block,
    has_min_advance,
    is_booking_within_business_hours,
    is_valid_hourly_booking,
    is_within_business_hours,
    to_business_tz,
    to_utc_naive,
    validate_booking_window,
)

MONDAY = date(2026, 3, 9)
SATURDAY = date(2026, 3, 14)
SUNDAY = date(2026, 3, 15)


def utc(day: date, local_hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, local_hour, minute) + timedelta(hours=3)


class TestTimezone:

    def test_naive_client_time_is_sao_paulo(self):
        assert to_utc_naive(datetime(2026, 3, 9, 10, 0)) == datetime(2026, 3, 9, 13, 0)

    def test_aware_time_is_converted(self):
        aware = datetime(2026, 3, 9, 13, 0, tzinfo=timezone.utc)
        assert to_utc_naive(aware) == datetime(2026, 3, 9, 13, 0)

    def test_to_business_tz(self):
        local = to_business_tz(datetime(2026, 3, 9, 2, 0))
        assert local.day == 8
        assert local.hour == 23

    def test_create_date_in_brazil_timezone(self):
        assert create_date_in_brazil_timezone("2026-03-09", 8) == datetime(2026, 3, 9, 11, 0)
        assert create_date_in_brazil_timezone("2026-03-09T00:00:00Z", 19, 30) == datetime(2026, 3, 9, 22, 30)


class TestOpeningHours:
    """Weekdays 8-20, Saturday 8-12, Sunday closed"""

    def test_weekday_boundaries(self):
        assert is_within_business_hours(utc(MONDAY, 8)) is True
        assert is_within_business_hours(utc(MONDAY, 19, 59)) is True
        assert is_within_business_hours(utc(MONDAY, 20)) is False
        assert is_within_business_hours(utc(MONDAY, 7, 59)) is False

    def test_booking_may_end_at_closing(self):
        assert is_booking_within_business_hours(utc(MONDAY, 19), utc(MONDAY, 20)) is True
        assert is_booking_within_business_hours(utc(MONDAY, 19), utc(MONDAY, 21)) is False
        assert is_booking_within_business_hours(utc(MONDAY, 7), utc(MONDAY, 9)) is False

    def test_saturday_morning_only(self):
        assert is_booking_within_business_hours(utc(SATURDAY, 11), utc(SATURDAY, 12)) is True
        assert is_booking_within_business_hours(utc(SATURDAY, 12), utc(SATURDAY, 13)) is False

    def test_sunday_closed(self):
        assert is_within_business_hours(utc(SUNDAY, 10)) is False
        assert is_booking_within_business_hours(utc(SUNDAY, 10), utc(SUNDAY, 11)) is False


class TestShiftsAndSlots:

    def test_weekday_shift_blocks(self):
        assert get_shift_block(utc(MONDAY, 8), utc(MONDAY, 12)) == "MORNING"
        assert get_shift_block(utc(MONDAY, 12), utc(MONDAY, 16)) == "AFTERNOON"
        assert get_shift_block(utc(MONDAY, 16), utc(MONDAY, 20)) == "EVENING"
        assert get_shift_block(utc(MONDAY, 9), utc(MONDAY, 13)) is None

    def test_saturday_has_only_morning(self):
        assert get_shift_block(utc(SATURDAY, 8), utc(SATURDAY, 12)) == "MORNING"
        assert get_shift_block(utc(SATURDAY, 12), utc(SATURDAY, 16)) is None

    def test_hourly_booking(self):
        assert is_valid_hourly_booking(utc(MONDAY, 10), utc(MONDAY, 11)) is True
        assert is_valid_hourly_booking(utc(MONDAY, 10, 30), utc(MONDAY, 11, 30)) is False
        assert is_valid_hourly_booking(utc(MONDAY, 10), utc(MONDAY, 12)) is False

    def test_time_slots(self):
        weekday = generate_time_slots(MONDAY)
        assert len(weekday) == 12
        assert weekday[0] == (datetime(2026, 3, 9, 11, 0), datetime(2026, 3, 9, 12, 0))
        assert weekday[-1][1] == datetime(2026, 3, 9, 23, 0)
        assert len(generate_time_slots(SATURDAY)) == 4
        assert generate_time_slots(SUNDAY) == []


class TestBookingTimeRules:

    def test_min_advance(self):
        now = datetime(2026, 3, 9, 12, 0)
        assert has_min_advance(now + timedelta(minutes=30), now) is True
        assert has_min_advance(now + timedelta(minutes=29), now) is False

    def test_booking_window_includes_day_30(self):
        now = datetime(2026, 3, 9, 12, 0)
        assert get_booking_window_limit(now) == date(2026, 4, 8)
        assert validate_booking_window(datetime(2026, 4, 8, 13, 0), now) is True
        assert validate_booking_window(datetime(2026, 4, 9, 13, 0), now) is False

    def test_cancellation_thresholds(self):
        now = datetime(2026, 3, 9, 12, 0)
        assert can_cancel_with_refund(now + timedelta(hours=24), now) is True
        assert can_cancel_with_refund(now + timedelta(hours=23, minutes=59), now) is False
        assert can_user_self_cancel(now + timedelta(hours=48), now) is True
        assert can_user_self_cancel(now + timedelta(hours=47), now) is False

    def test_apply_validity(self):
        purchased = datetime(2026, 3, 9, 12, 0)
        assert apply_validity("PACKAGE_10H", purchased) > purchased
        with pytest.raises(ValueError):
            apply_validity("UNKNOWN", purchased)
