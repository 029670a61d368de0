"""Room pricing - single source of truth for amounts charged per booking"""

import logging
from datetime import datetime
from typing import Optional

from ...models import Room
from ...shared.money import to_cents
from ..scheduling.business_hours import is_saturday
from .constants import PRICES_V3, ROOM_SLUG_MAP

logger = logging.getLogger(__name__)


class PricingError(ValueError):
    """Raised when a room or product has no price in the table"""


def get_room_key(room: Optional[Room] = None, slug: Optional[str] = None) -> str:
    """Resolve the price-table key (SALA_A...) from a room or slug"""
    candidate = slug or (room.slug if room is not None else None)
    if candidate and candidate.lower() in ROOM_SLUG_MAP:
        return ROOM_SLUG_MAP[candidate.lower()]

    if room is not None and room.name:
        by_name = room.name.strip().upper().replace(" ", "_")
        if by_name in PRICES_V3:
            return by_name

    raise PricingError(f"No price table for room {candidate or getattr(room, 'id', None)}")


def get_price_reais(room_key: str, product_type: str) -> float:
    try:
        return PRICES_V3[room_key][product_type]
    except KeyError as e:
        raise PricingError(f"No price for {room_key}/{product_type}") from e


def get_product_price_cents(room_key: str, product_type: str) -> int:
    return to_cents(get_price_reais(room_key, product_type))


def get_hourly_price(room: Room, when: datetime) -> float:
    """Hourly price in reais; Saturdays use the Saturday rate"""
    room_key = get_room_key(room)
    product_type = "SATURDAY_HOUR" if is_saturday(when) else "HOURLY_RATE"
    return get_price_reais(room_key, product_type)


def get_hourly_price_cents(room: Room, when: datetime) -> int:
    return to_cents(get_hourly_price(room, when))


def get_booking_total_cents(room: Room, start: datetime, hours: float) -> int:
    """Hourly price (by the start day) x hours, rounded to cents"""
    if hours <= 0:
        raise PricingError("Booking duration must be positive")
    total = get_hourly_price(room, start) * hours
    cents = to_cents(round(total, 2))
    logger.debug(f"💰 Price for room {room.slug}: {hours}h = {cents} cents")
    return cents
