"""Availability router - public slot lookup per room and day"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ..catalog.repository import CatalogRepository
from .availability import get_available_slots
from .business_hours import get_booking_window_limit, to_business_tz

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])


@router.get("")
async def get_availability(
    roomId: str = Query(..., description="Room id or slug"),
    date_: date = Query(..., alias="date", description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
):
    """Hourly slots for a room on a given day"""
    room = CatalogRepository.get_room(db, roomId)
    if not room or not room.is_active:
        raise HTTPException(status_code=404, detail="Sala não encontrada")

    slots = get_available_slots(db, room.id, date_)
    return {
        "roomId": room.id,
        "date": date_.isoformat(),
        "bookingWindowLimit": get_booking_window_limit().isoformat(),
        "slots": [
            {
                "start": slot["start"].isoformat() + "Z",
                "end": slot["end"].isoformat() + "Z",
                "localTime": to_business_tz(slot["start"]).strftime("%H:%M"),
                "available": slot["available"],
            }
            for slot in slots
        ],
    }
