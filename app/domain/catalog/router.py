"""Catalog router - public room and product listing"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Room
from ...shared.money import format_brl
from .pricing import PricingError, get_product_price_cents, get_room_key
from .repository import CatalogRepository
from .schemas import ProductResponse, RoomResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["Rooms"])


def serialize_room(db: Session, room: Room) -> RoomResponse:
    try:
        saturday_rate = get_product_price_cents(get_room_key(room), "SATURDAY_HOUR")
    except PricingError:
        saturday_rate = None

    products = [
        ProductResponse(
            id=p.id,
            name=p.name,
            type=p.type,
            price=p.price,
            priceFormatted=format_brl(p.price),
            hoursIncluded=p.hours_included,
            validityDays=p.validity_days,
        )
        for p in CatalogRepository.get_room_products(db, room.id)
    ]

    return RoomResponse(
        id=room.id,
        name=room.name,
        slug=room.slug,
        description=room.description,
        capacity=room.capacity,
        sizeM2=room.size_m2,
        tier=room.tier,
        hourlyRate=room.hourly_rate,
        hourlyRateFormatted=format_brl(room.hourly_rate),
        saturdayHourlyRate=saturday_rate,
        amenities=room.amenities or [],
        imageUrl=room.image_url,
        products=products,
    )


@router.get("", response_model=list[RoomResponse])
async def list_rooms(db: Session = Depends(get_db)):
    """Active rooms ordered by tier, with their active products"""
    return [serialize_room(db, room) for room in CatalogRepository.get_active_rooms(db)]


@router.get("/{room_ref}", response_model=RoomResponse)
async def get_room(room_ref: str, db: Session = Depends(get_db)):
    """Room by id or slug"""
    room = CatalogRepository.get_room(db, room_ref)
    if not room or not room.is_active:
        raise HTTPException(status_code=404, detail="Sala não encontrada")
    return serialize_room(db, room)
