"""Catalog schemas - Pydantic models for rooms and products"""

from typing import Optional

from pydantic import BaseModel


class ProductResponse(BaseModel):
    id: int
    name: str
    type: str
    price: int  # cents
    priceFormatted: str
    hoursIncluded: Optional[int] = None
    validityDays: Optional[int] = None


class RoomResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    capacity: int
    sizeM2: Optional[int] = None
    tier: int
    hourlyRate: int  # cents
    hourlyRateFormatted: str
    saturdayHourlyRate: Optional[int] = None
    amenities: list[str] = []
    imageUrl: Optional[str] = None
    products: list[ProductResponse] = []
