"""Idempotent catalog seeding from the V3 price table"""

import logging

from sqlalchemy.orm import Session

from ...models import Product, Room
from .constants import (
    DISCONTINUED_PRODUCT_TYPES,
    PRODUCT_HOURS,
    PRODUCT_NAMES,
    PRODUCT_VALIDITY,
    ROOM_INFO,
    ROOM_SLUG_MAP,
    ROOM_TIERS,
)
from .pricing import get_product_price_cents

logger = logging.getLogger(__name__)


def seed_catalog(db: Session) -> dict:
    """Create or refresh the three rooms and their products; returns counts"""
    created_rooms = created_products = updated_products = 0

    for order, (slug, room_key) in enumerate(ROOM_SLUG_MAP.items()):
        info = ROOM_INFO[room_key]
        room = db.query(Room).filter(Room.slug == slug).first()
        if room is None:
            room = Room(slug=slug, name=info["name"])
            db.add(room)
            created_rooms += 1
        room.capacity = info["capacity"]
        room.size_m2 = info["size_m2"]
        room.tier = ROOM_TIERS[room_key]
        room.hourly_rate = get_product_price_cents(room_key, "HOURLY_RATE")
        room.sort_order = order
        db.flush()

        for product_order, product_type in enumerate(PRODUCT_HOURS):
            product = (
                db.query(Product)
                .filter(Product.room_id == room.id, Product.type == product_type)
                .first()
            )
            if product is None:
                product = Product(room_id=room.id, type=product_type)
                db.add(product)
                created_products += 1
            else:
                updated_products += 1
            product.name = f"{PRODUCT_NAMES[product_type]} - {info['name']}"
            product.slug = f"{slug}-{product_type.lower().replace('_', '-')}"
            product.price = get_product_price_cents(room_key, product_type)
            product.hours_included = PRODUCT_HOURS[product_type]
            product.validity_days = PRODUCT_VALIDITY[product_type]
            product.is_active = product_type not in DISCONTINUED_PRODUCT_TYPES
            product.sort_order = product_order

    db.commit()
    logger.info(
        f"🌱 Catalog seeded: {created_rooms} rooms created, "
        f"{created_products} products created, {updated_products} refreshed"
    )
    return {"roomsCreated": created_rooms, "productsCreated": created_products, "productsUpdated": updated_products}
