"""Catalog repository - Database operations for rooms and products"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Product, Room


class CatalogRepository:
    """Repository for room and product lookups"""

    @staticmethod
    def get_active_rooms(db: Session) -> list[Room]:
        return (
            db.query(Room)
            .filter(Room.is_active.is_(True))
            .order_by(Room.tier.asc(), Room.sort_order.asc())
            .all()
        )

    @staticmethod
    def get_room(db: Session, room_id_or_slug) -> Optional[Room]:
        """Look up by numeric id first, then by slug"""
        value = str(room_id_or_slug).strip()
        room = None
        if value.isdigit():
            room = db.query(Room).filter(Room.id == int(value)).first()
        if not room:
            room = db.query(Room).filter(Room.slug == value.lower()).first()
        return room

    @staticmethod
    def get_room_products(db: Session, room_id: int) -> list[Product]:
        return (
            db.query(Product)
            .filter(Product.room_id == room_id, Product.is_active.is_(True))
            .order_by(Product.sort_order.asc())
            .all()
        )

    @staticmethod
    def get_product(db: Session, product_id: int) -> Optional[Product]:
        return db.query(Product).filter(Product.id == product_id).first()

    @staticmethod
    def get_product_by_type(db: Session, room_id: int, product_type: str) -> Optional[Product]:
        return (
            db.query(Product)
            .filter(
                Product.room_id == room_id,
                Product.type == product_type,
                Product.is_active.is_(True),
            )
            .first()
        )
