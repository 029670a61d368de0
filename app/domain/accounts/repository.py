"""Account repository - Database operations for users"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import User


class UserRepository:
    """Repository for user database operations"""

    @staticmethod
    def get_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_by_email(db: Session, email: Optional[str]) -> Optional[User]:
        if not email:
            return None
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def get_by_phone(db: Session, phone: Optional[str]) -> Optional[User]:
        if not phone:
            return None
        return db.query(User).filter(User.phone == phone).first()

    @staticmethod
    def search(db: Session, search: Optional[str] = None, limit: int = 50, offset: int = 0) -> tuple[list[User], int]:
        query = db.query(User)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(
                or_(
                    User.name.ilike(pattern),
                    User.email.ilike(pattern),
                    User.phone.ilike(pattern),
                    User.cpf.ilike(pattern),
                )
            )
        total = query.count()
        users = query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
        return users, total
