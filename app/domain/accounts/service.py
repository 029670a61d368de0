"""Account service - Business logic for customer accounts"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import LOCKOUT_DURATION_MINUTES, MAX_LOGIN_ATTEMPTS
from ...errors import BusinessError
from ...models import User
from ...security_utils import check_password_strength, hash_password, verify_password
from ...shared.validators import mask_phone
from ..scheduling.business_hours import utcnow
from .repository import UserRepository

logger = logging.getLogger(__name__)


def resolve_or_create_user(
    db: Session,
    name: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    cpf: Optional[str] = None,
) -> User:
    """
    Find the customer behind a checkout (email first, then phone) or create one.

    Existing users get their name refreshed; CPF is only written when it was
    empty or already the same. Flushes but does not commit.
    """
    email = email.strip().lower() if email else None

    user = UserRepository.get_by_email(db, email) or UserRepository.get_by_phone(db, phone)
    if user:
        user.name = name or user.name
        if cpf and (not user.cpf or user.cpf == cpf):
            user.cpf = cpf
        if email and not user.email and not UserRepository.get_by_email(db, email):
            user.email = email
        if phone and not user.phone and not UserRepository.get_by_phone(db, phone):
            user.phone = phone
        db.flush()
        return user

    try:
        with db.begin_nested():
            user = User(name=name, email=email, phone=phone, cpf=cpf)
            db.add(user)
    except IntegrityError:
        # Same customer created by a concurrent checkout
        user = UserRepository.get_by_email(db, email) or UserRepository.get_by_phone(db, phone)
        if not user:
            raise
        return user

    logger.info(f"👤 Created customer {user.id} ({mask_phone(phone) if phone else email})")
    return user


class AccountService:
    """Business logic for registration and login"""

    def __init__(self, db: Session):
        self.db = db

    def register(
        self,
        name: str,
        email: str,
        password: str,
        phone: Optional[str] = None,
        cpf: Optional[str] = None,
    ) -> User:
        strength = check_password_strength(password)
        if not strength["is_valid"]:
            raise BusinessError("VALIDATION_ERROR", "; ".join(strength["feedback"]))

        existing = UserRepository.get_by_email(self.db, email)
        if existing:
            # Guest checkout rows included: an email is claimed only once
            raise BusinessError("DUPLICATE_ENTRY", "Já existe uma conta com este email.")
        if phone and UserRepository.get_by_phone(self.db, phone):
            raise BusinessError("DUPLICATE_ENTRY", "Já existe uma conta com este telefone.")

        user = User(name=name, email=email.strip().lower(), phone=phone, cpf=cpf)
        user.password_hash = hash_password(password)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise BusinessError("DUPLICATE_ENTRY", "Já existe uma conta com estes dados.") from e
        self.db.refresh(user)
        logger.info(f"✅ Registered user {user.id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        """Check credentials with lockout after repeated failures"""
        user = UserRepository.get_by_email(self.db, email)
        now = utcnow()

        if user and user.locked_until and user.locked_until > now:
            minutes = int((user.locked_until - now).total_seconds() // 60) + 1
            raise BusinessError(
                "ACCOUNT_LOCKED",
                f"Conta bloqueada por excesso de tentativas. Tente novamente em {minutes} minutos.",
            )

        if not user or not user.is_active or not verify_password(password, user.password_hash):
            if user:
                user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
                if user.failed_login_attempts >= MAX_LOGIN_ATTEMPTS:
                    user.locked_until = now + timedelta(minutes=LOCKOUT_DURATION_MINUTES)
                    user.failed_login_attempts = 0
                    logger.warning(f"🔒 User {user.id} locked for {LOCKOUT_DURATION_MINUTES} minutes")
                self.db.commit()
            raise HTTPException(status_code=401, detail="Email ou senha inválidos")

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        self.db.commit()
        return user
