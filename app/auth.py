"""
Authentication dependencies

Customers and the back-office use separate HttpOnly cookies holding HS256
JWTs: `session_token` ({"type": "user", "sub": <user id>}) and
`admin_token` ({"type": "admin", "sub": <admin email>}). A Bearer header
carrying the same token is accepted for API clients.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from .config import (
    ADMIN_SESSION_SECRET,
    DEV_COUPON_ADMIN_EMAILS,
    IS_PRODUCTION,
    SESSION_DURATION_SECONDS,
)
from .database import get_db
from .models import User
from .security_utils import create_jwt_token, verify_jwt_token

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "session_token"
ADMIN_COOKIE_NAME = "admin_token"


def _get_token(request: Request, cookie_name: str) -> Optional[str]:
    token = request.cookies.get(cookie_name)
    if token:
        return token
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


def set_session_cookie(response: Response, token: str, cookie_name: str = SESSION_COOKIE_NAME) -> None:
    response.set_cookie(
        key=cookie_name,
        value=token,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
        max_age=SESSION_DURATION_SECONDS,
        path="/",
    )


def clear_session_cookie(response: Response, cookie_name: str = SESSION_COOKIE_NAME) -> None:
    response.delete_cookie(key=cookie_name, path="/")


# ============================================================================
# CUSTOMER SESSIONS
# ============================================================================


def create_session_token(user: User) -> str:
    return create_jwt_token({"sub": str(user.id), "type": "user", "email": user.email})


def get_user_from_request(request: Request, db: Session) -> Optional[User]:
    payload = verify_jwt_token(_get_token(request, SESSION_COOKIE_NAME))
    if not payload or payload.get("type") != "user":
        return None
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        return None
    return user


async def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    """Logged-in customer or None (public endpoints)"""
    return get_user_from_request(request, db)


async def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Logged-in customer; 401 otherwise"""
    user = get_user_from_request(request, db)
    if not user:
        logger.warning(f"🔒 Unauthenticated request to {request.url.path}")
        raise HTTPException(status_code=401, detail="Não autenticado")
    return user


# ============================================================================
# ADMIN SESSIONS
# ============================================================================


def create_admin_token(email: str) -> str:
    return create_jwt_token({"sub": email, "type": "admin"}, secret=ADMIN_SESSION_SECRET)


def get_admin_from_request(request: Request) -> Optional[dict]:
    payload = verify_jwt_token(_get_token(request, ADMIN_COOKIE_NAME), secret=ADMIN_SESSION_SECRET)
    if not payload or payload.get("type") != "admin":
        return None
    return {"email": payload.get("sub")}


async def require_admin(request: Request) -> dict:
    """Admin session claims; 401 otherwise"""
    admin = get_admin_from_request(request)
    if not admin:
        logger.warning(f"🔒 Admin access denied for {request.url.path}")
        raise HTTPException(status_code=401, detail="Acesso administrativo necessário")
    return admin


def get_session_email(request: Request, user: Optional[User] = None) -> Optional[str]:
    """Email of whoever holds a session (admin first), used for dev coupon access"""
    admin = get_admin_from_request(request)
    if admin and admin.get("email"):
        return admin["email"].lower()
    if user and user.email:
        return user.email.lower()
    return None


def can_use_dev_coupons(email: Optional[str]) -> bool:
    return bool(email) and email.lower() in DEV_COUPON_ADMIN_EMAILS
