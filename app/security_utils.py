"""
Security utilities

Password hashing (passlib bcrypt) and signed session tokens (python-jose
HS256) shared by customer and admin authentication.
"""

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError
from jose import jwt as jose_jwt
from passlib.context import CryptContext

from .config import SECRET_KEY, SESSION_DURATION_SECONDS

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify password against bcrypt hash; a missing hash never matches"""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


def check_password_strength(password: str) -> dict[str, Any]:
    """
    Minimal policy: 8+ characters with letters and numbers.

    Returns {"is_valid": bool, "feedback": [messages]}.
    """
    feedback = []
    if len(password) < MIN_PASSWORD_LENGTH:
        feedback.append(f"A senha deve ter pelo menos {MIN_PASSWORD_LENGTH} caracteres")
    if not re.search(r"[A-Za-z]", password):
        feedback.append("Inclua letras")
    if not re.search(r"\d", password):
        feedback.append("Inclua números")
    return {"is_valid": not feedback, "feedback": feedback}


# ============================================================================
# TOKEN GENERATION & VALIDATION
# ============================================================================


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token"""
    return secrets.token_urlsafe(length)


def create_jwt_token(
    data: dict[str, Any],
    expires_delta: Optional[timedelta] = None,
    secret: Optional[str] = None,
) -> str:
    """
    Create a signed JWT

    Args:
        data: Claims to encode
        expires_delta: Lifetime (default: session duration)
        secret: Signing key (default: SECRET_KEY)
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(seconds=SESSION_DURATION_SECONDS))
    to_encode.update({"exp": expire, "iat": datetime.now(timezone.utc)})
    return jose_jwt.encode(to_encode, secret or SECRET_KEY, algorithm=ALGORITHM)


def verify_jwt_token(token: Optional[str], secret: Optional[str] = None) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    if not token:
        return None
    try:
        return jose_jwt.decode(token, secret or SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"⚠️ Invalid session token: {e}")
        return None
