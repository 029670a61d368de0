"""
CSRF Protection Middleware for FastAPI

Double-submit cookie pattern for the cookie-authenticated customer and admin
sessions:
- A CSRF token cookie is issued on the first response
- State-changing requests (POST, PUT, PATCH, DELETE) must echo it in X-CSRF-Token
- Gateway webhooks, cron jobs and the login endpoints are exempt

Set CSRF_ENABLED=false to disable (tests, local tooling).
"""
import logging
import secrets
from typing import Callable, List

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .config import IS_PRODUCTION

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
CSRF_COOKIE_MAX_AGE = 86400

PROTECTED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Server-to-server callers and pre-session endpoints
EXEMPT_PATHS: List[str] = [
    "/webhooks/",  # Asaas webhooks (token-authenticated)
    "/jobs/",  # Cron endpoints (bearer secret)
    "/auth/",  # Customer login/register happen before a session exists
    "/admin/auth/",  # Admin login
    "/health",
    "/docs",
    "/openapi.json",
    "/csrf-token",
]


def generate_csrf_token() -> str:
    """Generate a cryptographically secure CSRF token"""
    return secrets.token_urlsafe(32)


def is_path_exempt(path: str) -> bool:
    return any(path.startswith(exempt) for exempt in EXEMPT_PATHS)


def set_csrf_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,  # frontend reads it to fill the header
        secure=IS_PRODUCTION,
        samesite="strict",
        max_age=CSRF_COOKIE_MAX_AGE,
        path="/",
    )


def _reject(request: Request, reason: str, message: str) -> JSONResponse:
    logger.warning(f"🚫 CSRF: {reason} for {request.method} {request.url.path}")
    return JSONResponse(status_code=403, content={"success": False, "code": "FORBIDDEN", "error": message})


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    CSRF Protection Middleware using double-submit cookie pattern.

    Exceptions raised inside BaseHTTPMiddleware bypass FastAPI's handlers,
    so rejections are returned as JSON responses directly.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        csrf_cookie = request.cookies.get(CSRF_COOKIE_NAME)

        if request.method in PROTECTED_METHODS and not is_path_exempt(request.url.path):
            csrf_header = request.headers.get(CSRF_HEADER_NAME)

            if not csrf_cookie:
                return _reject(request, "Missing cookie", "Token CSRF ausente. Recarregue a página e tente novamente.")
            if not csrf_header:
                return _reject(request, "Missing header", "Cabeçalho CSRF ausente. Recarregue a página e tente novamente.")
            # Constant-time comparison
            if not secrets.compare_digest(csrf_cookie, csrf_header):
                return _reject(request, "Token mismatch", "Token CSRF inválido. Recarregue a página e tente novamente.")

            logger.debug(f"✅ CSRF: Valid token for {request.method} {request.url.path}")

        response = await call_next(request)

        if not csrf_cookie:
            set_csrf_cookie(response, generate_csrf_token())
            logger.debug("🔑 CSRF: Set new token cookie")

        return response
