"""Accounts router - customer registration and cookie sessions"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ...auth import (
    clear_session_cookie,
    create_session_token,
    get_current_user,
    set_session_cookie,
)
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ..audit.service import log_user_action
from .schemas import LoginRequest, RegisterRequest, UserResponse, user_to_response
from .service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

login_rate_limit = create_rate_limiter(limit=10, window_seconds=300, key_prefix="auth_login")
register_rate_limit = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="auth_register")


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    return AccountService(db)


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(
    data: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    service: AccountService = Depends(get_account_service),
    _: None = Depends(register_rate_limit),
):
    """Create an account (or set a password on a guest checkout account) and log in"""
    user = service.register(data.name, data.email, data.password, phone=data.phone, cpf=data.cpf)
    set_session_cookie(response, create_session_token(user))
    log_user_action(
        db, "USER_REGISTERED", user.email, actor_id=user.id, target_type="User", target_id=user.id, request=request
    )
    return user_to_response(user)


@router.post("/login", response_model=UserResponse)
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    service: AccountService = Depends(get_account_service),
    _: None = Depends(login_rate_limit),
):
    user = service.authenticate(data.email, data.password)
    set_session_cookie(response, create_session_token(user))
    log_user_action(
        db, "USER_LOGIN", user.email, actor_id=user.id, target_type="User", target_id=user.id, request=request
    )
    logger.info(f"🔑 User {user.id} logged in")
    return user_to_response(user)


@router.post("/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return user_to_response(user)
