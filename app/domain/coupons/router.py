"""Coupons router - public coupon preview"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_optional_user, get_session_email
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import CouponValidateRequest
from .service import CouponService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coupons", tags=["Coupons"])

coupon_rate_limit = create_rate_limiter(limit=20, window_seconds=60, key_prefix="coupon_validate")


def get_coupon_service(db: Session = Depends(get_db)) -> CouponService:
    return CouponService(db)


@router.post("/validate")
async def validate_coupon(
    data: CouponValidateRequest,
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    service: CouponService = Depends(get_coupon_service),
    _: None = Depends(coupon_rate_limit),
):
    """Discount preview for an amount; invalid coupons answer with a typed error"""
    return service.preview(
        data.code,
        data.amountCents,
        context=data.context,
        user_id=user.id if user else None,
        session_email=get_session_email(request, user),
    )
