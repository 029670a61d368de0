"""Credits router - package purchase and customer balance"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user, get_optional_user, get_session_email
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ..audit.service import log_audit
from .repository import CreditRepository
from .schemas import CreditPurchaseRequest
from .service import CreditService, get_user_credits_summary, serialize_credit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Credits"])

purchase_rate_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="credit_purchase")


def get_credit_service(db: Session = Depends(get_db)) -> CreditService:
    return CreditService(db)


@router.post("/credits/purchase")
async def purchase_credits(
    data: CreditPurchaseRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    service: CreditService = Depends(get_credit_service),
    _: None = Depends(purchase_rate_limit),
):
    """Buy a package or loose hours; the credit activates when the payment is confirmed"""
    result = await service.purchase(data, user, get_session_email(request, user))
    log_audit(
        db,
        "CREDIT_CREATED",
        source="USER",
        actor_id=result["userId"],
        actor_email=data.userEmail,
        target_type="Credit",
        target_id=result["creditId"],
        metadata={
            "amount": result["amount"],
            "grossAmount": result["grossAmount"],
            "couponCode": result["couponCode"],
            "paymentMethod": data.paymentMethod,
            "status": "PENDING",
        },
        request=request,
    )
    return result


@router.get("/me/credits")
async def my_credits(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Spendable balance plus the full credit history"""
    summary = get_user_credits_summary(db, user.id)
    summary["history"] = [serialize_credit(c) for c in CreditRepository.list_for_user(db, user.id)]
    return summary
