"""Bookings router - public checkout and customer self-service"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...auth import get_admin_from_request, get_current_user, get_optional_user, get_session_email
from ...database import get_db
from ...errors import BusinessError
from ...models import User
from ...rate_limiter import create_rate_limiter
from ..audit.service import log_audit, log_user_action
from .repository import BookingRepository
from .schemas import (
    BookingCancelRequest,
    BookingCreate,
    BookingWithCreditCreate,
    serialize_booking,
    serialize_refund,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])
me_router = APIRouter(prefix="/me", tags=["My Bookings"])

booking_rate_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="booking_create")


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


# ============================================================================
# PUBLIC CHECKOUT
# ============================================================================


@router.post("", status_code=201)
async def create_booking(
    data: BookingCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(booking_rate_limit),
):
    """Book a room; pays with credits first and charges the rest when payNow is set"""
    result = await service.create_booking(data, user, get_session_email(request, user))
    log_audit(
        db,
        "BOOKING_CREATED",
        source="USER",
        actor_id=user.id if user else None,
        actor_email=user.email if user else data.userEmail,
        target_type="Booking",
        target_id=result["bookingId"],
        metadata={
            "roomId": data.roomId,
            "netAmount": result["netAmount"],
            "creditsUsed": result["creditsUsed"],
            "amountToPay": result["amountToPay"],
            "couponCode": result["couponCode"],
            "payNow": data.payNow,
        },
        request=request,
    )
    return result


@router.post("/with-credit", status_code=201)
async def create_booking_with_credit(
    data: BookingWithCreditCreate,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(booking_rate_limit),
):
    result = await service.create_with_credit(data, user, get_session_email(request, user))
    log_user_action(
        db,
        "BOOKING_CREATED",
        user.email,
        actor_id=user.id,
        target_type="Booking",
        target_id=result["bookingId"],
        metadata={"creditsUsed": result["creditsUsed"], "couponCode": result["couponCode"], "paidWith": "CREDITS"},
        request=request,
    )
    log_user_action(
        db,
        "CREDIT_USED",
        user.email,
        actor_id=user.id,
        target_type="Booking",
        target_id=result["bookingId"],
        metadata={"creditIds": result["creditIds"], "amount": result["creditsUsed"]},
        request=request,
    )
    return result


@router.get("/{booking_id}")
async def get_booking_status(booking_id: int, service: BookingService = Depends(get_booking_service)):
    """Status polled by the payment page"""
    return service.get_public_status(booking_id)


@router.post("/{booking_id}/cancel-pending")
async def cancel_pending_booking(
    booking_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    service: BookingService = Depends(get_booking_service),
):
    admin = get_admin_from_request(request)
    if not user and not admin:
        raise HTTPException(status_code=401, detail="Não autenticado")

    result = await service.cancel_pending(booking_id, user, is_admin=bool(admin))
    if not result.get("alreadyCancelled"):
        log_audit(
            db,
            "BOOKING_CANCELLED",
            source="ADMIN" if admin and not user else "USER",
            actor_id=user.id if user else None,
            actor_email=user.email if user else admin["email"],
            target_type="Booking",
            target_id=booking_id,
            metadata={
                "cancelType": "pending_cancellation",
                "creditsRestored": result["creditsRestored"],
                "gatewayCancelled": result["gatewayCancelled"],
            },
            request=request,
        )
    return result


# ============================================================================
# CUSTOMER AREA
# ============================================================================


@me_router.get("/bookings")
async def list_my_bookings(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    bookings = BookingRepository.list_for_user(db, user.id)
    return {"bookings": [serialize_booking(b) for b in bookings]}


@me_router.get("/bookings/{booking_id}")
async def get_my_booking(booking_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    booking = BookingRepository.get_for_user(db, booking_id, user.id)
    if not booking:
        raise BusinessError("NOT_FOUND", "Reserva não encontrada.")
    return serialize_booking(booking)


@me_router.post("/bookings/{booking_id}/cancel")
async def cancel_my_booking(
    booking_id: int,
    request: Request,
    data: Optional[BookingCancelRequest] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel up to 48 hours ahead, optionally asking for the money back by PIX"""
    data = data or BookingCancelRequest()
    result = await service.cancel_by_user(booking_id, user, data)
    if result.get("alreadyCancelled"):
        return result

    log_user_action(
        db,
        "BOOKING_CANCELLED",
        user.email,
        actor_id=user.id,
        target_type="Booking",
        target_id=booking_id,
        metadata={
            "cancelledBy": "USER",
            "hoursBeforeStart": result["hoursBeforeStart"],
            "refundRequested": data.requestRefund,
            "refundRequestId": result["refundRequestId"],
            "creditsRestored": result["creditsRestored"],
        },
        request=request,
    )
    if result["refundAmount"]:
        log_user_action(
            db,
            "REFUND_REQUESTED",
            user.email,
            actor_id=user.id,
            target_type="RefundRequest",
            target_id=result["refundRequestId"],
            metadata={"bookingId": booking_id, "amount": result["refundAmount"], "pixKeyType": data.pixKeyType},
            request=request,
        )
    return result


@me_router.get("/refunds")
async def list_my_refunds(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"refunds": [serialize_refund(r) for r in BookingRepository.list_refunds_for_user(db, user.id)]}
