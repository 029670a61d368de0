"""Admin router - back-office API behind the admin session cookie"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from ...auth import ADMIN_COOKIE_NAME, clear_session_cookie, create_admin_token, get_admin_from_request, require_admin, set_session_cookie
from ...config import ADMIN_PASSWORD
from ...database import get_db
from ...errors import BusinessError
from ...rate_limiter import create_rate_limiter
from ..accounts.repository import UserRepository
from ..accounts.schemas import user_to_response
from ..audit.repository import AuditRepository
from ..audit.service import log_admin_action
from ..bookings.repository import BookingRepository
from ..bookings.schemas import serialize_booking, serialize_refund
from ..catalog.repository import CatalogRepository
from ..coupons.repository import CouponRepository
from ..coupons.schemas import CouponCreate, CouponUpdate, coupon_to_response
from ..credits.schemas import ManualCreditCreate, SubletCreditCreate
from ..credits.service import create_sublet_credit, serialize_credit
from .schemas import (
    AdminBookingCreate,
    AdminBookingUpdate,
    AdminCancelRequest,
    AdminLoginRequest,
    RefundUpdate,
    SettingUpdate,
    serialize_audit_log,
    serialize_setting,
)
from .service import AdminService, check_admin_credentials, parse_date_filter

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/admin/auth", tags=["Admin Auth"])
router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])

admin_login_rate_limit = create_rate_limiter(limit=5, window_seconds=300, key_prefix="admin_login")


def get_admin_service(db: Session = Depends(get_db)) -> AdminService:
    return AdminService(db)


def _page(page: int, limit: int) -> tuple[int, int]:
    limit = max(1, min(limit, 200))
    return limit, (max(page, 1) - 1) * limit


# ============================================================================
# AUTH
# ============================================================================


@auth_router.post("/login")
async def admin_login(
    data: AdminLoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    _: None = Depends(admin_login_rate_limit),
):
    if not ADMIN_PASSWORD:
        logger.error("❌ ADMIN_PASSWORD not configured - admin login disabled")
        raise HTTPException(status_code=503, detail="Login administrativo não configurado")

    if not check_admin_credentials(data.email, data.password):
        logger.warning(f"🚫 Failed admin login for {data.email}")
        raise HTTPException(status_code=401, detail="Credenciais inválidas")

    set_session_cookie(response, create_admin_token(data.email), cookie_name=ADMIN_COOKIE_NAME)
    log_admin_action(db, "ADMIN_LOGIN", data.email, request=request)
    return {"success": True, "email": data.email}


@auth_router.post("/logout")
async def admin_logout(request: Request, response: Response, db: Session = Depends(get_db)):
    admin = get_admin_from_request(request)
    clear_session_cookie(response, cookie_name=ADMIN_COOKIE_NAME)
    if admin:
        log_admin_action(db, "ADMIN_LOGOUT", admin["email"], request=request)
    return {"success": True}


# ============================================================================
# BOOKINGS
# ============================================================================


@router.get("/bookings")
async def list_bookings(
    status: Optional[str] = None,
    roomId: Optional[str] = None,
    userId: Optional[int] = None,
    dateFrom: Optional[str] = None,
    dateTo: Optional[str] = None,
    page: int = 1,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    room_id = None
    if roomId:
        room = CatalogRepository.get_room(db, roomId)
        if not room:
            raise BusinessError("NOT_FOUND", "Sala não encontrada.")
        room_id = room.id

    limit, offset = _page(page, limit)
    bookings, total = BookingRepository.list_filtered(
        db,
        status=status,
        room_id=room_id,
        user_id=userId,
        start_from=parse_date_filter(dateFrom),
        start_to=parse_date_filter(dateTo, end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return {
        "bookings": [
            {**serialize_booking(b), "userName": b.user.name, "userEmail": b.user.email, "userPhone": b.user.phone}
            for b in bookings
        ],
        "total": total,
        "page": max(page, 1),
        "limit": limit,
    }


@router.post("/bookings", status_code=201)
async def create_booking(
    data: AdminBookingCreate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    """Manual or courtesy booking; skips payment and the booking window"""
    booking = service.create_booking(data)
    action = "BOOKING_COURTESY_CREATED" if booking.origin == "ADMIN_COURTESY" else "BOOKING_MANUAL_CREATED"
    log_admin_action(
        db,
        action,
        admin["email"],
        target_type="Booking",
        target_id=booking.id,
        metadata={
            "userId": booking.user_id,
            "roomId": booking.room_id,
            "startTime": booking.start_time.isoformat(),
            "endTime": booking.end_time.isoformat(),
            "grossAmount": booking.gross_amount,
            "netAmount": booking.net_amount,
            "courtesyReason": booking.courtesy_reason,
            "overrideReason": booking.override_reason,
        },
        request=request,
    )
    return {"success": True, "bookingId": booking.id, "booking": serialize_booking(booking)}


@router.get("/bookings/{booking_id}")
async def get_booking(booking_id: int, service: AdminService = Depends(get_admin_service)):
    booking = service.get_booking(booking_id)
    refund = BookingRepository.get_refund_for_booking(service.db, booking.id)
    return {
        **serialize_booking(booking),
        "user": user_to_response(booking.user).model_dump(),
        "courtesyReason": booking.courtesy_reason,
        "overrideReason": booking.override_reason,
        "couponSnapshot": booking.coupon_snapshot,
        "creditIds": booking.credit_ids,
        "paymentId": booking.payment_id,
        "cancelSource": booking.cancel_source,
        "payments": [
            {"id": p.id, "status": p.status, "method": p.method, "amount": p.amount, "externalId": p.external_id}
            for p in booking.payments
        ],
        "refundRequest": serialize_refund(refund) if refund else None,
    }


@router.patch("/bookings/{booking_id}")
async def update_booking(
    booking_id: int,
    data: AdminBookingUpdate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    booking, changes = service.update_booking(booking_id, data)
    if changes:
        log_admin_action(
            db, "BOOKING_UPDATED", admin["email"], target_type="Booking", target_id=booking.id,
            metadata=changes, request=request,
        )
    return {"success": True, "booking": serialize_booking(booking)}


@router.post("/bookings/{booking_id}/cancel")
async def cancel_booking(
    booking_id: int,
    request: Request,
    data: Optional[AdminCancelRequest] = None,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    data = data or AdminCancelRequest()
    result = service.cancel_booking(booking_id, data)
    log_admin_action(
        db,
        "BOOKING_CANCELLED",
        admin["email"],
        target_type="Booking",
        target_id=booking_id,
        metadata={
            "reason": data.reason,
            "refundType": result["refundType"],
            "creditId": result["creditId"],
            "creditAmount": result["creditAmount"],
            "refundRequestId": result["refundRequestId"],
            "creditsRestored": result["creditsRestored"],
        },
        request=request,
    )
    if result["creditId"]:
        log_admin_action(
            db, "CREDIT_REFUNDED", admin["email"], target_type="Credit", target_id=result["creditId"],
            metadata={"bookingId": booking_id, "amount": result["creditAmount"]}, request=request,
        )
    return result


# ============================================================================
# USERS
# ============================================================================


@router.get("/users")
async def list_users(
    search: Optional[str] = None,
    page: int = 1,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    limit, offset = _page(page, limit)
    users, total = UserRepository.search(db, search, limit=limit, offset=offset)
    return {"users": [user_to_response(u).model_dump() for u in users], "total": total, "page": max(page, 1)}


@router.get("/users/{user_id}")
async def get_user(user_id: int, service: AdminService = Depends(get_admin_service)):
    return service.get_user_detail(user_id)


# ============================================================================
# COUPONS
# ============================================================================


@router.get("/coupons")
async def list_coupons(db: Session = Depends(get_db)):
    return {"coupons": [coupon_to_response(c).model_dump() for c in CouponRepository.list_coupons(db)]}


@router.post("/coupons", status_code=201)
async def create_coupon(
    data: CouponCreate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if CouponRepository.get_by_code(db, data.code):
        raise BusinessError("DUPLICATE_ENTRY", f"Cupom {data.code} já existe.")

    coupon = CouponRepository.create_coupon(
        db,
        code=data.code,
        discount_type=data.discountType,
        value=data.value,
        description=data.description,
        single_use_per_user=data.singleUsePerUser,
        is_dev_coupon=data.isDevCoupon,
        is_active=data.isActive,
        valid_from=data.validFrom,
        valid_until=data.validUntil,
        min_amount_cents=data.minAmountCents,
        max_uses=data.maxUses,
    )
    log_admin_action(
        db, "COUPON_CREATED", admin["email"], target_type="Coupon", target_id=coupon.id,
        metadata={"code": coupon.code, "discountType": coupon.discount_type, "value": coupon.value},
        request=request,
    )
    return coupon_to_response(coupon)


@router.patch("/coupons/{coupon_id}")
async def update_coupon(
    coupon_id: int,
    data: CouponUpdate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    coupon = CouponRepository.get_by_id(db, coupon_id)
    if not coupon:
        raise BusinessError("NOT_FOUND", "Cupom não encontrado.")
    if data.value is not None and coupon.discount_type == "PERCENT" and not 0 < data.value <= 100:
        raise BusinessError("VALIDATION_ERROR", "Percentual deve estar entre 1 e 100.")

    changes = data.model_dump(exclude_none=True)
    coupon = CouponRepository.update_coupon(
        db,
        coupon,
        value=data.value,
        description=data.description,
        single_use_per_user=data.singleUsePerUser,
        is_dev_coupon=data.isDevCoupon,
        is_active=data.isActive,
        valid_from=data.validFrom,
        valid_until=data.validUntil,
        min_amount_cents=data.minAmountCents,
        max_uses=data.maxUses,
    )
    log_admin_action(
        db, "COUPON_UPDATED", admin["email"], target_type="Coupon", target_id=coupon.id,
        metadata={"code": coupon.code, "changes": list(changes)}, request=request,
    )
    return coupon_to_response(coupon)


@router.delete("/coupons/{coupon_id}")
async def deactivate_coupon(
    coupon_id: int,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Coupons are never deleted; usage history points at their code"""
    coupon = CouponRepository.get_by_id(db, coupon_id)
    if not coupon:
        raise BusinessError("NOT_FOUND", "Cupom não encontrado.")
    coupon.is_active = False
    db.commit()
    log_admin_action(
        db, "COUPON_UPDATED", admin["email"], target_type="Coupon", target_id=coupon.id,
        metadata={"code": coupon.code, "changes": ["isActive"], "isActive": False}, request=request,
    )
    return {"success": True}


# ============================================================================
# CREDITS
# ============================================================================


@router.post("/credits", status_code=201)
async def create_credit(
    data: ManualCreditCreate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    credit = service.create_manual_credit(data)
    log_admin_action(
        db, "CREDIT_CREATED", admin["email"], target_type="Credit", target_id=credit.id,
        metadata={"userId": credit.user_id, "amount": credit.amount, "type": credit.type,
                  "usageType": credit.usage_type, "notes": credit.notes},
        request=request,
    )
    return serialize_credit(credit)


@router.post("/credits/sublet", status_code=201)
async def create_sublet(
    data: SubletCreditCreate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Reward a customer who sublet their slot: half an hour's price, once a month"""
    if not UserRepository.get_by_id(db, data.userId):
        raise BusinessError("NOT_FOUND", "Usuário não encontrado.")
    room = CatalogRepository.get_room(db, data.roomId)
    if not room:
        raise BusinessError("NOT_FOUND", "Sala não encontrada.")

    try:
        credit = create_sublet_credit(db, data.userId, room, source_booking_id=data.sourceBookingId)
        db.commit()
    except Exception:
        db.rollback()
        raise

    log_admin_action(
        db, "CREDIT_CREATED", admin["email"], target_type="Credit", target_id=credit.id,
        metadata={"userId": credit.user_id, "amount": credit.amount, "type": "SUBLET",
                  "sourceBookingId": data.sourceBookingId},
        request=request,
    )
    return serialize_credit(credit)


# ============================================================================
# REFUND REQUESTS
# ============================================================================


@router.get("/refunds")
async def list_refunds(status: Optional[str] = None, service: AdminService = Depends(get_admin_service)):
    refunds = service.list_refunds(status)
    return {
        "refunds": [
            {**serialize_refund(r), "pixKey": r.pix_key, "userName": r.user.name, "userEmail": r.user.email}
            for r in refunds
        ]
    }


@router.patch("/refunds/{refund_id}")
async def update_refund(
    refund_id: int,
    data: RefundUpdate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    refund, previous = service.update_refund(refund_id, data)
    log_admin_action(
        db, "REFUND_UPDATED", admin["email"], target_type="RefundRequest", target_id=refund.id,
        metadata={"bookingId": refund.booking_id, "from": previous, "to": refund.status, "amount": refund.amount},
        request=request,
    )
    return serialize_refund(refund)


# ============================================================================
# SETTINGS & AUDIT
# ============================================================================


@router.get("/settings")
async def list_settings(service: AdminService = Depends(get_admin_service)):
    return {"settings": [serialize_setting(s) for s in service.list_settings()]}


@router.put("/settings/{key}")
async def update_setting(
    key: str,
    data: SettingUpdate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Session = Depends(get_db),
    service: AdminService = Depends(get_admin_service),
):
    setting, previous = service.upsert_setting(key, data.value, data.description)
    log_admin_action(
        db, "SETTING_UPDATED", admin["email"], target_type="Setting", target_id=key,
        metadata={"from": previous, "to": setting.value}, request=request,
    )
    return serialize_setting(setting)


@router.get("/audit")
async def list_audit_logs(
    action: Optional[str] = None,
    targetType: Optional[str] = None,
    targetId: Optional[str] = None,
    dateFrom: Optional[str] = None,
    dateTo: Optional[str] = None,
    page: int = 1,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    limit, offset = _page(page, limit)
    logs, total = AuditRepository.list_logs(
        db,
        action=action,
        target_type=targetType,
        target_id=targetId,
        start_date=parse_date_filter(dateFrom),
        end_date=parse_date_filter(dateTo, end_of_day=True),
        limit=limit,
        offset=offset,
    )
    return {"logs": [serialize_audit_log(log) for log in logs], "total": total, "page": max(page, 1), "limit": limit}
