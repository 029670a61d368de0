"""
Admin service - back-office operations

Every mutation here is initiated by an admin session; routers write the
audit entries with the admin's email once the service has committed.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...config import ADMIN_EMAIL, ADMIN_PASSWORD
from ...errors import BusinessError
from ...models import Booking, Credit, RefundRequest, Setting, User
from ...security_utils import verify_password
from ...shared.money import format_brl
from ...webhook_security import constant_time_compare
from ..accounts.repository import UserRepository
from ..accounts.schemas import user_to_response
from ..accounts.service import resolve_or_create_user
from ..bookings.repository import BookingRepository
from ..bookings.schemas import serialize_booking
from ..bookings.service import booking_hours, release_booking
from ..catalog.pricing import PricingError, get_booking_total_cents
from ..catalog.repository import CatalogRepository
from ..credits.service import get_user_credits_summary, serialize_credit
from ..scheduling.availability import get_conflicts
from ..scheduling.business_hours import (
    can_cancel_with_refund,
    is_booking_within_business_hours,
    is_valid_shift_block,
    to_business_tz,
    to_utc_naive,
    utcnow,
)

logger = logging.getLogger(__name__)

REFUND_CREDIT_VALIDITY_MONTHS = 6

REFUND_TRANSITIONS = {
    "REQUESTED": ("APPROVED", "PAID", "REJECTED"),
    "APPROVED": ("PAID", "REJECTED"),
    "PAID": (),
    "REJECTED": (),
}


def check_admin_credentials(email: str, password: str) -> bool:
    """ADMIN_PASSWORD may be plain text or a bcrypt hash"""
    if not ADMIN_PASSWORD:
        return False
    if not constant_time_compare(email.lower(), ADMIN_EMAIL.lower()):
        return False
    if ADMIN_PASSWORD.startswith("$2"):
        return verify_password(password, ADMIN_PASSWORD)
    return constant_time_compare(password, ADMIN_PASSWORD)


class AdminService:
    """Business logic for back-office endpoints"""

    def __init__(self, db: Session):
        self.db = db

    # ========================================
    # BOOKINGS
    # ========================================

    def get_booking(self, booking_id: int) -> Booking:
        booking = BookingRepository.get_by_id(self.db, booking_id)
        if not booking:
            raise BusinessError("NOT_FOUND", "Reserva não encontrada.")
        return booking

    def _resolve_user(self, data) -> User:
        if data.userId:
            user = UserRepository.get_by_id(self.db, data.userId)
            if not user:
                raise BusinessError("NOT_FOUND", "Usuário não encontrado.")
            return user
        user = UserRepository.get_by_phone(self.db, data.userPhone)
        if user:
            return user
        if not data.userName:
            raise BusinessError(
                "VALIDATION_ERROR", "Usuário não encontrado. Informe userName para criar o cadastro."
            )
        return resolve_or_create_user(self.db, data.userName, email=data.userEmail, phone=data.userPhone)

    def create_booking(self, data) -> Booking:
        """Manual (paid outside the site) or courtesy booking; always CONFIRMED"""
        start = to_utc_naive(data.startAt)
        end = to_utc_naive(data.endAt)
        room = CatalogRepository.get_room(self.db, data.roomId)
        if not room or not room.is_active:
            raise BusinessError("NOT_FOUND", "Sala não encontrada ou inativa.")
        if not is_booking_within_business_hours(start, end):
            raise BusinessError("BOOKING_OUTSIDE_HOURS")

        try:
            conflicts = get_conflicts(self.db, room.id, start, end)
            if conflicts:
                raise BusinessError("BOOKING_CONFLICT", details={"conflictingBookings": [b.id for b in conflicts]})

            user = self._resolve_user(data)

            try:
                gross_amount = get_booking_total_cents(room, start, booking_hours(start, end))
            except PricingError as e:
                raise BusinessError("PRICING_ERROR", str(e)) from e

            if data.courtesy:
                net_amount = 0
                origin, financial_status = "ADMIN_COURTESY", "COURTESY"
            else:
                net_amount = data.amountOverride if data.amountOverride is not None else gross_amount
                origin = "ADMIN_MANUAL"
                financial_status = "PAID" if data.markPaid or net_amount == 0 else "PENDING_PAYMENT"

            booking = Booking(
                user_id=user.id,
                room_id=room.id,
                start_time=start,
                end_time=end,
                status="CONFIRMED",
                payment_status="APPROVED" if financial_status != "PENDING_PAYMENT" else "PENDING",
                financial_status=financial_status,
                booking_type="SHIFT" if is_valid_shift_block(start, end) else "HOURLY",
                origin=origin,
                courtesy_reason=data.courtesyReason.strip() if data.courtesy else None,
                gross_amount=gross_amount,
                discount_amount=max(0, gross_amount - net_amount),
                net_amount=net_amount,
                amount_paid=net_amount if financial_status == "PAID" else 0,
                override_reason=data.overrideReason if data.amountOverride is not None else None,
                payment_method="MANUAL" if origin == "ADMIN_MANUAL" else None,
                notes=data.notes or ("Reserva cortesia" if data.courtesy else "Reserva manual"),
            )
            self.db.add(booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(f"🗓️ Admin booking {booking.id} ({origin}) for user {user.id}, net {format_brl(net_amount)}")
        return booking

    def update_booking(self, booking_id: int, data) -> tuple[Booking, dict]:
        """
        Reschedule, change status or annotate a booking.

        Status changes here never release credits, coupons or payments, so
        CANCELLED is not accepted; cancellations go through
        `POST /admin/bookings/{id}/cancel`.
        """
        booking = self.get_booking(booking_id)
        if booking.status == "CANCELLED":
            raise BusinessError("INVALID_STATUS", "Reserva cancelada não pode ser alterada.")

        changes = {}
        if data.startAt is not None:
            start = to_utc_naive(data.startAt)
            end = to_utc_naive(data.endAt)
            if not is_booking_within_business_hours(start, end):
                raise BusinessError("BOOKING_OUTSIDE_HOURS")
            conflicts = get_conflicts(self.db, booking.room_id, start, end, exclude_booking_id=booking.id)
            if conflicts:
                raise BusinessError("BOOKING_CONFLICT", details={"conflictingBookings": [b.id for b in conflicts]})
            changes["startTime"] = [booking.start_time.isoformat(), start.isoformat()]
            changes["endTime"] = [booking.end_time.isoformat(), end.isoformat()]
            booking.start_time = start
            booking.end_time = end

        if data.status is not None and data.status != booking.status:
            changes["status"] = [booking.status, data.status]
            booking.status = data.status
            if data.status == "CONFIRMED":
                booking.expires_at = None

        if data.notes is not None:
            changes["notes"] = True
            booking.notes = data.notes

        self.db.commit()
        self.db.refresh(booking)
        return booking, changes

    def cancel_booking(self, booking_id: int, data) -> dict:
        """
        Cancel from the back office. Consumed credits and coupon come back;
        money already paid is returned as a REFUND credit, an approved PIX
        refund request, or not at all.
        """
        booking = self.get_booking(booking_id)
        if booking.status == "CANCELLED":
            raise BusinessError("INVALID_STATUS", "Reserva já está cancelada.")
        if BookingRepository.get_refund_for_booking(self.db, booking.id):
            raise BusinessError("CONFLICT", "Já existe um reembolso para esta reserva.")

        now = utcnow()
        money_paid = booking.amount_paid or 0

        if booking.financial_status == "COURTESY":
            refund_type = "NONE"
        elif data.refundType:
            refund_type = data.refundType
        else:
            refund_type = "CREDITS" if can_cancel_with_refund(booking.start_time, now) and money_paid > 0 else "NONE"

        credit = None
        refund = None
        try:
            released = release_booking(self.db, booking, "ADMIN", data.reason or "Cancelamento administrativo", now)

            if refund_type == "CREDITS" and money_paid > 0:
                local_now = to_business_tz(now)
                credit = Credit(
                    user_id=booking.user_id,
                    room_id=booking.room_id,
                    amount=money_paid,
                    remaining_amount=money_paid,
                    type="REFUND",
                    status="CONFIRMED",
                    source_booking_id=booking.id,
                    reference_month=local_now.month,
                    reference_year=local_now.year,
                    notes=f"Devolução da reserva #{booking.id}",
                    expires_at=now + relativedelta(months=REFUND_CREDIT_VALIDITY_MONTHS),
                )
                self.db.add(credit)
            elif refund_type == "MONEY" and money_paid > 0:
                refund = RefundRequest(
                    booking_id=booking.id,
                    user_id=booking.user_id,
                    amount=money_paid,
                    refund_type="MONEY",
                    pix_key_type=data.pixKeyType,
                    pix_key=data.pixKey,
                    status="APPROVED",
                    reason=data.reason or "Cancelamento administrativo",
                )
                self.db.add(refund)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        credit_amount = credit.amount if credit else 0
        refund_amount = refund.amount if refund else 0
        if credit_amount:
            message = f"Reserva cancelada. Crédito de {format_brl(credit_amount)} devolvido."
        elif refund_amount:
            message = f"Reserva cancelada. Estorno de {format_brl(refund_amount)} em processamento (PIX)."
        else:
            message = "Reserva cancelada (sem devolução)."

        return {
            "success": True,
            "bookingId": booking.id,
            "refundType": refund_type,
            "creditId": credit.id if credit else None,
            "creditAmount": credit_amount,
            "refundRequestId": refund.id if refund else None,
            "refundAmount": refund_amount,
            "creditsRestored": released["credits_restored"],
            "couponRestored": released["coupon_restored"],
            "message": message,
        }

    # ========================================
    # USERS
    # ========================================

    def get_user_detail(self, user_id: int) -> dict:
        user = UserRepository.get_by_id(self.db, user_id)
        if not user:
            raise BusinessError("NOT_FOUND", "Usuário não encontrado.")

        summary = get_user_credits_summary(self.db, user.id)
        return {
            "user": user_to_response(user).model_dump(),
            "cpf": user.cpf,
            "bookings": [serialize_booking(b) for b in BookingRepository.list_for_user(self.db, user.id)],
            "credits": [serialize_credit(c) for c in user.credits],
            "creditBalance": summary["total"],
            "creditBalanceFormatted": summary["totalFormatted"],
        }

    # ========================================
    # CREDITS
    # ========================================

    def create_manual_credit(self, data) -> Credit:
        user = UserRepository.get_by_id(self.db, data.userId)
        if not user:
            raise BusinessError("NOT_FOUND", "Usuário não encontrado.")
        if data.roomId is not None and not CatalogRepository.get_room(self.db, data.roomId):
            raise BusinessError("NOT_FOUND", "Sala não encontrada.")

        now = utcnow()
        local_now = to_business_tz(now)
        credit = Credit(
            user_id=user.id,
            room_id=data.roomId,
            amount=data.amount,
            remaining_amount=data.amount,
            type=data.type,
            usage_type=data.usageType,
            status="CONFIRMED",
            reference_month=local_now.month,
            reference_year=local_now.year,
            notes=data.notes,
            expires_at=now + timedelta(days=data.validityDays) if data.validityDays else None,
        )
        self.db.add(credit)
        self.db.commit()
        self.db.refresh(credit)
        logger.info(f"🎁 Manual credit {credit.id} of {format_brl(credit.amount)} for user {user.id}")
        return credit

    # ========================================
    # REFUND REQUESTS
    # ========================================

    def list_refunds(self, status: Optional[str] = None) -> list[RefundRequest]:
        query = self.db.query(RefundRequest)
        if status:
            query = query.filter(RefundRequest.status == status)
        return query.order_by(RefundRequest.created_at.desc(), RefundRequest.id.desc()).all()

    def update_refund(self, refund_id: int, data) -> tuple[RefundRequest, str]:
        refund = self.db.query(RefundRequest).filter(RefundRequest.id == refund_id).first()
        if not refund:
            raise BusinessError("NOT_FOUND", "Pedido de reembolso não encontrado.")

        previous = refund.status
        if data.status != previous and data.status not in REFUND_TRANSITIONS.get(previous, ()):
            raise BusinessError("INVALID_STATUS", f"Não é possível mudar de {previous} para {data.status}.")

        refund.status = data.status
        if data.adminNotes is not None:
            refund.admin_notes = data.adminNotes
        if data.status in ("PAID", "REJECTED"):
            refund.processed_at = utcnow()
        if data.status == "PAID" and refund.booking:
            refund.booking.payment_status = "REFUNDED"
            refund.booking.financial_status = "REFUNDED"

        self.db.commit()
        self.db.refresh(refund)
        return refund, previous

    # ========================================
    # SETTINGS
    # ========================================

    def list_settings(self) -> list[Setting]:
        return self.db.query(Setting).order_by(Setting.key.asc()).all()

    def upsert_setting(self, key: str, value: Optional[str], description: Optional[str] = None) -> tuple[Setting, Optional[str]]:
        setting = self.db.query(Setting).filter(Setting.key == key).first()
        previous = setting.value if setting else None
        if setting is None:
            setting = Setting(key=key)
            self.db.add(setting)
        setting.value = value
        if description is not None:
            setting.description = description
        self.db.commit()
        self.db.refresh(setting)
        return setting, previous


def parse_date_filter(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """YYYY-MM-DD (business timezone) -> naive UTC bound"""
    if not value:
        return None
    try:
        day = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as e:
        raise BusinessError("VALIDATION_ERROR", "Data deve estar no formato AAAA-MM-DD.") from e
    if end_of_day:
        day += timedelta(days=1)
    return to_utc_naive(day)
