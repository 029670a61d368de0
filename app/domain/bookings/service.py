"""
Booking service - checkout, credit bookings and cancellations

Amounts are cents: gross - discount = net, and the net amount is covered by
credits_used plus the gateway charge. Times are naive UTC; opening hours and
the booking window are checked in the business timezone.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import PENDING_BOOKING_EXPIRATION_HOURS
from ...email_service import (
    send_booking_cancelled_email,
    send_booking_confirmation_email,
    send_pix_pending_email,
    send_refund_requested_notification,
)
from ...errors import BusinessError
from ...models import Booking, Product, RefundRequest, Room, User
from ...shared.money import format_brl
from ..accounts.service import resolve_or_create_user
from ..catalog.pricing import PricingError, get_booking_total_cents
from ..catalog.repository import CatalogRepository
from ..coupons.service import CouponService
from ..credits.service import (
    consume_credits_for_booking,
    get_credit_balance_for_room,
    restore_credits_from_cancelled_booking,
)
from ..payments.service import PaymentService
from ..scheduling.availability import get_conflicts
from ..scheduling.business_hours import (
    USER_CANCEL_MIN_HOURS,
    can_user_self_cancel,
    has_min_advance,
    hours_until,
    is_booking_in_past,
    is_booking_within_business_hours,
    is_valid_shift_block,
    to_utc_naive,
    utcnow,
    validate_booking_window,
)
from .repository import BookingRepository

logger = logging.getLogger(__name__)

MIN_CREDIT_BOOKING_HOURS = 1
MAX_CREDIT_BOOKING_HOURS = 8


def booking_hours(start: datetime, end: datetime) -> int:
    """Billable hours, a started hour counts as a full one"""
    return math.ceil((end - start).total_seconds() / 3600)


def release_booking(db: Session, booking: Booking, source: str, reason: str,
                    now: Optional[datetime] = None) -> dict:
    """
    Cancel a booking and give back what it holds: coupon usage, consumed
    credits and open payment rows. Does not commit.
    """
    now = now or utcnow()
    booking.status = "CANCELLED"
    booking.cancelled_at = now
    booking.cancel_reason = reason
    booking.cancel_source = source

    credits_restored = 0
    if booking.credits_used and booking.credit_ids:
        credits_restored = restore_credits_from_cancelled_booking(db, booking.credit_ids, booking.credits_used)

    coupon_restored = CouponService(db).restore_coupon_usage(booking_id=booking.id)
    gateway_ids = PaymentService(db).mark_cancelled(booking.id)
    db.flush()

    logger.info(
        f"🚫 Booking {booking.id} cancelled ({source}: {reason}) "
        f"credits_restored={credits_restored} coupon_restored={coupon_restored}"
    )
    return {"credits_restored": credits_restored, "coupon_restored": coupon_restored, "gateway_ids": gateway_ids}


class BookingService:
    """Business logic for customer bookings"""

    def __init__(self, db: Session, payments: Optional[PaymentService] = None):
        self.db = db
        self.coupons = CouponService(db)
        self.payments = payments or PaymentService(db)

    # ========================================
    # VALIDATION
    # ========================================

    def _validate_slot(self, start: datetime, end: datetime, now: datetime) -> None:
        if end <= start:
            raise BusinessError("VALIDATION_ERROR", "Horário de término deve ser após o início.")
        if is_booking_in_past(start, now):
            raise BusinessError("INSUFFICIENT_TIME", "Não é possível reservar um horário no passado.")
        if not is_booking_within_business_hours(start, end):
            raise BusinessError(
                "BOOKING_OUTSIDE_HOURS",
                "Horário fora do expediente. Segunda a sexta das 8h às 20h, sábado das 8h às 12h.",
            )
        if not validate_booking_window(start, now):
            raise BusinessError("BOOKING_WINDOW_EXCEEDED", "Reservas podem ser feitas com até 30 dias de antecedência.")

    def _get_active_room(self, room_ref) -> Room:
        room = CatalogRepository.get_room(self.db, room_ref)
        if not room or not room.is_active:
            raise BusinessError("NOT_FOUND", "Sala não encontrada ou inativa.")
        return room

    def _check_conflicts(self, room: Room, start: datetime, end: datetime,
                         exclude_booking_id: Optional[int] = None) -> None:
        conflicts = get_conflicts(self.db, room.id, start, end, exclude_booking_id)
        if conflicts:
            raise BusinessError("BOOKING_CONFLICT", details={"conflictingBookings": [b.id for b in conflicts]})

    def _price(self, room: Room, start: datetime, hours: int, product: Optional[Product] = None) -> int:
        if product:
            return product.price
        try:
            return get_booking_total_cents(room, start, hours)
        except PricingError as e:
            raise BusinessError("PRICING_ERROR", f"Erro ao calcular o valor da reserva: {e}") from e

    def _get_product(self, room: Room, product_id: Optional[int]) -> Optional[Product]:
        if not product_id:
            return None
        product = CatalogRepository.get_product(self.db, product_id)
        if not product or not product.is_active:
            raise BusinessError("NOT_FOUND", "Produto não encontrado ou inativo.")
        if product.room_id and product.room_id != room.id:
            raise BusinessError("VALIDATION_ERROR", "Produto não pertence a esta sala.")
        return product

    def _quote_coupon(self, amount: int, code: Optional[str], user_id: Optional[int],
                      session_email: Optional[str]) -> dict:
        quote = self.coupons.quote(amount, code)
        if quote["coupon"]:
            self.coupons.check_dev_coupon_access(quote["coupon"], session_email)
            if user_id is not None:
                self.coupons.check_coupon_usage(user_id, quote["coupon"]["code"], "BOOKING")
        return quote

    # ========================================
    # CHECKOUT
    # ========================================

    async def create_booking(self, data, session_user: Optional[User], session_email: Optional[str]) -> dict:
        """
        Public checkout.

        Credits are spent first; whatever is left is charged at Asaas when
        payNow is set. A booking whose charge cannot be created is cancelled
        and everything it held is given back.
        """
        now = utcnow()
        start = to_utc_naive(data.startAt)
        end = to_utc_naive(data.endAt)
        self._validate_slot(start, end, now)
        room = self._get_active_room(data.roomId)
        product = self._get_product(room, data.productId)
        hours = booking_hours(start, end)

        try:
            self._check_conflicts(room, start, end)

            if session_user:
                user = session_user
            else:
                user = resolve_or_create_user(
                    self.db, data.userName, email=data.userEmail, phone=data.userPhone, cpf=data.userCpf
                )

            gross_amount = self._price(room, start, hours, product)
            quote = self._quote_coupon(gross_amount, data.couponCode, user.id, session_email)
            coupon_code = quote["coupon"]["code"] if quote["coupon"] else None
            net_amount = quote["net_amount"]

            credit_ids: list[int] = []
            credits_used = 0
            if data.useCredits:
                balance = get_credit_balance_for_room(self.db, user.id, room, start, end, now)
                to_use = min(balance, net_amount)
                if to_use > 0:
                    credit_ids, credits_used = consume_credits_for_booking(
                        self.db, user.id, room, to_use, start, end, now
                    )

            amount_to_pay = net_amount - credits_used
            if amount_to_pay > 0:
                if not has_min_advance(start, now):
                    raise BusinessError(
                        "INSUFFICIENT_TIME",
                        "TEMPO_INSUFICIENTE: reservas com pagamento precisam de pelo menos 30 minutos de antecedência.",
                    )
                self.payments.ensure_min_amount(amount_to_pay, data.paymentMethod)

            fully_paid = amount_to_pay == 0
            booking = Booking(
                user_id=user.id,
                room_id=room.id,
                product_id=product.id if product else None,
                start_time=start,
                end_time=end,
                status="CONFIRMED" if fully_paid else "PENDING",
                payment_status="APPROVED" if fully_paid else "PENDING",
                financial_status="PAID" if fully_paid else "PENDING_PAYMENT",
                booking_type="SHIFT" if is_valid_shift_block(start, end) and product else "HOURLY",
                origin="COMMERCIAL",
                gross_amount=quote["gross_amount"],
                discount_amount=quote["discount_amount"],
                net_amount=net_amount,
                amount_paid=0,
                credits_used=credits_used,
                credit_ids=credit_ids or None,
                coupon_code=coupon_code,
                coupon_snapshot=quote["snapshot"],
                payment_method=data.paymentMethod if not fully_paid else None,
                expires_at=None if fully_paid else now + timedelta(hours=PENDING_BOOKING_EXPIRATION_HOURS),
                notes=data.notes,
            )
            self.db.add(booking)
            self.db.flush()

            if coupon_code:
                self.coupons.record_or_raise(user.id, coupon_code, "BOOKING", booking_id=booking.id)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(
            f"📅 Booking {booking.id} created for user {user.id}: room {room.slug} "
            f"net={format_brl(net_amount)} credits={format_brl(credits_used)} to_pay={format_brl(amount_to_pay)}"
        )

        result = {
            "success": True,
            "bookingId": booking.id,
            "status": booking.status,
            "grossAmount": booking.gross_amount,
            "discountAmount": booking.discount_amount,
            "netAmount": net_amount,
            "creditsUsed": credits_used,
            "amountToPay": amount_to_pay,
            "couponCode": coupon_code,
        }

        if fully_paid:
            result["emailSent"] = await send_booking_confirmation_email(booking)
            return result

        if not data.payNow:
            return result

        description = f"Reserva {room.name} - {hours}h"
        if credits_used:
            description += f" ({format_brl(credits_used)} em créditos)"

        try:
            charge = await self.payments.create_charge(
                kind="booking",
                entity_id=booking.id,
                user=user,
                amount_cents=amount_to_pay,
                payment_method=data.paymentMethod,
                description=description,
                installments=data.installmentCount if data.paymentMethod == "CARD" else None,
            )
            booking.payment_id = charge["payment_id"]
            self.db.commit()
        except BusinessError as e:
            self.db.rollback()
            logger.error(f"❌ Charge failed for booking {booking.id}: {e.code} - releasing booking")
            release_booking(self.db, booking, "SYSTEM", "PAYMENT_CREATION_FAILED")
            self.db.commit()
            raise BusinessError(
                "PAYMENT_CREATION_FAILED",
                e.message,
                details={"bookingId": booking.id, "reason": e.code, **(e.details or {})},
            ) from e
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Unexpected charge error for booking {booking.id}: {e} - releasing booking")
            release_booking(self.db, booking, "SYSTEM", "PAYMENT_CREATION_FAILED")
            self.db.commit()
            raise BusinessError(
                "PAYMENT_CREATION_FAILED",
                "Não foi possível criar a cobrança. Tente novamente.",
                details={"bookingId": booking.id, "reason": "UNEXPECTED_ERROR"},
            ) from e

        if data.paymentMethod == "PIX":
            await send_pix_pending_email(booking, amount_to_pay, charge.get("invoice_url"))

        result.update(
            {
                "paymentId": charge["payment_id"],
                "paymentUrl": charge.get("invoice_url"),
                "paymentMethod": data.paymentMethod,
                "pixQrCode": charge.get("pix_qr_code"),
            }
        )
        if data.paymentMethod == "CARD" and data.installmentCount:
            result["installmentCount"] = data.installmentCount
            result["installmentValue"] = math.ceil(amount_to_pay / data.installmentCount)
        return result

    async def create_with_credit(self, data, user: User, session_email: Optional[str]) -> dict:
        """Booking paid entirely from the user's credit balance"""
        now = utcnow()
        start = to_utc_naive(data.startAt)
        end = to_utc_naive(data.endAt)

        hours = booking_hours(start, end)
        if not MIN_CREDIT_BOOKING_HOURS <= hours <= MAX_CREDIT_BOOKING_HOURS:
            raise BusinessError(
                "VALIDATION_ERROR",
                f"Reservas com crédito devem ter entre {MIN_CREDIT_BOOKING_HOURS} e {MAX_CREDIT_BOOKING_HOURS} horas.",
            )
        self._validate_slot(start, end, now)
        room = self._get_active_room(data.roomId)

        try:
            self._check_conflicts(room, start, end)

            gross_amount = self._price(room, start, hours)
            quote = self._quote_coupon(gross_amount, data.couponCode, user.id, session_email)
            coupon_code = quote["coupon"]["code"] if quote["coupon"] else None
            net_amount = quote["net_amount"]

            credit_ids, credits_used = consume_credits_for_booking(
                self.db, user.id, room, net_amount, start, end, now
            )

            booking = Booking(
                user_id=user.id,
                room_id=room.id,
                start_time=start,
                end_time=end,
                status="CONFIRMED",
                payment_status="APPROVED",
                financial_status="PAID",
                booking_type="SHIFT" if is_valid_shift_block(start, end) else "HOURLY",
                origin="COMMERCIAL",
                gross_amount=quote["gross_amount"],
                discount_amount=quote["discount_amount"],
                net_amount=net_amount,
                amount_paid=0,
                credits_used=credits_used,
                credit_ids=credit_ids,
                coupon_code=coupon_code,
                coupon_snapshot=quote["snapshot"],
                notes=data.notes,
            )
            self.db.add(booking)
            self.db.flush()

            if coupon_code:
                self.coupons.record_or_raise(user.id, coupon_code, "BOOKING", booking_id=booking.id)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(f"📅 Credit booking {booking.id} for user {user.id}: {format_brl(credits_used)} in credits")

        return {
            "success": True,
            "bookingId": booking.id,
            "status": booking.status,
            "grossAmount": booking.gross_amount,
            "discountAmount": booking.discount_amount,
            "creditsUsed": credits_used,
            "creditIds": credit_ids,
            "amountToPay": 0,
            "couponCode": coupon_code,
            "emailSent": await send_booking_confirmation_email(booking),
        }

    # ========================================
    # STATUS
    # ========================================

    def get_public_status(self, booking_id: int) -> dict:
        """What a payment page needs to poll; no personal data"""
        booking = BookingRepository.get_by_id(self.db, booking_id)
        if not booking:
            raise BusinessError("NOT_FOUND", "Reserva não encontrada.")

        payment_url = None
        if booking.status == "PENDING":
            payment = next((p for p in booking.payments if p.status in ("PENDING", "IN_PROCESS")), None)
            payment_url = payment.external_url if payment else None

        return {
            "id": booking.id,
            "status": booking.status,
            "paymentStatus": booking.payment_status,
            "financialStatus": booking.financial_status,
            "roomName": booking.room.name,
            "startTime": booking.start_time.isoformat() + "Z",
            "endTime": booking.end_time.isoformat() + "Z",
            "netAmount": booking.net_amount,
            "amountToPay": max(0, booking.net_amount - booking.credits_used - booking.amount_paid),
            "paymentUrl": payment_url,
            "expiresAt": booking.expires_at.isoformat() + "Z" if booking.expires_at else None,
        }

    # ========================================
    # CANCELLATION
    # ========================================

    async def _delete_gateway_charges(self, gateway_ids: list[str]) -> bool:
        deleted = True
        for payment_id in gateway_ids:
            if not await self.payments.asaas.delete_payment(payment_id):
                deleted = False
        return deleted

    async def cancel_pending(self, booking_id: int, user: Optional[User], is_admin: bool = False) -> dict:
        """Owner (or admin) gives up an unpaid booking and frees the slot"""
        booking = BookingRepository.get_by_id(self.db, booking_id)
        if not booking:
            raise BusinessError("NOT_FOUND", "Reserva não encontrada.")
        if not is_admin and (not user or booking.user_id != user.id):
            raise BusinessError("FORBIDDEN", "Você não tem permissão para cancelar esta reserva.")

        if booking.status == "CANCELLED":
            return {"success": True, "bookingId": booking.id, "alreadyCancelled": True,
                    "message": "Reserva já estava cancelada."}
        if booking.status != "PENDING":
            raise BusinessError(
                "INVALID_STATUS",
                f'Reserva com status "{booking.status}" não pode ser cancelada. Apenas reservas pendentes.',
            )

        try:
            released = release_booking(
                self.db, booking, "ADMIN" if is_admin else "USER", "Cancelado pelo usuário (reserva pendente)"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        gateway_cancelled = await self._delete_gateway_charges(released["gateway_ids"])
        return {
            "success": True,
            "bookingId": booking.id,
            "message": "Reserva cancelada com sucesso. O horário foi liberado.",
            "creditsRestored": released["credits_restored"],
            "couponRestored": released["coupon_restored"],
            "gatewayCancelled": gateway_cancelled,
        }

    async def cancel_by_user(self, booking_id: int, user: User, data) -> dict:
        """
        Self-service cancellation, at least 48 hours ahead.

        Credits go back to the balance. Money paid at the gateway is returned
        through a refund request the back office settles by PIX.
        """
        booking = BookingRepository.get_by_id(self.db, booking_id)
        if not booking:
            raise BusinessError("NOT_FOUND", "Reserva não encontrada.")
        if booking.user_id != user.id:
            raise BusinessError("FORBIDDEN", "Acesso não autorizado.")

        existing_refund = BookingRepository.get_refund_for_booking(self.db, booking.id)
        if booking.status == "CANCELLED":
            return {
                "success": True,
                "alreadyCancelled": True,
                "message": "Esta reserva já foi cancelada.",
                "refundRequestId": existing_refund.id if existing_refund else None,
            }
        if booking.status not in ("PENDING", "CONFIRMED"):
            raise BusinessError("INVALID_STATUS", f'Reserva com status "{booking.status}" não pode ser cancelada.')

        now = utcnow()
        if not can_user_self_cancel(booking.start_time, now):
            remaining = max(0, math.floor(hours_until(booking.start_time, now)))
            raise BusinessError(
                "CANCELLATION_TOO_LATE",
                f"Cancelamento permitido apenas com {USER_CANCEL_MIN_HOURS} horas de antecedência. "
                f"Faltam {remaining} horas.",
            )

        wants_money_back = data.requestRefund and booking.amount_paid > 0
        if data.requestRefund:
            if booking.amount_paid <= 0 and booking.credits_used <= 0:
                raise BusinessError(
                    "VALIDATION_ERROR", "Estorno não disponível. Esta reserva não possui pagamento registrado."
                )
            if wants_money_back and not (data.pixKeyType and data.pixKey):
                raise BusinessError("INVALID_PIX_KEY", "Tipo e chave PIX são obrigatórios para solicitar estorno.")

        refund = None
        try:
            released = release_booking(self.db, booking, "USER", data.reason or "Cancelado pelo usuário", now)
            if wants_money_back and not existing_refund:
                refund = RefundRequest(
                    booking_id=booking.id,
                    user_id=user.id,
                    amount=booking.amount_paid,
                    refund_type="MONEY",
                    pix_key_type=data.pixKeyType,
                    pix_key=data.pixKey,
                    status="REQUESTED",
                    reason=(data.reason or "").strip() or None,
                )
                self.db.add(refund)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        await self._delete_gateway_charges(released["gateway_ids"])

        if refund:
            self.db.refresh(refund)
            await send_refund_requested_notification(refund)
        await send_booking_cancelled_email(
            booking,
            refund_cents=refund.amount if refund else 0,
            credits_restored_cents=released["credits_restored"],
        )

        refund_id = refund.id if refund else (existing_refund.id if existing_refund else None)
        logger.info(f"✅ Booking {booking.id} cancelled by user {user.id} (refund request {refund_id})")
        return {
            "success": True,
            "message": (
                "Reserva cancelada e pedido de estorno registrado. Você receberá um email com a atualização."
                if refund_id
                else "Reserva cancelada com sucesso"
            ),
            "refundRequestId": refund_id,
            "refundAmount": refund.amount if refund else 0,
            "creditsRestored": released["credits_restored"],
            "hoursBeforeStart": math.floor(hours_until(booking.start_time, now)),
        }
