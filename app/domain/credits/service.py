"""
Credit ledger

Credits are prepaid balances in cents. A credit is spendable while it is
CONFIRMED, has remaining balance and has not expired; it can be used in its
own room or any room of the same or a cheaper tier (higher tier number),
and only in the time slots its usage type allows. Decrements and restores
are guarded single-row updates so concurrent bookings never overdraw or
over-restore a credit.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...errors import BusinessError
from ...models import Credit, Room, User
from ...shared.money import format_brl
from ..accounts.service import resolve_or_create_user
from ..catalog.constants import DISCONTINUED_PRODUCT_TYPES
from ..catalog.pricing import PricingError, get_booking_total_cents
from ..catalog.repository import CatalogRepository
from ..coupons.service import CouponService
from ..payments.service import PaymentService
from ..scheduling.business_hours import (
    SATURDAY,
    get_day_of_week,
    get_shift_block,
    to_business_tz,
    utcnow,
)
from .repository import CreditRepository

logger = logging.getLogger(__name__)

USAGE_TYPES = ("HOURLY", "SHIFT", "SATURDAY_HOURLY", "SATURDAY_SHIFT")

SUBLET_CREDIT_PERCENTAGE = 0.5
MAX_SUBLET_CREDITS_PER_MONTH = 1
SUBLET_CREDIT_VALIDITY_MONTHS = 6

DEFAULT_PURCHASE_VALIDITY_DAYS = 365


def get_usage_type_for_product(product_type: Optional[str]) -> str:
    """Usage rule stamped on a purchased credit"""
    if product_type == "SHIFT_FIXED":
        return "SHIFT"
    if product_type == "SATURDAY_SHIFT":
        return "SATURDAY_SHIFT"
    if product_type in ("SATURDAY_HOUR", "SATURDAY_5H"):
        return "SATURDAY_HOURLY"
    # HOURLY_RATE, PACKAGE_10H/20H/40H and loose hours
    return "HOURLY"


def compute_credit_amount_cents(
    amount_cents: int,
    is_hours_purchase: bool,
    room: Room,
    hours: int = 0,
    now: Optional[datetime] = None,
) -> int:
    """Loose hours are priced from the hourly table; products keep their own price"""
    if is_hours_purchase:
        return get_booking_total_cents(room, now or utcnow(), hours)
    return amount_cents


def is_credit_usable_for_room(credit_room: Optional[Room], target_room: Room) -> bool:
    """Room-less credits work anywhere; others in the same or a cheaper room"""
    if credit_room is None:
        return True
    return credit_room.tier <= target_room.tier


def validate_credit_usage(credit: Credit, start: datetime, end: datetime) -> dict:
    """Check the credit's usage type against the booking slot: {"valid": bool, "reason": str}"""
    day = get_day_of_week(start)
    is_weekday = day < SATURDAY
    usage_type = credit.usage_type

    if usage_type == "HOURLY":
        if not is_weekday:
            return {"valid": False, "reason": "Crédito de hora avulsa vale apenas de segunda a sexta."}
        return {"valid": True, "reason": ""}

    if usage_type == "SHIFT":
        if not is_weekday or get_shift_block(start, end) is None:
            return {"valid": False, "reason": "Crédito de turno exige um bloco de turno completo em dia útil."}
        return {"valid": True, "reason": ""}

    if usage_type == "SATURDAY_HOURLY":
        if day != SATURDAY:
            return {"valid": False, "reason": "Crédito de sábado vale apenas aos sábados."}
        return {"valid": True, "reason": ""}

    if usage_type == "SATURDAY_SHIFT":
        if day != SATURDAY or get_shift_block(start, end) != "MORNING":
            return {"valid": False, "reason": "Crédito de turno de sábado vale apenas sábado das 8h às 12h."}
        return {"valid": True, "reason": ""}

    # Credits issued before usage types existed
    if credit.type == "SATURDAY":
        if day != SATURDAY:
            return {"valid": False, "reason": "Crédito de sábado vale apenas aos sábados."}
        return {"valid": True, "reason": ""}
    if not is_weekday:
        return {"valid": False, "reason": "Crédito vale apenas de segunda a sexta."}
    return {"valid": True, "reason": ""}


def get_usable_credits(
    db: Session,
    user_id: int,
    room: Room,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> list[Credit]:
    """Spendable credits for a room (and slot, when given), in consumption order"""
    credits = []
    for credit in CreditRepository.get_available(db, user_id, now or utcnow()):
        if not is_credit_usable_for_room(credit.room, room):
            continue
        if start is not None and end is not None and not validate_credit_usage(credit, start, end)["valid"]:
            continue
        credits.append(credit)
    return credits


def get_credit_balance_for_room(
    db: Session,
    user_id: int,
    room: Room,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> int:
    return sum(c.remaining_amount for c in get_usable_credits(db, user_id, room, start, end, now))


def consume_credits_for_booking(
    db: Session,
    user_id: int,
    room: Room,
    amount: int,
    start: datetime,
    end: datetime,
    now: Optional[datetime] = None,
) -> tuple[list[int], int]:
    """
    Spend `amount` cents from the user's credits, soonest expiry first.

    Returns (credit_ids, total_consumed). Raises INSUFFICIENT_CREDITS when the
    balance is short and CREDIT_CONSUMED_BY_ANOTHER when a concurrent booking
    spent a credit between the read and the guarded update. Does not commit.
    """
    if amount <= 0:
        return [], 0

    now = now or utcnow()
    credits = get_usable_credits(db, user_id, room, start, end, now)
    balance = sum(c.remaining_amount for c in credits)
    if balance < amount:
        raise BusinessError(
            "INSUFFICIENT_CREDITS",
            f"Saldo insuficiente. Disponível: {format_brl(balance)}, necessário: {format_brl(amount)}.",
            details={"availableCents": balance, "requiredCents": amount},
        )

    left = amount
    used_ids: list[int] = []
    for credit in credits:
        if left <= 0:
            break
        take = min(credit.remaining_amount, left)

        updated = (
            db.query(Credit)
            .filter(Credit.id == credit.id, Credit.remaining_amount >= take, Credit.status == "CONFIRMED")
            .update({Credit.remaining_amount: Credit.remaining_amount - take}, synchronize_session=False)
        )
        if updated != 1:
            logger.warning(f"⚠️ Credit {credit.id} changed during consumption")
            raise BusinessError("CREDIT_CONSUMED_BY_ANOTHER")

        db.refresh(credit)
        if credit.remaining_amount == 0:
            credit.status = "USED"
            credit.used_at = now

        used_ids.append(credit.id)
        left -= take

    db.flush()
    logger.info(f"💳 Consumed {format_brl(amount)} from credits {used_ids} (user {user_id})")
    return used_ids, amount


def restore_credits_from_cancelled_booking(db: Session, credit_ids: Optional[list], total_to_restore: int) -> int:
    """
    Give back up to `total_to_restore` cents to the credits a booking consumed.
    A credit never goes above its original amount. Returns the amount restored.
    """
    if not credit_ids or total_to_restore <= 0:
        return 0

    credits = db.query(Credit).filter(Credit.id.in_(credit_ids)).order_by(Credit.id.asc()).all()
    if not credits:
        logger.warning(f"⚠️ No credits found to restore among {credit_ids}")
        return 0

    left = total_to_restore
    restored = 0
    for credit in credits:
        if left <= 0:
            break
        to_restore = min(credit.amount - credit.remaining_amount, left)
        if to_restore <= 0:
            continue

        updated = (
            db.query(Credit)
            .filter(Credit.id == credit.id, Credit.remaining_amount + to_restore <= Credit.amount)
            .update(
                {
                    Credit.remaining_amount: Credit.remaining_amount + to_restore,
                    Credit.status: "CONFIRMED",
                    Credit.used_at: None,
                },
                synchronize_session=False,
            )
        )
        if updated == 1:
            restored += to_restore
            left -= to_restore
            db.refresh(credit)

    logger.info(f"♻️ Restored {format_brl(restored)} to credits {credit_ids}")
    return restored


def create_sublet_credit(
    db: Session,
    user_id: int,
    room: Room,
    source_booking_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Credit:
    """Half an hour's price as credit for subletting, at most once per month"""
    now = now or utcnow()
    local_now = to_business_tz(now)
    month, year = local_now.month, local_now.year

    if CreditRepository.count_by_type_in_month(db, user_id, "SUBLET", month, year) >= MAX_SUBLET_CREDITS_PER_MONTH:
        raise BusinessError("CREDIT_LIMIT_REACHED", "Limite de 1 crédito de sublocação por mês já atingido.")

    amount = int(room.hourly_rate * SUBLET_CREDIT_PERCENTAGE)
    credit = Credit(
        user_id=user_id,
        room_id=room.id,
        amount=amount,
        remaining_amount=amount,
        type="SUBLET",
        usage_type="HOURLY",
        status="CONFIRMED",
        source_booking_id=source_booking_id,
        reference_month=month,
        reference_year=year,
        expires_at=now + relativedelta(months=SUBLET_CREDIT_VALIDITY_MONTHS),
    )
    db.add(credit)
    db.flush()
    logger.info(f"🎁 Sublet credit {credit.id} of {format_brl(amount)} for user {user_id}")
    return credit


def confirm_purchased_credit(db: Session, credit: Credit) -> bool:
    """PENDING purchase -> CONFIRMED with its full balance; False when already done"""
    if credit.status != "PENDING":
        return False
    credit.status = "CONFIRMED"
    credit.remaining_amount = credit.amount
    db.flush()
    return True


def serialize_credit(credit: Credit) -> dict:
    return {
        "id": credit.id,
        "roomId": credit.room_id,
        "roomName": credit.room.name if credit.room else None,
        "amount": credit.amount,
        "remainingAmount": credit.remaining_amount,
        "remainingFormatted": format_brl(credit.remaining_amount),
        "type": credit.type,
        "usageType": credit.usage_type,
        "status": credit.status,
        "hours": credit.hours,
        "couponCode": credit.coupon_code,
        "expiresAt": credit.expires_at.isoformat() + "Z" if credit.expires_at else None,
        "createdAt": credit.created_at.isoformat() + "Z" if credit.created_at else None,
    }


def get_user_credits_summary(db: Session, user_id: int, now: Optional[datetime] = None) -> dict:
    """Total spendable balance with a per-room breakdown"""
    available = CreditRepository.get_available(db, user_id, now or utcnow())
    by_room: dict = {}
    for credit in available:
        key = credit.room_id or 0
        entry = by_room.setdefault(
            key,
            {
                "roomId": credit.room_id,
                "roomName": credit.room.name if credit.room else "Qualquer sala",
                "amount": 0,
            },
        )
        entry["amount"] += credit.remaining_amount

    total = sum(c.remaining_amount for c in available)
    return {
        "total": total,
        "totalFormatted": format_brl(total),
        "byRoom": list(by_room.values()),
        "credits": [serialize_credit(c) for c in available],
    }


class CreditService:
    """Credit package purchases"""

    def __init__(self, db: Session, payments: Optional[PaymentService] = None):
        self.db = db
        self.coupons = CouponService(db)
        self.payments = payments or PaymentService(db)

    def _resolve_offer(self, room: Room, data) -> dict:
        """What is being bought: price, hours, validity and product type"""
        if data.hours:
            try:
                amount = compute_credit_amount_cents(0, True, room, data.hours)
            except PricingError as e:
                raise BusinessError("PRICING_ERROR", f"Erro ao calcular o preço do crédito: {e}") from e
            plural = "s" if data.hours > 1 else ""
            return {
                "amount": amount,
                "hours": data.hours,
                "name": f"{data.hours} hora{plural} avulsa{plural}",
                "validity_days": DEFAULT_PURCHASE_VALIDITY_DAYS,
                "product": None,
            }

        if data.productType in DISCONTINUED_PRODUCT_TYPES:
            raise BusinessError(
                "PRODUCT_DISCONTINUED", "Este produto foi descontinuado e não está mais disponível para compra."
            )
        if data.productType:
            product = CatalogRepository.get_product_by_type(self.db, room.id, data.productType)
        else:
            product = CatalogRepository.get_product(self.db, data.productId)
            if product and product.type == "HOURLY_RATE":
                raise BusinessError("VALIDATION_ERROR", "Use o fluxo de reserva para hora avulsa.")

        if product and product.type in DISCONTINUED_PRODUCT_TYPES:
            raise BusinessError(
                "PRODUCT_DISCONTINUED", "Este produto foi descontinuado e não está mais disponível para compra."
            )
        if not product or not product.is_active:
            raise BusinessError("NOT_FOUND", "Produto não encontrado ou inativo.")

        return {
            "amount": compute_credit_amount_cents(product.price, False, room),
            "hours": product.hours_included or 0,
            "name": product.name,
            "validity_days": product.validity_days or DEFAULT_PURCHASE_VALIDITY_DAYS,
            "product": product,
        }

    async def purchase(self, data, session_user: Optional[User], session_email: Optional[str]) -> dict:
        """
        Create a PENDING credit and its charge; the webhook confirms it.

        Everything is rolled back when the charge cannot be created.
        """
        room = CatalogRepository.get_room(self.db, data.roomId)
        if not room or not room.is_active:
            raise BusinessError("NOT_FOUND", "Sala não encontrada ou inativa.")

        offer = self._resolve_offer(room, data)

        coupon_code = None
        quote = self.coupons.quote(offer["amount"], data.couponCode)
        if quote["coupon"]:
            coupon_code = quote["coupon"]["code"]
            self.coupons.check_dev_coupon_access(quote["coupon"], session_email)

        net_amount = quote["net_amount"]
        if data.paymentMethod == "PIX" and net_amount < 100:
            raise BusinessError(
                "PIX_MIN_AMOUNT",
                "Pagamento via PIX exige mínimo de R$ 1,00. Escolha cartão ou ajuste o valor.",
            )

        try:
            if session_user:
                user = session_user
            else:
                user = resolve_or_create_user(
                    self.db, data.userName, email=data.userEmail, phone=data.userPhone, cpf=data.userCpf
                )

            if coupon_code:
                self.coupons.check_coupon_usage(user.id, coupon_code, "CREDIT_PURCHASE")

            now = utcnow()
            local_now = to_business_tz(now)
            product = offer["product"]
            credit = Credit(
                user_id=user.id,
                room_id=room.id,
                amount=net_amount,
                remaining_amount=0,
                type="PURCHASE",
                usage_type=get_usage_type_for_product(product.type if product else None),
                status="PENDING",
                product_id=product.id if product else None,
                reference_month=local_now.month,
                reference_year=local_now.year,
                hours=offer["hours"],
                gross_amount=quote["gross_amount"],
                discount_amount=quote["discount_amount"],
                net_amount=net_amount,
                coupon_code=coupon_code,
                coupon_snapshot=quote["snapshot"],
                expires_at=now + timedelta(days=offer["validity_days"]),
            )
            self.db.add(credit)
            self.db.flush()

            if coupon_code:
                self.coupons.record_or_raise(user.id, coupon_code, "CREDIT_PURCHASE", credit_id=credit.id)

            charge = await self.payments.create_charge(
                kind="purchase",
                entity_id=credit.id,
                user=user,
                amount_cents=net_amount,
                payment_method=data.paymentMethod,
                description=f"{offer['name']} - {room.name}",
                installments=data.installmentCount if data.paymentMethod == "CARD" else None,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"🛒 Credit purchase {credit.id} created for user {user.id} ({format_brl(net_amount)})")
        return {
            "success": True,
            "creditId": credit.id,
            "userId": user.id,
            "paymentId": charge["payment_id"],
            "paymentUrl": charge.get("invoice_url"),
            "pixQrCode": charge.get("pix_qr_code"),
            "productName": offer["name"],
            "hours": offer["hours"],
            "grossAmount": quote["gross_amount"],
            "discountAmount": quote["discount_amount"],
            "amount": net_amount,
            "couponCode": coupon_code,
        }
