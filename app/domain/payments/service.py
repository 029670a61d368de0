"""
Payment service - idempotent charge creation

One Payment row per idempotency key (`booking:<id>:<method>` or
`purchase:<credit id>:<method>`). While a charge for the key is still
active it is returned again instead of creating a second one at Asaas.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...config import MIN_PAYMENT_BOLETO_CENTS, MIN_PAYMENT_CARD_CENTS, MIN_PAYMENT_PIX_CENTS
from ...errors import BusinessError, normalize_asaas_error
from ...models import Payment, User
from ...shared.money import format_brl
from ..scheduling.business_hours import utcnow
from .asaas_service import AsaasError, AsaasService, get_asaas_service
from .repository import ACTIVE_PAYMENT_STATUSES, PaymentRepository

logger = logging.getLogger(__name__)

MAX_INSTALLMENTS = 12
MIN_INSTALLMENT_CENTS = 500


def get_min_payment_amount_cents(payment_method: str) -> int:
    method = (payment_method or "PIX").upper()
    if method == "PIX":
        return MIN_PAYMENT_PIX_CENTS
    if method == "BOLETO":
        return MIN_PAYMENT_BOLETO_CENTS
    # CARD / CREDIT_CARD
    return MIN_PAYMENT_CARD_CENTS


def calculate_max_installments(total_cents: int) -> int:
    """Up to 12 installments of at least R$ 5,00 each"""
    return max(1, min(MAX_INSTALLMENTS, total_cents // MIN_INSTALLMENT_CENTS))


def build_idempotency_key(kind: str, entity_id: int, payment_method: str) -> str:
    return f"{kind}:{entity_id}:{payment_method.upper()}"


class PaymentService:
    """Business logic for gateway charges"""

    def __init__(self, db: Session, asaas: Optional[AsaasService] = None):
        self.db = db
        self.asaas = asaas or get_asaas_service()

    def ensure_min_amount(self, amount_cents: int, payment_method: str) -> None:
        minimum = get_min_payment_amount_cents(payment_method)
        if amount_cents < minimum:
            code = "PIX_MIN_AMOUNT" if payment_method.upper() == "PIX" else "PAYMENT_MIN_AMOUNT"
            raise BusinessError(
                code,
                f"Valor mínimo para {payment_method.upper()} é {format_brl(minimum)}.",
                details={"minAmountCents": minimum, "amountCents": amount_cents, "paymentMethod": payment_method},
            )

    async def create_charge(
        self,
        *,
        kind: str,
        entity_id: int,
        user: User,
        amount_cents: int,
        payment_method: str,
        description: str,
        installments: Optional[int] = None,
    ) -> dict:
        """
        Create (or reuse) the gateway charge for a booking or credit purchase.

        Flushes the Payment row; the caller commits. Raises BusinessError
        PAYMENT_MIN_AMOUNT / PAYMENT_CREATION_FAILED.
        """
        payment_method = payment_method.upper()
        key = build_idempotency_key(kind, entity_id, payment_method)

        existing = PaymentRepository.get_by_idempotency_key(self.db, key)
        if existing and existing.status in ACTIVE_PAYMENT_STATUSES and existing.external_id:
            logger.info(f"♻️ Reusing charge {existing.external_id} for {key}")
            pix = await self.asaas.get_pix_qr_code(existing.external_id) if payment_method == "PIX" else None
            return {
                "payment_id": existing.external_id,
                "invoice_url": existing.external_url,
                "pix_qr_code": pix,
                "reused": True,
            }

        self.ensure_min_amount(amount_cents, payment_method)

        if payment_method != "PIX" and installments:
            installments = min(installments, calculate_max_installments(amount_cents))

        try:
            result = await self.asaas.create_booking_payment(
                external_reference=f"{kind}:{entity_id}",
                customer_name=user.name,
                customer_email=user.email,
                customer_phone=user.phone,
                customer_cpf=user.cpf,
                value_cents=amount_cents,
                description=description,
                payment_method=payment_method,
                installment_count=installments,
            )
        except AsaasError as e:
            normalized = normalize_asaas_error(e, payment_method)
            logger.error(f"❌ Charge creation failed for {key}: {normalized['code']}")
            code = "PAYMENT_MIN_AMOUNT" if normalized["code"] == "PAYMENT_MIN_AMOUNT" else "PAYMENT_CREATION_FAILED"
            raise BusinessError(
                code, normalized["message"], details={"gatewayCode": normalized["code"], **normalized["details"]}
            ) from e

        if existing:
            # Previous charge for this key was cancelled or rejected
            payment = existing
            payment.status = "PENDING"
            payment.amount = amount_cents
            payment.external_id = result["payment_id"]
            payment.external_url = result.get("invoice_url")
            payment.installment_count = installments
            payment.paid_at = None
        else:
            payment = Payment(
                booking_id=entity_id if kind == "booking" else None,
                purchase_id=entity_id if kind == "purchase" else None,
                user_id=user.id,
                amount=amount_cents,
                status="PENDING",
                method=payment_method,
                installment_count=installments,
                external_id=result["payment_id"],
                external_url=result.get("invoice_url"),
                idempotency_key=key,
            )
            self.db.add(payment)
        self.db.flush()

        logger.info(f"💳 Charge {result['payment_id']} created for {key} ({format_brl(amount_cents)})")
        return {**result, "reused": False}

    def mark_approved(self, external_id: Optional[str] = None, booking_id: Optional[int] = None,
                      purchase_id: Optional[int] = None) -> int:
        """Flag matching payment rows APPROVED; returns how many changed"""
        query = self.db.query(Payment)
        if external_id:
            query = query.filter(Payment.external_id == external_id)
        elif booking_id is not None:
            query = query.filter(Payment.booking_id == booking_id)
        elif purchase_id is not None:
            query = query.filter(Payment.purchase_id == purchase_id)
        else:
            return 0

        changed = 0
        for payment in query.all():
            if payment.status != "APPROVED":
                payment.status = "APPROVED"
                payment.paid_at = utcnow()
                changed += 1
        return changed

    def mark_cancelled(self, booking_id: int) -> list[str]:
        """Cancel active payment rows of a booking; returns their gateway ids"""
        external_ids = []
        for payment in PaymentRepository.get_for_booking(self.db, booking_id):
            if payment.status in ("PENDING", "IN_PROCESS"):
                payment.status = "CANCELLED"
                if payment.external_id:
                    external_ids.append(payment.external_id)
        return external_ids
