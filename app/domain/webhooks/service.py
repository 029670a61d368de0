"""
Asaas webhook processing

Every notification is recorded in webhook_events before any side effect, so
a redelivered event is answered as a duplicate. The external reference
decides what was paid: `purchase:<credit id>` for credit purchases,
`booking:<id>` (or a bare id) for bookings.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...email_service import send_booking_confirmation_email, send_credit_confirmed_email
from ...models import Booking, Credit, WebhookEvent
from ...shared.money import format_brl, to_cents
from ..audit.service import log_audit
from ..catalog.constants import DEFAULT_CREDIT_VALIDITY_DAYS, PRODUCT_HOURS
from ..credits.repository import CreditRepository
from ..credits.service import confirm_purchased_credit, get_usage_type_for_product
from ..payments.asaas_service import is_payment_confirmed, is_payment_refunded_or_chargeback
from ..payments.service import PaymentService
from ..scheduling.business_hours import to_business_tz, utcnow

logger = logging.getLogger(__name__)

PACKAGE_PRODUCT_TYPES = ("PACKAGE_10H", "PACKAGE_20H", "PACKAGE_40H")
PURCHASE_PREFIX = "purchase:"
BOOKING_PREFIX = "booking:"


def get_event_id(payload: dict) -> str:
    """Asaas event id, or `<event>:<payment id>` for payloads without one"""
    return payload.get("id") or f"{payload['event']}:{payload['payment']['id']}"


def parse_booking_reference(reference: str) -> Optional[int]:
    value = reference[len(BOOKING_PREFIX):] if reference.startswith(BOOKING_PREFIX) else reference
    value = value.strip()
    return int(value) if value.isdigit() else None


class AsaasWebhookService:
    """Applies Asaas payment events to bookings and credits"""

    def __init__(self, db: Session):
        self.db = db
        self.payments = PaymentService(db)

    def _register_event(self, event_id: str, payload: dict) -> Optional[WebhookEvent]:
        """Insert the PROCESSING row; None when the event was already received"""
        if self.db.query(WebhookEvent).filter(WebhookEvent.event_id == event_id).first():
            return None

        payment = payload["payment"]
        event = WebhookEvent(
            event_id=event_id,
            event_type=payload["event"],
            payment_id=payment.get("id"),
            external_reference=payment.get("externalReference"),
            status="PROCESSING",
            payload=payload,
        )
        self.db.add(event)
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent delivery of the same event
            self.db.rollback()
            return None
        return event

    def _finish(self, event: WebhookEvent, status: str, error: Optional[str] = None) -> None:
        event.status = status
        event.error = error
        event.processed_at = utcnow()
        self.db.commit()

    async def handle(self, payload: dict) -> tuple[int, dict]:
        """Returns (http status, body); the payload has event and payment.id"""
        event_id = get_event_id(payload)
        event_type = payload["event"]
        payment = payload["payment"]

        event = self._register_event(event_id, payload)
        if event is None:
            logger.info(f"🔁 Duplicate Asaas event {event_id}")
            return 200, {"received": True, "duplicate": True}

        try:
            status_code, body, outcome = await self._process(event_type, payment)
            self._finish(event, outcome)
            return status_code, body
        except Exception as e:
            logger.error(f"❌ Asaas webhook {event_id} failed: {e}")
            self.db.rollback()
            self._finish(event, "FAILED", str(e)[:1000])
            return 200, {"received": True, "error": str(e)}

    async def _process(self, event_type: str, payment: dict) -> tuple[int, dict, str]:
        reference = payment.get("externalReference")

        if is_payment_refunded_or_chargeback(event_type):
            return self._handle_refund(event_type, payment, reference)

        if not is_payment_confirmed(event_type):
            logger.info(f"ℹ️ Ignoring Asaas event {event_type} for {payment.get('id')}")
            return 200, {"received": True, "event": event_type, "ignored": True}, "IGNORED"

        if not reference:
            logger.error(f"❌ Asaas payment {payment.get('id')} without externalReference")
            return 400, {"error": "Sem referência externa"}, "FAILED"

        if reference.startswith(PURCHASE_PREFIX):
            return await self._confirm_purchase(payment, reference)
        return await self._confirm_booking(event_type, payment, reference)

    # ========================================
    # CREDIT PURCHASES
    # ========================================

    async def _confirm_purchase(self, payment: dict, reference: str) -> tuple[int, dict, str]:
        credit_ref = reference[len(PURCHASE_PREFIX):]
        credit = CreditRepository.get_by_id(self.db, int(credit_ref)) if credit_ref.isdigit() else None
        if not credit:
            logger.error(f"❌ Credit purchase not found for {reference}")
            return 404, {"error": "Crédito não encontrado"}, "FAILED"

        if not confirm_purchased_credit(self.db, credit):
            self.db.commit()
            return 200, {"received": True, "creditId": credit.id, "alreadyConfirmed": True}, "PROCESSED"

        self.payments.mark_approved(external_id=payment.get("id"))
        self.payments.mark_approved(purchase_id=credit.id)
        self.db.commit()

        log_audit(
            self.db,
            "CREDIT_CONFIRMED",
            target_type="Credit",
            target_id=credit.id,
            metadata={"paymentId": payment.get("id"), "amount": credit.amount, "userId": credit.user_id},
        )
        logger.info(f"✅ Credit purchase {credit.id} confirmed by payment {payment.get('id')}")
        await send_credit_confirmed_email(credit)
        return 200, {"received": True, "creditId": credit.id, "status": "CONFIRMED"}, "PROCESSED"

    # ========================================
    # BOOKINGS
    # ========================================

    def _create_package_credit(self, booking: Booking, payment_id: Optional[str]) -> Credit:
        """PURCHASE credit for the package hours; commits before auditing"""
        product = booking.product
        hours = product.hours_included or PRODUCT_HOURS.get(product.type, 0)
        hourly = booking.room.hourly_rate if booking.room and booking.room.hourly_rate else product.price // max(hours, 1)
        amount = hours * hourly
        now = utcnow()
        local_now = to_business_tz(now)

        credit = Credit(
            user_id=booking.user_id,
            room_id=booking.room_id,
            amount=amount,
            remaining_amount=amount,
            type="PURCHASE",
            usage_type=get_usage_type_for_product(product.type),
            status="CONFIRMED",
            product_id=product.id,
            source_booking_id=booking.id,
            reference_month=local_now.month,
            reference_year=local_now.year,
            hours=hours,
            expires_at=now + timedelta(days=product.validity_days or DEFAULT_CREDIT_VALIDITY_DAYS),
        )
        self.db.add(credit)
        self.db.commit()

        log_audit(
            self.db,
            "CREDIT_CREATED",
            target_type="Credit",
            target_id=credit.id,
            metadata={
                "amount": amount,
                "productId": product.id,
                "productType": product.type,
                "bookingId": booking.id,
                "paymentId": payment_id,
            },
        )
        logger.info(f"🎟️ Package credit {credit.id} ({format_brl(amount)}) created for booking {booking.id}")
        return credit

    def _ensure_package_credit(self, booking: Booking, payment_id: Optional[str]) -> bool:
        """
        Create the package credit once per booking.

        A failure is logged and audited but does not undo the confirmed
        booking; the next delivery of the payment event retries it.
        """
        if not booking.product or booking.product.type not in PACKAGE_PRODUCT_TYPES:
            return False
        if self.db.query(Credit).filter(Credit.source_booking_id == booking.id, Credit.type == "PURCHASE").first():
            return False

        try:
            self._create_package_credit(booking, payment_id)
            return True
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create package credit for booking {booking.id}: {e}")
            log_audit(
                self.db,
                "CREDIT_CREATION_FAILED",
                target_type="Booking",
                target_id=booking.id,
                metadata={"paymentId": payment_id, "productType": booking.product.type, "error": str(e)[:500]},
            )
            return False

    async def _confirm_booking(self, event_type: str, payment: dict, reference: str) -> tuple[int, dict, str]:
        booking_id = parse_booking_reference(reference)
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first() if booking_id else None
        if not booking:
            logger.error(f"❌ Booking not found for reference {reference}")
            return 404, {"error": "Reserva não encontrada"}, "FAILED"

        if booking.status == "CONFIRMED":
            credit_created = self._ensure_package_credit(booking, payment.get("id"))
            return (
                200,
                {"received": True, "bookingId": booking.id, "alreadyConfirmed": True, "creditCreated": credit_created},
                "PROCESSED",
            )

        booking.status = "CONFIRMED"
        booking.payment_status = "APPROVED"
        booking.financial_status = "PAID"
        booking.payment_id = payment.get("id")
        booking.amount_paid = to_cents(payment.get("value") or 0)
        booking.expires_at = None
        self.payments.mark_approved(external_id=payment.get("id"))
        self.payments.mark_approved(booking_id=booking.id)
        self.db.commit()

        log_audit(
            self.db,
            "PAYMENT_RECEIVED",
            target_type="Booking",
            target_id=booking.id,
            metadata={
                "paymentId": payment.get("id"),
                "value": payment.get("value"),
                "billingType": payment.get("billingType"),
                "event": event_type,
            },
        )
        credit_created = self._ensure_package_credit(booking, payment.get("id"))

        logger.info(f"✅ Booking {booking.id} confirmed by payment {payment.get('id')}")
        await send_booking_confirmation_email(booking)
        return (
            200,
            {"received": True, "bookingId": booking.id, "status": "CONFIRMED", "creditCreated": credit_created},
            "PROCESSED",
        )

    def _handle_refund(self, event_type: str, payment: dict, reference: Optional[str]) -> tuple[int, dict, str]:
        booking = None
        if reference and not reference.startswith(PURCHASE_PREFIX):
            booking_id = parse_booking_reference(reference)
            if booking_id:
                booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if booking is None and payment.get("id"):
            booking = self.db.query(Booking).filter(Booking.payment_id == payment["id"]).first()

        if not booking:
            logger.warning(f"⚠️ Refund event {event_type} for unknown booking ({reference})")
            return 200, {"received": True, "event": event_type, "ignored": True}, "IGNORED"

        booking.payment_status = "REFUNDED"
        booking.financial_status = "REFUNDED"
        self.db.commit()

        log_audit(
            self.db,
            "PAYMENT_REFUNDED",
            target_type="Booking",
            target_id=booking.id,
            metadata={"paymentId": payment.get("id"), "value": payment.get("value"), "event": event_type},
        )
        logger.info(f"↩️ Booking {booking.id} marked refunded ({event_type})")
        return 200, {"received": True, "bookingId": booking.id, "status": "REFUNDED"}, "PROCESSED"
