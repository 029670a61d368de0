"""
Email Service using Resend
Templates are MJML (see email_templates.py) compiled to HTML before sending.

The send_* helpers are best effort: a failed email is logged and reported as
False, it never breaks the request that triggered it.
"""

import logging
from datetime import datetime
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import ADMIN_NOTIFICATION_EMAIL, EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .domain.scheduling.business_hours import to_business_tz
from .email_templates import (
    booking_cancelled_template,
    booking_confirmed_template,
    credit_confirmed_template,
    pix_pending_template,
    refund_requested_admin_template,
)
from .models import Booking, Credit, RefundRequest
from .shared.money import format_brl

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailError(Exception):
    pass


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailError(f"Failed to compile MJML template: {e}") from e

    if isinstance(result, dict):
        if result.get("errors"):
            logger.warning(f"MJML compilation warnings: {result['errors']}")
        return result.get("html", "")
    return str(result)


async def send_email(to: Union[str, list[str]], subject: str, mjml_content: str,
                     from_address: Optional[str] = None) -> dict:
    """Send one email through Resend; raises EmailError on failure"""
    if not RESEND_API_KEY:
        raise EmailError("Email service not configured - RESEND_API_KEY missing")

    recipients = [to] if isinstance(to, str) else to
    html_content = compile_mjml_to_html(mjml_content)

    try:
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailError(f"Failed to send email: {e}") from e

    logger.info(f"✅ Email '{subject}' sent via Resend")
    return response


async def _send_safely(to: Optional[str], subject: str, mjml_content: str) -> bool:
    if not to:
        logger.info(f"📭 Skipping '{subject}': recipient has no email")
        return False
    try:
        await send_email(to, subject, mjml_content)
        return True
    except Exception as e:
        logger.warning(f"⚠️ Email '{subject}' not sent: {e}")
        return False


def _slot_labels(start: datetime, end: datetime) -> tuple[str, str]:
    local_start = to_business_tz(start)
    local_end = to_business_tz(end)
    return local_start.strftime("%d/%m/%Y"), f"{local_start:%H:%M} - {local_end:%H:%M}"


# ============================================
# Bookings
# ============================================


async def send_booking_confirmation_email(booking: Booking) -> bool:
    date_label, time_label = _slot_labels(booking.start_time, booking.end_time)
    mjml_content = booking_confirmed_template(
        user_name=booking.user.name,
        room_name=booking.room.name,
        date_label=date_label,
        time_label=time_label,
        amount_label=format_brl(booking.net_amount),
        credits_label=format_brl(booking.credits_used) if booking.credits_used else None,
    )
    return await _send_safely(booking.user.email, f"Reserva confirmada - {date_label}", mjml_content)


async def send_pix_pending_email(booking: Booking, amount_cents: int, payment_url: Optional[str]) -> bool:
    if not payment_url:
        return False
    date_label, time_label = _slot_labels(booking.start_time, booking.end_time)
    mjml_content = pix_pending_template(
        user_name=booking.user.name,
        room_name=booking.room.name,
        date_label=date_label,
        time_label=time_label,
        amount_label=format_brl(amount_cents),
        payment_url=payment_url,
    )
    return await _send_safely(booking.user.email, "Finalize o pagamento da sua reserva", mjml_content)


async def send_booking_cancelled_email(booking: Booking, refund_cents: int = 0, credits_restored_cents: int = 0) -> bool:
    date_label, time_label = _slot_labels(booking.start_time, booking.end_time)
    mjml_content = booking_cancelled_template(
        user_name=booking.user.name,
        room_name=booking.room.name,
        date_label=date_label,
        time_label=time_label,
        refund_label=format_brl(refund_cents) if refund_cents else None,
        credits_label=format_brl(credits_restored_cents) if credits_restored_cents else None,
    )
    return await _send_safely(booking.user.email, f"Reserva cancelada - {date_label}", mjml_content)


async def send_refund_requested_notification(refund: RefundRequest) -> bool:
    """Tell the back office a customer is waiting for a refund"""
    mjml_content = refund_requested_admin_template(
        user_name=refund.user.name,
        user_email=refund.user.email,
        booking_id=refund.booking_id,
        amount_label=format_brl(refund.amount),
        pix_key_type=refund.pix_key_type,
        pix_key=refund.pix_key,
    )
    return await _send_safely(
        ADMIN_NOTIFICATION_EMAIL, f"Pedido de reembolso - reserva #{refund.booking_id}", mjml_content
    )


# ============================================
# Credits
# ============================================


async def send_credit_confirmed_email(credit: Credit) -> bool:
    product_name = credit.product.name if credit.product else f"{credit.hours or 0}h avulsas"
    mjml_content = credit_confirmed_template(
        user_name=credit.user.name,
        product_name=product_name,
        room_name=credit.room.name if credit.room else "Qualquer sala",
        amount_label=format_brl(credit.amount),
        expires_label=to_business_tz(credit.expires_at).strftime("%d/%m/%Y") if credit.expires_at else None,
    )
    return await _send_safely(credit.user.email, "Seus créditos foram liberados", mjml_content)
