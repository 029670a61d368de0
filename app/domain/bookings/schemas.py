"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...models import Booking, RefundRequest
from ...shared.validators import (
    PIX_KEY_TYPES,
    only_digits,
    validate_br_phone,
    validate_cpf,
    validate_email,
    validate_pix_key,
)

MAX_NOTES_LENGTH = 500


def _check_method(v):
    v = (v or "PIX").upper()
    if v not in ("PIX", "CARD"):
        raise ValueError("Método de pagamento deve ser PIX ou CARD")
    return v


class BookingCreate(BaseModel):
    """Public checkout: guest or logged-in customer"""

    userName: str
    userPhone: str
    userEmail: Optional[str] = None
    userCpf: str
    roomId: str
    productId: Optional[int] = None
    startAt: datetime
    endAt: datetime
    payNow: bool = False
    useCredits: bool = False
    couponCode: Optional[str] = None
    notes: Optional[str] = None
    paymentMethod: str = "PIX"
    installmentCount: Optional[int] = None

    @field_validator("userName")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Nome deve ter pelo menos 2 caracteres")
        return v

    @field_validator("userPhone")
    @classmethod
    def validate_phone(cls, v):
        return validate_br_phone(v)

    @field_validator("userEmail")
    @classmethod
    def check_email(cls, v):
        if v:
            return validate_email(v)
        return None

    @field_validator("userCpf")
    @classmethod
    def check_cpf(cls, v):
        if not validate_cpf(v):
            raise ValueError("CPF inválido")
        return only_digits(v)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        if v and len(v) > MAX_NOTES_LENGTH:
            raise ValueError(f"Observações devem ter no máximo {MAX_NOTES_LENGTH} caracteres")
        return v

    @field_validator("paymentMethod")
    @classmethod
    def validate_method(cls, v):
        return _check_method(v)

    @field_validator("installmentCount")
    @classmethod
    def validate_installments(cls, v):
        if v is not None and not 1 <= v <= 12:
            raise ValueError("Parcelas devem estar entre 1 e 12")
        return v

    @model_validator(mode="after")
    def check_times(self):
        if self.endAt <= self.startAt:
            raise ValueError("Horário de término deve ser após o início")
        return self


class BookingWithCreditCreate(BaseModel):
    """Logged-in customer paying entirely with credits"""

    roomId: str
    startAt: datetime
    endAt: datetime
    couponCode: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v):
        if v and len(v) > MAX_NOTES_LENGTH:
            raise ValueError(f"Observações devem ter no máximo {MAX_NOTES_LENGTH} caracteres")
        return v

    @model_validator(mode="after")
    def check_times(self):
        if self.endAt <= self.startAt:
            raise ValueError("Horário de término deve ser após o início")
        return self


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = None
    requestRefund: bool = False
    pixKeyType: Optional[str] = None
    pixKey: Optional[str] = None

    @field_validator("pixKeyType")
    @classmethod
    def validate_key_type(cls, v):
        if v is None:
            return None
        v = v.upper()
        if v not in PIX_KEY_TYPES:
            raise ValueError("Tipo de chave PIX inválido")
        return v

    @model_validator(mode="after")
    def check_pix_key(self):
        if self.pixKey:
            if not self.pixKeyType:
                raise ValueError("Informe o tipo da chave PIX")
            self.pixKey = validate_pix_key(self.pixKeyType, self.pixKey)
        return self


# ============================================================================
# SERIALIZATION
# ============================================================================


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() + "Z" if dt else None


def serialize_booking(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "publicId": booking.public_id,
        "roomId": booking.room_id,
        "roomName": booking.room.name if booking.room else None,
        "productId": booking.product_id,
        "startTime": _iso(booking.start_time),
        "endTime": _iso(booking.end_time),
        "status": booking.status,
        "paymentStatus": booking.payment_status,
        "financialStatus": booking.financial_status,
        "bookingType": booking.booking_type,
        "origin": booking.origin,
        "grossAmount": booking.gross_amount,
        "discountAmount": booking.discount_amount,
        "netAmount": booking.net_amount,
        "amountPaid": booking.amount_paid,
        "creditsUsed": booking.credits_used,
        "couponCode": booking.coupon_code,
        "paymentMethod": booking.payment_method,
        "expiresAt": _iso(booking.expires_at),
        "cancelledAt": _iso(booking.cancelled_at),
        "cancelReason": booking.cancel_reason,
        "notes": booking.notes,
        "createdAt": _iso(booking.created_at),
    }


def serialize_refund(refund: RefundRequest) -> dict:
    return {
        "id": refund.id,
        "bookingId": refund.booking_id,
        "amount": refund.amount,
        "refundType": refund.refund_type,
        "pixKeyType": refund.pix_key_type,
        "status": refund.status,
        "reason": refund.reason,
        "adminNotes": refund.admin_notes,
        "processedAt": _iso(refund.processed_at),
        "createdAt": _iso(refund.created_at),
    }
