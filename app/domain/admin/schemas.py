"""Admin domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...models import AuditLog, Setting
from ...shared.validators import PIX_KEY_TYPES, validate_br_phone, validate_email, validate_pix_key

ADMIN_BOOKING_STATUSES = ("PENDING", "CONFIRMED", "COMPLETED", "NO_SHOW")
REFUND_STATUSES = ("REQUESTED", "APPROVED", "PAID", "REJECTED")


class AdminLoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return v.strip().lower()


class AdminBookingCreate(BaseModel):
    """Manual booking (paid outside the site) or courtesy booking"""

    userId: Optional[int] = None
    userName: Optional[str] = None
    userPhone: Optional[str] = None
    userEmail: Optional[str] = None
    roomId: str
    startAt: datetime
    endAt: datetime
    courtesy: bool = False
    courtesyReason: Optional[str] = None
    amountOverride: Optional[int] = None  # cents
    overrideReason: Optional[str] = None
    markPaid: bool = True
    notes: Optional[str] = None

    @field_validator("userPhone")
    @classmethod
    def validate_phone(cls, v):
        return validate_br_phone(v) if v else None

    @field_validator("userEmail")
    @classmethod
    def check_email(cls, v):
        return validate_email(v) if v else None

    @field_validator("amountOverride")
    @classmethod
    def validate_override(cls, v):
        if v is not None and v < 0:
            raise ValueError("Valor não pode ser negativo")
        return v

    @model_validator(mode="after")
    def check_consistency(self):
        if self.endAt <= self.startAt:
            raise ValueError("Horário de término deve ser após o início")
        if not self.userId and not self.userPhone:
            raise ValueError("Informe userId ou userPhone")
        if self.courtesy and not (self.courtesyReason or "").strip():
            raise ValueError("Motivo da cortesia é obrigatório")
        if self.amountOverride is not None and not (self.overrideReason or "").strip():
            raise ValueError("Informe o motivo da alteração de valor")
        return self


class AdminBookingUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None
    startAt: Optional[datetime] = None
    endAt: Optional[datetime] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in ADMIN_BOOKING_STATUSES:
            raise ValueError(f"Status deve ser um de {', '.join(ADMIN_BOOKING_STATUSES)}")
        return v

    @model_validator(mode="after")
    def check_times(self):
        if (self.startAt is None) != (self.endAt is None):
            raise ValueError("Informe início e término juntos")
        if self.startAt and self.endAt <= self.startAt:
            raise ValueError("Horário de término deve ser após o início")
        return self


class AdminCancelRequest(BaseModel):
    reason: Optional[str] = None
    refundType: Optional[str] = None  # CREDITS, MONEY, NONE
    pixKeyType: Optional[str] = None
    pixKey: Optional[str] = None

    @field_validator("refundType")
    @classmethod
    def validate_refund_type(cls, v):
        if v is not None and v not in ("CREDITS", "MONEY", "NONE"):
            raise ValueError("Tipo de devolução deve ser CREDITS, MONEY ou NONE")
        return v

    @model_validator(mode="after")
    def check_pix(self):
        if self.refundType == "MONEY":
            if not self.pixKeyType or not self.pixKey:
                raise ValueError("Para devolução em dinheiro, informe pixKeyType e pixKey")
            if self.pixKeyType not in PIX_KEY_TYPES:
                raise ValueError("Tipo de chave PIX inválido")
            self.pixKey = validate_pix_key(self.pixKeyType, self.pixKey)
        return self


class RefundUpdate(BaseModel):
    status: str
    adminNotes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in REFUND_STATUSES[1:]:
            raise ValueError("Status deve ser APPROVED, PAID ou REJECTED")
        return v


class SettingUpdate(BaseModel):
    value: Optional[str] = None
    description: Optional[str] = None


def serialize_setting(setting: Setting) -> dict:
    return {
        "key": setting.key,
        "value": setting.value,
        "description": setting.description,
        "updatedAt": setting.updated_at.isoformat() + "Z" if setting.updated_at else None,
    }


def serialize_audit_log(log: AuditLog) -> dict:
    return {
        "id": log.id,
        "action": log.action,
        "source": log.source,
        "actorId": log.actor_id,
        "actorEmail": log.actor_email,
        "actorIp": log.actor_ip,
        "targetType": log.target_type,
        "targetId": log.target_id,
        "metadata": log.details,
        "createdAt": log.created_at.isoformat() + "Z" if log.created_at else None,
    }
