"""Credit domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...shared.validators import only_digits, validate_br_phone, validate_cpf, validate_email


class CreditPurchaseRequest(BaseModel):
    """Credit package or loose hours bought from the public site"""

    userName: str
    userPhone: str
    userEmail: Optional[str] = None
    userCpf: str
    roomId: str
    productId: Optional[int] = None
    productType: Optional[str] = None
    hours: Optional[int] = None
    couponCode: Optional[str] = None
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

    @field_validator("hours")
    @classmethod
    def validate_hours(cls, v):
        if v is not None and not 1 <= v <= 20:
            raise ValueError("Horas devem estar entre 1 e 20")
        return v

    @field_validator("paymentMethod")
    @classmethod
    def validate_method(cls, v):
        v = (v or "PIX").upper()
        if v not in ("PIX", "CARD"):
            raise ValueError("Método de pagamento deve ser PIX ou CARD")
        return v

    @field_validator("installmentCount")
    @classmethod
    def validate_installments(cls, v):
        if v is not None and not 1 <= v <= 12:
            raise ValueError("Parcelas devem estar entre 1 e 12")
        return v

    @model_validator(mode="after")
    def require_offer(self):
        if not (self.productId or self.productType or self.hours):
            raise ValueError("Informe productId, productType ou hours")
        return self


class ManualCreditCreate(BaseModel):
    """Back-office credit grant"""

    userId: int
    amount: int  # cents
    roomId: Optional[int] = None
    usageType: Optional[str] = None
    type: str = "MANUAL"
    validityDays: Optional[int] = 90
    notes: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("Valor deve ser positivo")
        return v

    @field_validator("usageType")
    @classmethod
    def validate_usage(cls, v):
        if v is not None and v not in ("HOURLY", "SHIFT", "SATURDAY_HOURLY", "SATURDAY_SHIFT"):
            raise ValueError("Tipo de uso inválido")
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v not in ("MANUAL", "REFUND", "SATURDAY"):
            raise ValueError("Tipo de crédito inválido")
        return v


class SubletCreditCreate(BaseModel):
    userId: int
    roomId: int
    sourceBookingId: Optional[int] = None
