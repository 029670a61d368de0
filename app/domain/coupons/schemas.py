"""Coupon domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .rules import DISCOUNT_TYPES, normalize_code


class CouponValidateRequest(BaseModel):
    code: str
    amountCents: int
    context: str = "BOOKING"

    @field_validator("code")
    @classmethod
    def normalize(cls, v):
        v = normalize_code(v)
        if not v:
            raise ValueError("Código do cupom é obrigatório")
        return v

    @field_validator("amountCents")
    @classmethod
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError("Valor inválido")
        return v

    @field_validator("context")
    @classmethod
    def validate_context(cls, v):
        if v not in ("BOOKING", "CREDIT_PURCHASE"):
            raise ValueError("Contexto inválido")
        return v


class CouponCreate(BaseModel):
    """Schema for creating a coupon from the back-office"""

    code: str
    discountType: str
    value: int
    description: Optional[str] = None
    singleUsePerUser: bool = False
    isDevCoupon: bool = False
    isActive: bool = True
    validFrom: Optional[datetime] = None
    validUntil: Optional[datetime] = None
    minAmountCents: Optional[int] = None
    maxUses: Optional[int] = None

    @field_validator("code")
    @classmethod
    def normalize(cls, v):
        v = normalize_code(v)
        if len(v) < 3 or len(v) > 50:
            raise ValueError("Código deve ter entre 3 e 50 caracteres")
        return v

    @field_validator("discountType")
    @classmethod
    def validate_type(cls, v):
        if v not in DISCOUNT_TYPES:
            raise ValueError(f"Tipo de desconto deve ser um de {', '.join(DISCOUNT_TYPES)}")
        return v

    @field_validator("value")
    @classmethod
    def validate_value(cls, v, info):
        if v <= 0:
            raise ValueError("Valor do desconto deve ser positivo")
        if info.data.get("discountType") == "PERCENT" and v > 100:
            raise ValueError("Percentual não pode passar de 100")
        return v


class CouponUpdate(BaseModel):
    """Schema for updating a coupon; code and type are immutable"""

    value: Optional[int] = None
    description: Optional[str] = None
    singleUsePerUser: Optional[bool] = None
    isDevCoupon: Optional[bool] = None
    isActive: Optional[bool] = None
    validFrom: Optional[datetime] = None
    validUntil: Optional[datetime] = None
    minAmountCents: Optional[int] = None
    maxUses: Optional[int] = None


class CouponResponse(BaseModel):
    id: int
    code: str
    discountType: str
    value: int
    description: Optional[str] = None
    singleUsePerUser: bool
    isDevCoupon: bool
    isActive: bool
    validFrom: Optional[datetime] = None
    validUntil: Optional[datetime] = None
    minAmountCents: Optional[int] = None
    maxUses: Optional[int] = None
    currentUses: int
    createdAt: Optional[datetime] = None


def coupon_to_response(coupon) -> CouponResponse:
    return CouponResponse(
        id=coupon.id,
        code=coupon.code,
        discountType=coupon.discount_type,
        value=coupon.value,
        description=coupon.description,
        singleUsePerUser=bool(coupon.single_use_per_user),
        isDevCoupon=bool(coupon.is_dev_coupon),
        isActive=bool(coupon.is_active),
        validFrom=coupon.valid_from,
        validUntil=coupon.valid_until,
        minAmountCents=coupon.min_amount_cents,
        maxUses=coupon.max_uses,
        currentUses=coupon.current_uses or 0,
        createdAt=coupon.created_at,
    )
