"""Account schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import only_digits, validate_br_phone, validate_cpf, validate_email


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    phone: Optional[str] = None
    cpf: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Nome deve ter pelo menos 2 caracteres")
        return v

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_br_phone(v)
        return v

    @field_validator("cpf")
    @classmethod
    def check_cpf(cls, v):
        if v:
            if not validate_cpf(v):
                raise ValueError("CPF inválido")
            return only_digits(v)
        return v


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class UserResponse(BaseModel):
    id: int
    publicId: Optional[str] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str
    emailVerified: bool = False
    createdAt: Optional[datetime] = None


def user_to_response(user) -> UserResponse:
    return UserResponse(
        id=user.id,
        publicId=user.public_id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        role=user.role,
        emailVerified=bool(user.email_verified),
        createdAt=user.created_at,
    )
