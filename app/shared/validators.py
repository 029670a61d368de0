"""Shared validation utilities for Brazilian customer data"""

import re
import unicodedata
from typing import Optional

PIX_KEY_TYPES = ("CPF", "CNPJ", "EMAIL", "PHONE", "RANDOM")


def only_digits(value: Optional[str]) -> str:
    """Strip every non-digit character"""
    return re.sub(r"\D", "", value or "")


def validate_cpf(cpf: Optional[str]) -> bool:
    """
    Validate a CPF number.

    Accepts formatted input ("123.456.789-09") and plain digits. Rejects
    anything that is not 11 digits, sequences of one repeated digit and
    numbers whose two mod-11 check digits do not match.
    """
    if not cpf:
        return False

    # Only punctuation and spaces may be stripped; letters invalidate the number
    if re.search(r"[^\d.\-\s]", cpf):
        return False

    digits = only_digits(cpf)
    if len(digits) != 11:
        return False

    if digits == digits[0] * 11:
        return False

    for position in (9, 10):
        total = sum(int(digits[i]) * (position + 1 - i) for i in range(position))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != int(digits[position]):
            return False

    return True


def validate_br_phone(phone: Optional[str]) -> str:
    """
    Validate and normalize a Brazilian phone number.

    Args:
        phone: Phone number in any format, with or without the +55 prefix

    Returns:
        Digits only: DDD + number (10 or 11 digits)

    Raises:
        ValueError: If phone number is invalid
    """
    digits = only_digits(phone)

    # Drop country code
    if len(digits) in (12, 13) and digits.startswith("55"):
        digits = digits[2:]

    if len(digits) not in (10, 11):
        raise ValueError("Telefone deve ter 10 ou 11 dígitos (DDD + número)")

    ddd = int(digits[:2])
    if ddd < 11 or ddd > 99:
        raise ValueError("DDD inválido")

    # Mobile numbers carry the leading 9
    if len(digits) == 11 and digits[2] != "9":
        raise ValueError("Celular deve começar com 9")

    return digits


def mask_phone(phone: Optional[str]) -> str:
    """Format phone digits as (XX) XXXXX-XXXX or (XX) XXXX-XXXX"""
    digits = only_digits(phone)
    if len(digits) == 11:
        return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    return phone or ""


def mask_cpf(cpf: Optional[str]) -> str:
    """Hide the middle of a CPF for logs: 123.***.***-09"""
    digits = only_digits(cpf)
    if len(digits) != 11:
        return "***"
    return f"{digits[:3]}.***.***-{digits[9:]}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Email inválido")

    return email


def validate_pix_key(key_type: str, key: Optional[str]) -> str:
    """
    Validate a PIX key against its declared type and return it normalized.

    Raises:
        ValueError: If the type is unknown or the key does not match it
    """
    key_type = (key_type or "").upper()
    key = (key or "").strip()

    if key_type not in PIX_KEY_TYPES:
        raise ValueError("Tipo de chave PIX inválido")

    if key_type == "CPF":
        digits = only_digits(key)
        if len(digits) != 11:
            raise ValueError("Chave PIX CPF deve ter 11 dígitos")
        return digits

    if key_type == "CNPJ":
        digits = only_digits(key)
        if len(digits) != 14:
            raise ValueError("Chave PIX CNPJ deve ter 14 dígitos")
        return digits

    if key_type == "EMAIL":
        if not key:
            raise ValueError("Chave PIX email inválida")
        return validate_email(key)

    if key_type == "PHONE":
        digits = only_digits(key)
        if len(digits) not in (10, 11):
            raise ValueError("Chave PIX telefone deve ter 10 ou 11 dígitos")
        return digits

    # RANDOM (EVP) keys
    if len(key) < 20 or len(key) > 50:
        raise ValueError("Chave PIX aleatória deve ter entre 20 e 50 caracteres")
    return key


def slugify(text: str) -> str:
    """Lower-case ASCII slug: 'Sala Â 1' -> 'sala-a-1'"""
    normalized = unicodedata.normalize("NFKD", text or "")
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii").lower()
    ascii_text = re.sub(r"[^a-z0-9]+", "-", ascii_text)
    return ascii_text.strip("-")
