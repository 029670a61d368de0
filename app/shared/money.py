"""Money helpers - every amount in the system is an integer number of centavos"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union


def to_cents(reais: Union[int, float, str, Decimal]) -> int:
    """R$ 59.99 -> 5999 (half-up, immune to float artifacts)"""
    return int((Decimal(str(reais)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> float:
    """5999 -> 59.99, the representation the payment gateway expects"""
    return round(cents / 100, 2)


def assert_integer_cents(value, field: str = "amount") -> int:
    """Reject floats, booleans and negative values where cents are required"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field} must be an integer number of cents, got {value!r}")
    if value < 0:
        raise ValueError(f"{field} must not be negative, got {value}")
    return value


def format_brl(cents: int) -> str:
    """5999 -> 'R$ 59,99'; 103980 -> 'R$ 1.039,80'"""
    sign = "-" if cents < 0 else ""
    reais, centavos = divmod(abs(int(cents)), 100)
    grouped = f"{reais:,}".replace(",", ".")
    return f"{sign}R$ {grouped},{centavos:02d}"
