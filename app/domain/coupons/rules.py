"""
Coupon arithmetic

Pure functions shared by bookings, credit purchases and the validation
endpoint. Amounts are cents. The discounted amount never drops below
R$ 1,00 unless the original amount was already below it, and
final_amount + discount_amount always equals the original amount.
"""

from typing import Optional, Union

from ..scheduling.business_hours import utcnow

MIN_FINAL_AMOUNT_CENTS = 100

DISCOUNT_TYPES = ("PERCENT", "FIXED", "PRICE_OVERRIDE")

# Built-in coupons; database rows with the same code take precedence
STATIC_COUPONS = {
    "TESTE50": {
        "discount_type": "FIXED",
        "value": 500,
        "description": "R$ 5,00 de desconto",
        "single_use_per_user": False,
        "is_dev_coupon": False,
    },
    "ARTHEMI10": {
        "discount_type": "PERCENT",
        "value": 10,
        "description": "10% de desconto",
        "single_use_per_user": False,
        "is_dev_coupon": False,
    },
    "PRIMEIRACOMPRA": {
        "discount_type": "PERCENT",
        "value": 15,
        "description": "15% na primeira compra",
        "single_use_per_user": True,
        "is_dev_coupon": False,
    },
    "DEVTEST": {
        "discount_type": "PERCENT",
        "value": 50,
        "description": "DEV: 50% de desconto",
        "single_use_per_user": False,
        "is_dev_coupon": True,
    },
    "TESTE5": {
        "discount_type": "PRICE_OVERRIDE",
        "value": 500,
        "description": "TESTE: força R$ 5,00",
        "single_use_per_user": False,
        "is_dev_coupon": False,
    },
}


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def get_static_coupon(code: Optional[str]) -> Optional[dict]:
    config = STATIC_COUPONS.get(normalize_code(code))
    if config is None:
        return None
    return {"code": normalize_code(code), **config}


def is_valid_coupon(code: Optional[str]) -> bool:
    return get_static_coupon(code) is not None


def apply_discount(amount_cents: int, coupon: Union[str, dict, None]) -> dict:
    """
    Apply a coupon (code from the built-in registry, or a resolved config dict).

    Returns {"final_amount", "discount_amount", "coupon_code"}; an unknown
    coupon leaves the amount untouched.
    """
    config = get_static_coupon(coupon) if isinstance(coupon, str) or coupon is None else coupon
    if not config:
        return {"final_amount": amount_cents, "discount_amount": 0, "coupon_code": None}

    discount_type = config["discount_type"]
    value = config["value"]

    if discount_type == "PERCENT":
        discount = round(amount_cents * value / 100)
    elif discount_type == "FIXED":
        discount = value
    elif discount_type == "PRICE_OVERRIDE":
        # Forces the final price; never raises it
        discount = amount_cents - min(amount_cents, value)
    else:
        discount = 0

    floor = MIN_FINAL_AMOUNT_CENTS if amount_cents >= MIN_FINAL_AMOUNT_CENTS else 0
    final_amount = max(floor, amount_cents - discount)

    return {
        "final_amount": final_amount,
        "discount_amount": amount_cents - final_amount,
        "coupon_code": config.get("code"),
    }


def create_coupon_snapshot(config: dict) -> dict:
    """Frozen copy of the coupon terms stored with the booking/credit"""
    return {
        "code": config.get("code"),
        "discountType": config.get("discount_type"),
        "value": config.get("value"),
        "description": config.get("description"),
        "singleUsePerUser": bool(config.get("single_use_per_user")),
        "appliedAt": utcnow().isoformat() + "Z",
    }
