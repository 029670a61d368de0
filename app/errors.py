"""
Business errors

Typed error codes for expected business failures. They are raised from
services (also inside database transactions) and rendered by the handler in
main.py as {"success": false, "code": ..., "error": ...} with a 4xx status.
"""

import re
from typing import Any, Optional

from fastapi import HTTPException

ERROR_STATUS = {
    # Coupons
    "COUPON_INVALID": 400,
    "COUPON_ALREADY_USED": 400,
    "COUPON_EXPIRED": 400,
    "COUPON_INVALID_STATE": 409,
    "DEV_COUPON_NO_SESSION": 403,
    "DEV_COUPON_BLOCKED": 403,
    # Credits
    "INSUFFICIENT_CREDITS": 402,
    "CREDIT_CONSUMED_BY_ANOTHER": 409,
    "CREDIT_EXPIRED": 400,
    "CREDIT_LIMIT_REACHED": 400,
    # Bookings
    "BOOKING_CONFLICT": 409,
    "BOOKING_OUTSIDE_HOURS": 400,
    "BOOKING_WINDOW_EXCEEDED": 400,
    "INSUFFICIENT_TIME": 400,
    "CANCELLATION_TOO_LATE": 400,
    "INVALID_STATUS": 409,
    # Payments
    "PAYMENT_MIN_AMOUNT": 400,
    "PIX_MIN_AMOUNT": 400,
    "PAYMENT_CREATION_FAILED": 502,
    "PRODUCT_DISCONTINUED": 400,
    "PRICING_ERROR": 400,
    # Auth
    "UNAUTHORIZED": 401,
    "FORBIDDEN": 403,
    "ACCOUNT_LOCKED": 429,
    # Validation
    "VALIDATION_ERROR": 400,
    "INVALID_CPF": 400,
    "INVALID_PHONE": 400,
    "INVALID_PIX_KEY": 400,
    # Resources
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "DUPLICATE_ENTRY": 409,
    "RATE_LIMITED": 429,
}

DEFAULT_MESSAGES = {
    "COUPON_INVALID": "Cupom inválido ou não encontrado.",
    "COUPON_ALREADY_USED": "Este cupom já foi utilizado.",
    "COUPON_EXPIRED": "Este cupom expirou.",
    "INSUFFICIENT_CREDITS": "Saldo de créditos insuficiente.",
    "CREDIT_CONSUMED_BY_ANOTHER": "Créditos foram consumidos por outra operação.",
    "BOOKING_CONFLICT": "Horário não disponível. Já existe uma reserva neste período.",
    "BOOKING_OUTSIDE_HOURS": "Horário fora do expediente.",
    "BOOKING_WINDOW_EXCEEDED": "Data fora da janela de reserva permitida.",
    "INSUFFICIENT_TIME": "Reservas precisam ser feitas com antecedência mínima.",
    "PAYMENT_MIN_AMOUNT": "Valor abaixo do mínimo permitido para pagamento.",
    "PAYMENT_CREATION_FAILED": "Erro ao processar pagamento.",
    "UNAUTHORIZED": "Autenticação necessária.",
    "FORBIDDEN": "Acesso negado.",
    "VALIDATION_ERROR": "Dados inválidos.",
    "INVALID_CPF": "CPF inválido.",
    "INVALID_PHONE": "Telefone inválido.",
    "NOT_FOUND": "Recurso não encontrado.",
}


class BusinessError(HTTPException):
    """Expected business failure with a machine-readable code"""

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message or DEFAULT_MESSAGES.get(code, code)
        self.details = details
        super().__init__(status_code=status_code or ERROR_STATUS.get(code, 400), detail=self.message)

    def to_dict(self, request_id: Optional[str] = None) -> dict:
        body: dict[str, Any] = {"success": False, "code": self.code, "error": self.message}
        if request_id:
            body["requestId"] = request_id
        if self.details:
            body["details"] = self.details
        return body


def normalize_asaas_error(error: Exception, payment_method: Optional[str] = None) -> dict:
    """Map a gateway failure to a stable code the frontend can act on"""
    message = str(error)
    lowered = message.lower()

    if "mínimo" in lowered or "minimo" in lowered or "minimum" in lowered:
        min_cents = None
        match = re.search(r"R\$\s*(\d+)[,.](\d{2})", message)
        if match:
            min_cents = int(match.group(1)) * 100 + int(match.group(2))
        return {
            "code": "PAYMENT_MIN_AMOUNT",
            "message": "Valor abaixo do mínimo permitido para este meio de pagamento.",
            "details": {
                "paymentMethod": payment_method,
                "minAmountCents": min_cents,
                "originalError": message,
            },
        }

    if "timeout" in lowered or "timed out" in lowered:
        return {
            "code": "PAYMENT_TIMEOUT",
            "message": "O provedor de pagamento demorou para responder. Tente novamente.",
            "details": {"originalError": message},
        }

    if "recusad" in lowered or "declined" in lowered:
        return {
            "code": "PAYMENT_DECLINED",
            "message": "Pagamento recusado. Verifique os dados do cartão ou use outro meio.",
            "details": {"paymentMethod": payment_method, "originalError": message},
        }

    return {
        "code": "PAYMENT_ERROR",
        "message": "Erro ao processar pagamento. Tente novamente.",
        "details": {"originalError": message},
    }
