"""
Asaas payment gateway client

Thin async wrapper over the Asaas REST API (customers, charges, PIX QR
codes, refunds). Without ASAAS_API_KEY, or with ASAAS_MOCK_MODE=true, every
call answers with a local fake so bookings can be exercised end to end.
Values sent to Asaas are in reais; everything returned to callers is cents.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, Optional

import httpx

from ...config import (
    ASAAS_API_KEY,
    ASAAS_ENVIRONMENT,
    ASAAS_MOCK_MODE,
    ASAAS_TIMEOUT_SECONDS,
    ASAAS_WEBHOOK_TOKEN,
    FRONTEND_URL,
)
from ...shared.money import from_cents
from ...webhook_security import constant_time_compare
from ..scheduling.business_hours import to_business_tz, utcnow

logger = logging.getLogger(__name__)

if ASAAS_ENVIRONMENT == "production":
    ASAAS_API_URL = "https://api.asaas.com/api/v3"
else:
    ASAAS_API_URL = "https://sandbox.asaas.com/api/v3"

BILLING_TYPES = {"PIX": "PIX", "CARD": "CREDIT_CARD", "CREDIT_CARD": "CREDIT_CARD", "BOLETO": "BOLETO"}

CONFIRMED_EVENTS = ("PAYMENT_RECEIVED", "PAYMENT_CONFIRMED")
REFUND_EVENTS = (
    "PAYMENT_REFUNDED",
    "PAYMENT_PARTIALLY_REFUNDED",
    "PAYMENT_CHARGEBACK_REQUESTED",
    "PAYMENT_CHARGEBACK_DISPUTE",
)

MOCK_PIX_IMAGE = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


class AsaasError(Exception):
    """Raised when the Asaas API rejects a request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def is_payment_confirmed(event: Optional[str]) -> bool:
    return event in CONFIRMED_EVENTS


def is_payment_refunded_or_chargeback(event: Optional[str]) -> bool:
    return event in REFUND_EVENTS


def is_payment_status_confirmed(status: Optional[str]) -> bool:
    return status in ("RECEIVED", "CONFIRMED", "RECEIVED_IN_CASH")


def validate_webhook_token(token: Optional[str]) -> bool:
    """Compare the asaas-access-token header with the configured secret"""
    if not ASAAS_WEBHOOK_TOKEN:
        logger.warning("⚠️ ASAAS_WEBHOOK_TOKEN not configured - accepting unauthenticated webhook")
        return True
    return constant_time_compare(token or "", ASAAS_WEBHOOK_TOKEN)


class AsaasService:
    """Async client for the Asaas API"""

    def __init__(
        self,
        api_key: Optional[str] = ASAAS_API_KEY,
        base_url: str = ASAAS_API_URL,
        mock_mode: bool = ASAAS_MOCK_MODE,
        timeout: float = ASAAS_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.mock_mode = mock_mode or not api_key
        self.timeout = timeout
        if self.mock_mode:
            logger.info("🎭 Asaas running in mock mode")

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        if self.mock_mode:
            raise AsaasError("Asaas em modo mock - configure ASAAS_API_KEY")

        headers = {"Content-Type": "application/json", "access_token": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, f"{self.base_url}{endpoint}", headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"❌ Asaas timeout on {method} {endpoint}")
            raise AsaasError(f"Asaas timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Asaas connection error on {method} {endpoint}: {e}")
            raise AsaasError(f"Erro de conexão com Asaas: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            errors = body.get("errors") or []
            message = errors[0].get("description") if errors else f"Erro Asaas: {response.status_code}"
            logger.error(f"❌ Asaas API error {response.status_code} on {endpoint}: {message}")
            raise AsaasError(message, status_code=response.status_code)

        if not response.content:
            return {}
        return response.json()

    # ========================================
    # CUSTOMERS
    # ========================================

    async def find_or_create_customer(
        self,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        cpf_cnpj: Optional[str] = None,
    ) -> dict:
        if self.mock_mode:
            return {"id": f"cus_mock_{uuid.uuid4().hex[:12]}", "name": name, "email": email, "phone": phone}

        if email:
            search = await self._request("GET", "/customers", params={"email": email})
        elif cpf_cnpj:
            search = await self._request("GET", "/customers", params={"cpfCnpj": cpf_cnpj})
        else:
            search = {"data": []}

        if search.get("data"):
            customer = search["data"][0]
            logger.info(f"✅ Asaas customer found: {customer['id']}")
            return customer

        customer = await self._request(
            "POST",
            "/customers",
            json={
                "name": name,
                "email": email,
                "mobilePhone": phone,
                "cpfCnpj": cpf_cnpj,
                "notificationDisabled": False,
            },
        )
        logger.info(f"✅ Asaas customer created: {customer['id']}")
        return customer

    # ========================================
    # CHARGES
    # ========================================

    async def create_payment(
        self,
        customer_id: str,
        value_cents: int,
        due_date: str,
        description: str,
        external_reference: str,
        billing_type: str = "PIX",
        installment_count: Optional[int] = None,
    ) -> dict:
        """Create a charge; value_cents is converted to reais for the API"""
        value = from_cents(value_cents)
        if self.mock_mode:
            payment_id = f"pay_mock_{uuid.uuid4().hex[:16]}"
            logger.info(f"🎭 [MOCK] Charge {payment_id} {billing_type} R$ {value} ref={external_reference}")
            return {
                "id": payment_id,
                "customer": customer_id,
                "value": value,
                "billingType": billing_type,
                "status": "PENDING",
                "dueDate": due_date,
                "description": description,
                "externalReference": external_reference,
                "invoiceUrl": (
                    f"{FRONTEND_URL}/mock-payment?id={payment_id}"
                    f"&reference={external_reference}&amount={value_cents}"
                ),
            }

        body: dict[str, Any] = {
            "customer": customer_id,
            "billingType": billing_type,
            "value": value,
            "dueDate": due_date,
            "description": description,
            "externalReference": external_reference,
        }
        if billing_type == "CREDIT_CARD" and installment_count and installment_count > 1:
            body["installmentCount"] = installment_count
            body["installmentValue"] = round(value / installment_count, 2)

        payment = await self._request("POST", "/payments", json=body)
        logger.info(f"✅ Asaas charge created: {payment['id']} ({billing_type})")
        return payment

    async def get_payment(self, payment_id: str) -> Optional[dict]:
        if self.mock_mode:
            return {"id": payment_id, "status": "PENDING", "value": 0}
        try:
            return await self._request("GET", f"/payments/{payment_id}")
        except AsaasError as e:
            logger.warning(f"⚠️ Could not fetch Asaas charge {payment_id}: {e}")
            return None

    async def get_pix_qr_code(self, payment_id: str) -> Optional[dict]:
        if self.mock_mode:
            return {
                "encodedImage": MOCK_PIX_IMAGE,
                "payload": f"00020126580014br.gov.bcb.pix0136{payment_id}5204000053039865802BR6304MOCK",
                "expirationDate": (utcnow() + timedelta(hours=24)).isoformat() + "Z",
            }
        try:
            return await self._request("GET", f"/payments/{payment_id}/pixQrCode")
        except AsaasError as e:
            logger.error(f"❌ Failed to get PIX QR code for {payment_id}: {e}")
            return None

    async def refund_payment(
        self, payment_id: str, value_cents: Optional[int] = None, description: Optional[str] = None
    ) -> bool:
        if self.mock_mode:
            logger.info(f"🎭 [MOCK] Refund {payment_id}")
            return True
        body: dict[str, Any] = {"description": description}
        if value_cents is not None:
            body["value"] = from_cents(value_cents)
        try:
            await self._request("POST", f"/payments/{payment_id}/refund", json=body)
            logger.info(f"✅ Refund requested for {payment_id}")
            return True
        except AsaasError as e:
            logger.error(f"❌ Refund failed for {payment_id}: {e}")
            return False

    async def delete_payment(self, payment_id: str) -> bool:
        if self.mock_mode:
            logger.info(f"🎭 [MOCK] Delete charge {payment_id}")
            return True
        try:
            await self._request("DELETE", f"/payments/{payment_id}")
            logger.info(f"✅ Asaas charge deleted: {payment_id}")
            return True
        except AsaasError as e:
            logger.error(f"❌ Failed to delete charge {payment_id}: {e}")
            return False

    # ========================================
    # HIGH LEVEL
    # ========================================

    async def create_booking_payment(
        self,
        external_reference: str,
        customer_name: str,
        value_cents: int,
        description: str,
        payment_method: str = "PIX",
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        customer_cpf: Optional[str] = None,
        installment_count: Optional[int] = None,
        due_date: Optional[str] = None,
    ) -> dict:
        """
        Customer + charge (+ PIX QR code) in one call.

        Returns {"payment_id", "invoice_url", "status", "pix_qr_code"}.
        """
        billing_type = BILLING_TYPES.get(payment_method.upper(), "PIX")
        if billing_type == "CREDIT_CARD" and installment_count:
            installment_count = max(1, min(12, installment_count))

        customer = await self.find_or_create_customer(
            name=customer_name, email=customer_email, phone=customer_phone, cpf_cnpj=customer_cpf
        )
        due_date = due_date or (to_business_tz(utcnow()).date() + timedelta(days=1)).isoformat()

        payment = await self.create_payment(
            customer_id=customer["id"],
            value_cents=value_cents,
            due_date=due_date,
            description=description,
            external_reference=external_reference,
            billing_type=billing_type,
            installment_count=installment_count,
        )

        pix_qr_code = None
        if billing_type == "PIX":
            pix_qr_code = await self.get_pix_qr_code(payment["id"])

        return {
            "payment_id": payment["id"],
            "invoice_url": payment.get("invoiceUrl"),
            "status": payment.get("status", "PENDING"),
            "pix_qr_code": pix_qr_code,
        }


# Module-level singleton; tests may swap it
asaas_service = AsaasService()


def get_asaas_service() -> AsaasService:
    return asaas_service
