"""
Asaas Webhook Handler
Confirms bookings and credit purchases when a payment is received
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...database import get_db
from ...webhook_security import get_asaas_token
from ..payments.asaas_service import validate_webhook_token
from .service import AsaasWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/asaas")
async def handle_asaas_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Asaas payment notifications.

    Processing failures are recorded on the event and answered with 200 so
    Asaas does not keep retrying a payload that cannot succeed.
    """
    if not validate_webhook_token(get_asaas_token(request)):
        logger.error("❌ Invalid Asaas webhook token")
        return JSONResponse(status_code=401, content={"error": "Token inválido"})

    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("❌ Invalid JSON payload")
        return JSONResponse(status_code=400, content={"error": "Payload inválido"})

    if (
        not isinstance(payload, dict)
        or not payload.get("event")
        or not isinstance(payload.get("payment"), dict)
        or not payload["payment"].get("id")
    ):
        logger.error("❌ Asaas payload without event or payment id")
        return JSONResponse(status_code=400, content={"error": "Payload inválido"})

    logger.info(f"📥 Asaas webhook {payload['event']} for {payload['payment']['id']}")
    status_code, body = await AsaasWebhookService(db).handle(payload)
    return JSONResponse(status_code=status_code, content=body)
