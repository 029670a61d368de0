"""
Webhook and cron authentication

Shared-secret checks for inbound machine calls: the Asaas webhook sends its
token in the `asaas-access-token` header and the scheduler calls cron
endpoints with `Authorization: Bearer <CRON_SECRET>`. All comparisons run in
constant time.
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request

from .config import CRON_SECRET, IS_PRODUCTION

logger = logging.getLogger(__name__)

ASAAS_TOKEN_HEADER = "asaas-access-token"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def get_asaas_token(request: Request) -> Optional[str]:
    return request.headers.get(ASAAS_TOKEN_HEADER)


def verify_cron_secret(request: Request) -> None:
    """
    Dependency for cron endpoints.

    Without CRON_SECRET the endpoint is open outside production and closed in
    production.
    """
    if not CRON_SECRET:
        if IS_PRODUCTION:
            logger.error("❌ CRON_SECRET not configured - refusing cron call")
            raise HTTPException(status_code=503, detail="Cron não configurado")
        logger.warning("⚠️ CRON_SECRET not configured - accepting cron call (development)")
        return

    auth_header = request.headers.get("authorization", "")
    token = auth_header[7:].strip() if auth_header.lower().startswith("bearer ") else ""
    if not constant_time_compare(token, CRON_SECRET):
        logger.warning(f"🚫 Invalid cron secret for {request.url.path}")
        raise HTTPException(status_code=401, detail="Não autorizado")
