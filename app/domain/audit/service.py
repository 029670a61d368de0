"""
Audit trail - best-effort recording of business events

log_audit never raises: a failed audit write is logged and rolled back so
the operation that triggered it still succeeds. Call it after the caller has
committed its own changes, since the rollback affects the whole session.
"""

import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ...models import AuditLog

logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 500

AUDIT_ACTIONS = (
    "BOOKING_CREATED",
    "BOOKING_CONFIRMED",
    "BOOKING_CANCELLED",
    "BOOKING_EXPIRED",
    "BOOKING_UPDATED",
    "BOOKING_MANUAL_CREATED",
    "BOOKING_COURTESY_CREATED",
    "PAYMENT_RECEIVED",
    "PAYMENT_FAILED",
    "PAYMENT_REFUNDED",
    "CREDIT_CREATED",
    "CREDIT_CONFIRMED",
    "CREDIT_USED",
    "CREDIT_RESTORED",
    "CREDIT_EXPIRED",
    "CREDIT_REFUNDED",
    "CREDIT_CREATION_FAILED",
    "COUPON_CREATED",
    "COUPON_UPDATED",
    "REFUND_REQUESTED",
    "REFUND_UPDATED",
    "ADMIN_LOGIN",
    "ADMIN_LOGOUT",
    "USER_REGISTERED",
    "USER_LOGIN",
    "SETTING_UPDATED",
)


def get_client_ip(request: Optional[Request]) -> Optional[str]:
    """First X-Forwarded-For entry, then X-Real-IP, then the socket peer"""
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def get_user_agent(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    user_agent = request.headers.get("user-agent")
    return user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None


def log_audit(
    db: Session,
    action: str,
    source: str = "SYSTEM",
    actor_id: Optional[Any] = None,
    actor_email: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[Any] = None,
    metadata: Optional[dict] = None,
    request: Optional[Request] = None,
) -> Optional[AuditLog]:
    """Persist an audit entry; returns None instead of raising on failure"""
    try:
        entry = AuditLog(
            action=action,
            source=source,
            actor_id=str(actor_id) if actor_id is not None else None,
            actor_email=actor_email,
            actor_ip=get_client_ip(request),
            user_agent=get_user_agent(request),
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else None,
            details=metadata,
        )
        db.add(entry)
        db.commit()
        logger.info(f"📝 Audit {action} ({source}) target={target_type}:{target_id}")
        return entry
    except Exception as e:
        logger.error(f"❌ Failed to write audit {action}: {e}")
        try:
            db.rollback()
        except Exception as rollback_error:
            logger.error(f"❌ Audit rollback failed: {rollback_error}")
        return None


def log_user_action(db: Session, action: str, user_email: Optional[str], **kwargs) -> Optional[AuditLog]:
    return log_audit(db, action, source="USER", actor_email=user_email, **kwargs)


def log_admin_action(db: Session, action: str, admin_email: Optional[str], **kwargs) -> Optional[AuditLog]:
    return log_audit(db, action, source="ADMIN", actor_email=admin_email, **kwargs)
