"""Audit repository - Read access to the audit trail"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import AuditLog


class AuditRepository:
    """Repository for audit log queries"""

    @staticmethod
    def list_logs(
        db: Session,
        action: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditLog], int]:
        """Filtered, newest-first page plus the total count"""
        query = db.query(AuditLog)
        if action:
            query = query.filter(AuditLog.action == action)
        if target_type:
            query = query.filter(AuditLog.target_type == target_type)
        if target_id:
            query = query.filter(AuditLog.target_id == str(target_id))
        if start_date:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date:
            query = query.filter(AuditLog.created_at <= end_date)

        total = query.count()
        logs = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()
        return logs, total
