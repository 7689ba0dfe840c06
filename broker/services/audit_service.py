"""
Audit Log Service

Read side of the append-only audit trail. Entries are written by the
booking coordinator and the sync engine through AuditLog.record.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..models.audit_log import AuditLog
from ..schemas.pagination import clamp_limit, paginate_query


def list_audit_logs(
    db: Session,
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    actor_user_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    limit: int = 50
) -> Tuple[List[AuditLog], int, int]:
    """
    Filter the audit trail, newest first.

    Returns:
        Tuple of (entries, total_count, effective_limit)
    """
    query = db.query(AuditLog)

    if entity:
        query = query.filter(AuditLog.entity == entity)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if actor_user_id:
        query = query.filter(AuditLog.actor_user_id == actor_user_id)
    if date_from:
        query = query.filter(AuditLog.created_at >= date_from)
    if date_to:
        query = query.filter(AuditLog.created_at <= date_to)

    query = query.order_by(desc(AuditLog.created_at), desc(AuditLog.id))

    limit = clamp_limit(limit)
    items, total = paginate_query(query, page, limit)
    return items, total, limit
