"""
Audit Log Router

Read-only view of the audit trail for administrators.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from ..database import get_db
from ..schemas.audit import AuditLogResponse
from ..schemas.pagination import PaginatedResponse
from ..services.access import Actor
from ..services.audit_service import list_audit_logs
from ..utils.dependencies import require_admin

router = APIRouter(prefix="/api/admin/audit-logs", tags=["Audit"])


@router.get("", response_model=PaginatedResponse[AuditLogResponse])
def get_audit_logs(
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """Newest first; limit is capped at 100"""
    items, total, limit = list_audit_logs(
        db,
        entity=entity,
        entity_id=entity_id,
        actor_user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return PaginatedResponse.create(
        items=[AuditLogResponse.model_validate(e) for e in items],
        total=total,
        page=page,
        limit=limit,
    )
