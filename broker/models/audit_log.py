"""
Audit Log Model

Append-only trail of booking and sync events.
"""
from sqlalchemy import Column, String, DateTime, JSON, Index
from datetime import datetime, date
from decimal import Decimal
import uuid
import enum

from ..database import Base


def _serialize_for_json(obj):
    """Convert non-JSON-serializable types to serializable ones"""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return {k: _serialize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize_for_json(i) for i in obj]
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    return obj


class AuditAction(str, enum.Enum):
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_FAILED = "reservation_failed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_RECONCILED = "reservation_reconciled"
    RESERVATION_AWAITING_UPSTREAM = "reservation_awaiting_upstream"
    SYNC = "sync"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    APPROVED = "approved"


class AuditEntity(str, enum.Enum):
    RESERVATION = "reservation"
    CATALOG = "catalog"
    PRICE_RULE = "price_rule"
    COMMISSION = "commission"
    AGENCY = "agency"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(36), nullable=True, index=True)
    action = Column(String(50), nullable=False)

    # NULL for system jobs (scheduler, reconciliation)
    actor_user_id = Column(String(36), nullable=True, index=True)

    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_entity_created", "entity", "created_at"),
    )

    def __repr__(self):
        return f"<AuditLog {self.entity}:{self.action} {self.entity_id}>"

    @classmethod
    def record(cls, db, entity, action, entity_id=None, actor_user_id=None, payload=None):
        """
        Add an entry to the session. The caller owns the commit so the entry
        lands in the same transaction as the change it describes.
        """
        entry = cls(
            entity=entity.value if isinstance(entity, enum.Enum) else entity,
            action=action.value if isinstance(action, enum.Enum) else action,
            entity_id=entity_id,
            actor_user_id=actor_user_id,
            payload=_serialize_for_json(payload),
        )
        db.add(entry)
        return entry
