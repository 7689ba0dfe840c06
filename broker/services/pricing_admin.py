"""
Pricing Administration

Create, update and delete price rules and commissions, and vet agency
accounts. Every write lands in the audit trail in the same transaction.
"""
import enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..exceptions import AgencyAlreadyApproved, InvalidPricingDefinition, RecordNotFound
from ..models.audit_log import AuditAction, AuditEntity, AuditLog
from ..models.pricing import Agency, Commission, CommissionType, PriceRule, PriceRuleTarget
from ..schemas.pricing import (
    AgencyApprove, AgencyUpdate, CommissionCreate, CommissionUpdate,
    PriceRuleCreate, PriceRuleUpdate, check_commission, check_rule
)
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

_RULE_FIELDS = (
    "name", "type", "value", "applies_to", "agency_id", "hotel_code", "board_type",
    "start_date", "end_date", "is_active", "priority",
)
_COMMISSION_FIELDS = (
    "agency_id", "type", "value", "hotel_code", "board_type",
    "start_date", "end_date", "is_active", "priority",
)
_RULE_REQUIRED = ("name", "type", "value", "applies_to", "is_active", "priority")
_COMMISSION_REQUIRED = ("type", "value", "is_active", "priority")
_AGENCY_FIELDS = ("discount_rate", "feed_id", "is_active", "is_approved", "notes")


def _snapshot(record, fields) -> Dict[str, Any]:
    return {field: getattr(record, field) for field in fields}


def _plain(data: Dict[str, Any], required=()) -> Dict[str, Any]:
    """Enum members stored as their string values; explicit nulls dropped for required columns"""
    return {
        k: (v.value if isinstance(v, enum.Enum) else v)
        for k, v in data.items()
        if not (v is None and k in required)
    }


def _require_agency(db: Session, agency_id: Optional[str]) -> None:
    if agency_id and db.query(Agency.id).filter(Agency.id == agency_id).first() is None:
        raise InvalidPricingDefinition(f"Agency {agency_id} does not exist")


# ==================
# Price rules
# ==================

def list_price_rules(db: Session, active_only: bool = False) -> List[PriceRule]:
    query = db.query(PriceRule)
    if active_only:
        query = query.filter(PriceRule.is_active == True)
    return query.order_by(desc(PriceRule.priority), desc(PriceRule.created_at)).all()


def get_price_rule(db: Session, rule_id: str) -> PriceRule:
    rule = db.query(PriceRule).filter(PriceRule.id == rule_id).first()
    if rule is None:
        raise RecordNotFound("Price rule", rule_id)
    return rule


def create_price_rule(db: Session, data: PriceRuleCreate, actor_user_id: str) -> PriceRule:
    _require_agency(db, data.agency_id)

    rule = PriceRule(**_plain(data.model_dump()))
    db.add(rule)
    db.flush()

    AuditLog.record(
        db, AuditEntity.PRICE_RULE, AuditAction.CREATED,
        entity_id=rule.id, actor_user_id=actor_user_id,
        payload={"new": _snapshot(rule, _RULE_FIELDS)},
    )
    db.commit()
    db.refresh(rule)
    logger.info(f"Price rule {rule.id} created by {actor_user_id}: {rule.type}={rule.value}")
    return rule


def update_price_rule(db: Session, rule_id: str, data: PriceRuleUpdate, actor_user_id: str) -> PriceRule:
    """Partial update; the merged rule must still be a valid definition"""
    rule = get_price_rule(db, rule_id)
    changes = _plain(data.model_dump(exclude_unset=True), required=_RULE_REQUIRED)

    merged = {**_snapshot(rule, _RULE_FIELDS), **changes}
    # Leaving SPECIFIC_AGENCY drops the agency binding
    leaves_agency_scope = merged["applies_to"] != PriceRuleTarget.SPECIFIC_AGENCY.value
    if "applies_to" in changes and "agency_id" not in changes and leaves_agency_scope:
        merged["agency_id"] = None
        changes["agency_id"] = None
    try:
        check_rule(merged["type"], merged["value"], merged["applies_to"], merged["agency_id"],
                   merged["start_date"], merged["end_date"])
    except ValueError as e:
        raise InvalidPricingDefinition(str(e))
    _require_agency(db, changes.get("agency_id"))

    old_values = _snapshot(rule, changes.keys())
    for field, value in changes.items():
        setattr(rule, field, value)

    AuditLog.record(
        db, AuditEntity.PRICE_RULE, AuditAction.UPDATED,
        entity_id=rule.id, actor_user_id=actor_user_id,
        payload={"old": old_values, "new": changes},
    )
    db.commit()
    db.refresh(rule)
    return rule


def delete_price_rule(db: Session, rule_id: str, actor_user_id: str) -> None:
    rule = get_price_rule(db, rule_id)
    AuditLog.record(
        db, AuditEntity.PRICE_RULE, AuditAction.DELETED,
        entity_id=rule.id, actor_user_id=actor_user_id,
        payload={"old": _snapshot(rule, _RULE_FIELDS)},
    )
    db.delete(rule)
    db.commit()
    logger.info(f"Price rule {rule_id} deleted by {actor_user_id}")


# ==================
# Commissions
# ==================

def list_commissions(db: Session, agency_id: Optional[str] = None) -> List[Commission]:
    query = db.query(Commission)
    if agency_id:
        query = query.filter(Commission.agency_id == agency_id)
    return query.order_by(desc(Commission.priority), desc(Commission.created_at)).all()


def get_commission(db: Session, commission_id: str) -> Commission:
    commission = db.query(Commission).filter(Commission.id == commission_id).first()
    if commission is None:
        raise RecordNotFound("Commission", commission_id)
    return commission


def create_commission(db: Session, data: CommissionCreate, actor_user_id: str) -> Commission:
    _require_agency(db, data.agency_id)

    commission = Commission(**_plain(data.model_dump()))
    db.add(commission)
    db.flush()

    AuditLog.record(
        db, AuditEntity.COMMISSION, AuditAction.CREATED,
        entity_id=commission.id, actor_user_id=actor_user_id,
        payload={"new": _snapshot(commission, _COMMISSION_FIELDS)},
    )
    db.commit()
    db.refresh(commission)
    return commission


def update_commission(db: Session, commission_id: str, data: CommissionUpdate, actor_user_id: str) -> Commission:
    commission = get_commission(db, commission_id)
    changes = _plain(data.model_dump(exclude_unset=True), required=_COMMISSION_REQUIRED)

    merged = {**_snapshot(commission, _COMMISSION_FIELDS), **changes}
    try:
        check_commission(merged["type"], merged["value"], merged["start_date"], merged["end_date"])
    except ValueError as e:
        raise InvalidPricingDefinition(str(e))

    old_values = _snapshot(commission, changes.keys())
    for field, value in changes.items():
        setattr(commission, field, value)

    AuditLog.record(
        db, AuditEntity.COMMISSION, AuditAction.UPDATED,
        entity_id=commission.id, actor_user_id=actor_user_id,
        payload={"old": old_values, "new": changes},
    )
    db.commit()
    db.refresh(commission)
    return commission


def delete_commission(db: Session, commission_id: str, actor_user_id: str) -> None:
    commission = get_commission(db, commission_id)
    AuditLog.record(
        db, AuditEntity.COMMISSION, AuditAction.DELETED,
        entity_id=commission.id, actor_user_id=actor_user_id,
        payload={"old": _snapshot(commission, _COMMISSION_FIELDS)},
    )
    db.delete(commission)
    db.commit()


# ==================
# Agencies
# ==================

def list_agencies(db: Session, approved: Optional[bool] = None) -> List[Agency]:
    query = db.query(Agency)
    if approved is not None:
        query = query.filter(Agency.is_approved == approved)
    return query.order_by(Agency.company_name).all()


def get_agency(db: Session, agency_id: str) -> Agency:
    agency = db.query(Agency).filter(Agency.id == agency_id).first()
    if agency is None:
        raise RecordNotFound("Agency", agency_id)
    return agency


def approve_agency(db: Session, agency_id: str, data: AgencyApprove, actor_user_id: str) -> Agency:
    """
    Approve an agency account and set its commercial terms.

    A commission_rate creates an open-ended percentage commission for the
    agency in the same transaction.

    Raises:
        RecordNotFound: unknown agency
        AgencyAlreadyApproved: the agency was approved before
    """
    agency = get_agency(db, agency_id)
    if agency.is_approved:
        raise AgencyAlreadyApproved(f"Agency {agency_id} is already approved")

    old_values = _snapshot(agency, _AGENCY_FIELDS)
    agency.is_approved = True
    agency.is_active = True
    agency.approved_by_id = actor_user_id
    agency.approved_at = datetime.utcnow()
    if data.discount_rate is not None:
        agency.discount_rate = data.discount_rate
    if data.feed_id is not None:
        agency.feed_id = data.feed_id
    if data.notes is not None:
        agency.notes = data.notes

    commission = None
    if data.commission_rate is not None:
        commission = Commission(
            agency_id=agency.id,
            type=CommissionType.PERCENTAGE.value,
            value=Decimal(data.commission_rate),
        )
        db.add(commission)
        db.flush()

    AuditLog.record(
        db, AuditEntity.AGENCY, AuditAction.APPROVED,
        entity_id=agency.id, actor_user_id=actor_user_id,
        payload={
            "old": old_values,
            "new": _snapshot(agency, _AGENCY_FIELDS),
            "commission_id": commission.id if commission else None,
        },
    )
    db.commit()
    db.refresh(agency)
    logger.info(f"Agency {agency.id} ({agency.company_name}) approved by {actor_user_id}")
    return agency


def update_agency(db: Session, agency_id: str, data: AgencyUpdate, actor_user_id: str) -> Agency:
    agency = get_agency(db, agency_id)
    changes = _plain(data.model_dump(exclude_unset=True), required=("is_active",))

    old_values = _snapshot(agency, changes.keys())
    for field, value in changes.items():
        setattr(agency, field, value)

    AuditLog.record(
        db, AuditEntity.AGENCY, AuditAction.UPDATED,
        entity_id=agency.id, actor_user_id=actor_user_id,
        payload={"old": old_values, "new": changes},
    )
    db.commit()
    db.refresh(agency)
    return agency
