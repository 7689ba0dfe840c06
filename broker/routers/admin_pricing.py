"""
Pricing Administration Router

Price rules, agency commissions and agency approval (admin only).
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..schemas.pricing import (
    AgencyApprove, AgencyResponse, AgencyUpdate,
    CommissionCreate, CommissionResponse, CommissionUpdate,
    PriceRuleCreate, PriceRuleResponse, PriceRuleUpdate
)
from ..services import pricing_admin
from ..services.access import Actor
from ..utils.dependencies import require_admin

router = APIRouter(prefix="/api/admin", tags=["Pricing Admin"])


# ==================
# Price rules
# ==================

@router.get("/price-rules", response_model=List[PriceRuleResponse])
def list_price_rules(
    active_only: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    return pricing_admin.list_price_rules(db, active_only=active_only)


@router.post("/price-rules", response_model=PriceRuleResponse, status_code=status.HTTP_201_CREATED)
def create_price_rule(
    rule_data: PriceRuleCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    return pricing_admin.create_price_rule(db, rule_data, actor.user_id)


@router.put("/price-rules/{rule_id}", response_model=PriceRuleResponse)
def update_price_rule(
    rule_id: str,
    rule_data: PriceRuleUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    return pricing_admin.update_price_rule(db, rule_id, rule_data, actor.user_id)


@router.delete("/price-rules/{rule_id}")
def delete_price_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    pricing_admin.delete_price_rule(db, rule_id, actor.user_id)
    return {"message": "Price rule deleted"}


# ==================
# Commissions
# ==================

@router.get("/commissions", response_model=List[CommissionResponse])
def list_commissions(
    agency_id: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    return pricing_admin.list_commissions(db, agency_id=agency_id)


@router.post("/commissions", response_model=CommissionResponse, status_code=status.HTTP_201_CREATED)
def create_commission(
    commission_data: CommissionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    return pricing_admin.create_commission(db, commission_data, actor.user_id)


@router.put("/commissions/{commission_id}", response_model=CommissionResponse)
def update_commission(
    commission_id: str,
    commission_data: CommissionUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    return pricing_admin.update_commission(db, commission_id, commission_data, actor.user_id)


@router.delete("/commissions/{commission_id}")
def delete_commission(
    commission_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    pricing_admin.delete_commission(db, commission_id, actor.user_id)
    return {"message": "Commission deleted"}


# ==================
# Agencies
# ==================

@router.get("/agencies", response_model=List[AgencyResponse])
def list_agencies(
    approved: Optional[bool] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    """Filter with ?approved=false for the approval queue"""
    return pricing_admin.list_agencies(db, approved=approved)


@router.post("/agencies/{agency_id}/approve", response_model=AgencyResponse)
def approve_agency(
    agency_id: str,
    approval: AgencyApprove,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    return pricing_admin.approve_agency(db, agency_id, approval, actor.user_id)


@router.put("/agencies/{agency_id}", response_model=AgencyResponse)
def update_agency(
    agency_id: str,
    agency_data: AgencyUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin)
):
    return pricing_admin.update_agency(db, agency_id, agency_data, actor.user_id)
