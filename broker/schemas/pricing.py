"""
Pricing Schemas

Administrator requests and responses for price rules, commissions and
agency terms.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models.pricing import CommissionType, PriceRuleTarget, PriceRuleType


def check_rule(
    type: str,
    value: Decimal,
    applies_to: str,
    agency_id: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date]
) -> None:
    """Raise ValueError when a price rule definition is inconsistent"""
    if value is None or value <= 0:
        raise ValueError("value must be positive")
    if type == PriceRuleType.PERCENTAGE_DISCOUNT.value and value > 100:
        raise ValueError("a percentage discount cannot exceed 100")
    if applies_to == PriceRuleTarget.SPECIFIC_AGENCY.value and not agency_id:
        raise ValueError("agency_id is required for SPECIFIC_AGENCY rules")
    if applies_to != PriceRuleTarget.SPECIFIC_AGENCY.value and agency_id:
        raise ValueError("agency_id is only allowed for SPECIFIC_AGENCY rules")
    check_window(start_date, end_date)


def check_commission(type: str, value: Decimal, start_date: Optional[date], end_date: Optional[date]) -> None:
    """Raise ValueError when a commission definition is inconsistent"""
    if value is None or value <= 0:
        raise ValueError("value must be positive")
    if type == CommissionType.PERCENTAGE.value and value > 100:
        raise ValueError("a percentage commission cannot exceed 100")
    check_window(start_date, end_date)


def check_window(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValueError("end_date must not be before start_date")


# ==================
# Price rules
# ==================

class PriceRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: PriceRuleType
    value: Decimal = Field(..., gt=0)
    applies_to: PriceRuleTarget = PriceRuleTarget.ALL_CUSTOMERS
    agency_id: Optional[str] = None
    hotel_code: Optional[str] = Field(None, max_length=50)
    board_type: Optional[str] = Field(None, max_length=20)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True
    priority: int = 0

    @model_validator(mode='after')
    def validate_rule(self):
        check_rule(self.type.value, self.value, self.applies_to.value, self.agency_id,
                   self.start_date, self.end_date)
        return self


class PriceRuleUpdate(BaseModel):
    """Partial update; the merged rule is validated by the service"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[PriceRuleType] = None
    value: Optional[Decimal] = Field(None, gt=0)
    applies_to: Optional[PriceRuleTarget] = None
    agency_id: Optional[str] = None
    hotel_code: Optional[str] = Field(None, max_length=50)
    board_type: Optional[str] = Field(None, max_length=20)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class PriceRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    value: Decimal
    applies_to: str
    agency_id: Optional[str] = None
    hotel_code: Optional[str] = None
    board_type: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool
    priority: int
    created_at: datetime
    updated_at: Optional[datetime] = None


# ==================
# Commissions
# ==================

class CommissionCreate(BaseModel):
    agency_id: str = Field(..., min_length=1)
    type: CommissionType
    value: Decimal = Field(..., gt=0)
    hotel_code: Optional[str] = Field(None, max_length=50)
    board_type: Optional[str] = Field(None, max_length=20)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True
    priority: int = 0

    @model_validator(mode='after')
    def validate_commission(self):
        check_commission(self.type.value, self.value, self.start_date, self.end_date)
        return self


class CommissionUpdate(BaseModel):
    type: Optional[CommissionType] = None
    value: Optional[Decimal] = Field(None, gt=0)
    hotel_code: Optional[str] = Field(None, max_length=50)
    board_type: Optional[str] = Field(None, max_length=20)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None


class CommissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    agency_id: str
    type: str
    value: Decimal
    hotel_code: Optional[str] = None
    board_type: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool
    priority: int
    created_at: datetime


# ==================
# Agencies
# ==================

class AgencyApprove(BaseModel):
    discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    commission_rate: Optional[Decimal] = Field(None, gt=0, le=100, description="Creates a percentage commission")
    feed_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class AgencyUpdate(BaseModel):
    discount_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    feed_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None


class AgencyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_name: str
    discount_rate: Optional[Decimal] = None
    feed_id: Optional[str] = None
    is_active: bool
    is_approved: bool
    approved_by_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
