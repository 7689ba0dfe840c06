"""
Pricing Models

Administrator-maintained overlays on top of upstream prices:
- PriceRule: discount or markup applied to the customer-facing price
- Commission: agency ledger entry, never subtracted from the price
- Agency: B2B account with an optional flat discount rate and feed id
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Numeric, ForeignKey, DateTime, Date, Integer, Boolean, Index
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class PriceRuleType(str, enum.Enum):
    PERCENTAGE_DISCOUNT = "PERCENTAGE_DISCOUNT"
    FIXED_DISCOUNT = "FIXED_DISCOUNT"
    MARKUP = "MARKUP"


class PriceRuleTarget(str, enum.Enum):
    ALL_AGENCIES = "ALL_AGENCIES"
    SPECIFIC_AGENCY = "SPECIFIC_AGENCY"
    ALL_CUSTOMERS = "ALL_CUSTOMERS"


class CommissionType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class Agency(Base):
    __tablename__ = "agencies"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_name = Column(String(200), nullable=False)

    # Percentage taken off the post-rule price for this agency's bookings
    discount_rate = Column(Numeric(5, 2), default=0)

    # Overrides the configured back-office feed id
    feed_id = Column(String(100), nullable=True)

    is_active = Column(Boolean, default=True)

    # Set by an administrator once the account is vetted
    is_approved = Column(Boolean, default=False, nullable=False)
    approved_by_id = Column(String(36), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    notes = Column(String(1000), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    commissions = relationship("Commission", back_populates="agency", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Agency {self.company_name}>"


class PriceRule(Base):
    """
    A single price adjustment.

    Only the best matching rule applies to a booking: highest priority, then
    most specific scope, then most recently created.
    """
    __tablename__ = "price_rules"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    type = Column(String(30), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)

    applies_to = Column(String(30), nullable=False, default=PriceRuleTarget.ALL_CUSTOMERS.value)
    agency_id = Column(String(36), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=True)

    # Optional filters, NULL matches everything
    hotel_code = Column(String(50), nullable=True)
    board_type = Column(String(20), nullable=True)

    # Optional active window, both bounds inclusive
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_price_rule_active_priority", "is_active", "priority"),
    )

    def __repr__(self):
        return f"<PriceRule {self.name} {self.type}={self.value} p={self.priority}>"


class Commission(Base):
    __tablename__ = "commissions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agency_id = Column(String(36), ForeignKey("agencies.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    value = Column(Numeric(12, 2), nullable=False)

    hotel_code = Column(String(50), nullable=True)
    board_type = Column(String(20), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    priority = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    agency = relationship("Agency", back_populates="commissions")

    def __repr__(self):
        return f"<Commission agency={self.agency_id} {self.type}={self.value}>"
