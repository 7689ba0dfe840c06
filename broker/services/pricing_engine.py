"""
Pricing Engine Service

Turns an upstream quoted price into the price actually charged:
1. Pick the single best matching price rule and apply it
2. Apply the agency's flat discount rate (agency bookings only)
3. Resolve the agency commission on the final price (informational only)

``resolve_price`` is pure: it only looks at its arguments, so the same
inputs always give the same result. ``PricingEngine`` loads the inputs
from the database and delegates to it.
"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..models.pricing import (
    Agency,
    Commission,
    CommissionType,
    PriceRule,
    PriceRuleTarget,
    PriceRuleType,
)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


@dataclass(frozen=True)
class AgencyContext:
    """Who the price is for when the booking is made by an agency"""
    agency_id: str
    discount_rate: Decimal = ZERO


@dataclass
class PriceResolution:
    base_price: Decimal
    final_price: Decimal
    currency: str
    applied_rule_id: Optional[str] = None
    agency_discount: Decimal = ZERO
    commission: Decimal = ZERO
    commission_id: Optional[str] = None


def _dec(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _in_window(item, booking_date: date) -> bool:
    if item.start_date and booking_date < item.start_date:
        return False
    if item.end_date and booking_date > item.end_date:
        return False
    return True


def _matches_filters(item, hotel_code: Optional[str], board_type: Optional[str]) -> bool:
    if item.hotel_code and item.hotel_code != hotel_code:
        return False
    if item.board_type and item.board_type != board_type:
        return False
    return True


def _scope_matches(rule, agency: Optional[AgencyContext]) -> bool:
    if agency is None:
        return rule.applies_to == PriceRuleTarget.ALL_CUSTOMERS
    if rule.applies_to == PriceRuleTarget.ALL_AGENCIES:
        return True
    if rule.applies_to == PriceRuleTarget.SPECIFIC_AGENCY:
        return rule.agency_id == agency.agency_id
    return False


def _created_key(item) -> datetime:
    return item.created_at or datetime.min


def _rule_rank(rule) -> tuple:
    # priority, then scope specificity, then newest, then id
    specificity = 1 if rule.applies_to == PriceRuleTarget.SPECIFIC_AGENCY else 0
    return (rule.priority or 0, specificity, _created_key(rule), str(rule.id))


def _commission_rank(commission) -> tuple:
    # hotel+board > hotel > board > none
    specificity = (2 if commission.hotel_code else 0) + (1 if commission.board_type else 0)
    return (commission.priority or 0, specificity, _created_key(commission), str(commission.id))


def select_rule(
    rules: Sequence,
    hotel_code: Optional[str],
    board_type: Optional[str],
    agency: Optional[AgencyContext],
    booking_date: date
):
    """Return the winning rule or None"""
    candidates = [
        r for r in rules
        if r.is_active
        and _scope_matches(r, agency)
        and _matches_filters(r, hotel_code, board_type)
        and _in_window(r, booking_date)
    ]
    if not candidates:
        return None
    return max(candidates, key=_rule_rank)


def select_commission(
    commissions: Sequence,
    hotel_code: Optional[str],
    board_type: Optional[str],
    agency: Optional[AgencyContext],
    booking_date: date
):
    if agency is None:
        return None
    candidates = [
        c for c in commissions
        if c.is_active
        and c.agency_id == agency.agency_id
        and _matches_filters(c, hotel_code, board_type)
        and _in_window(c, booking_date)
    ]
    if not candidates:
        return None
    return max(candidates, key=_commission_rank)


def apply_rule(base_price: Decimal, rule) -> Decimal:
    value = _dec(rule.value)
    if rule.type == PriceRuleType.PERCENTAGE_DISCOUNT:
        return base_price - base_price * value / HUNDRED
    if rule.type == PriceRuleType.FIXED_DISCOUNT:
        return max(ZERO, base_price - value)
    if rule.type == PriceRuleType.MARKUP:
        return base_price + base_price * value / HUNDRED
    raise ValueError(f"Unknown price rule type: {rule.type}")


def resolve_price(
    base_price,
    currency: str,
    hotel_code: Optional[str],
    board_type: Optional[str],
    agency_context: Optional[AgencyContext],
    booking_date: date,
    rules: Sequence,
    commissions: Sequence = ()
) -> PriceResolution:
    """
    Resolve the charged price for one quoted room.

    Direct customers (and administrators without an agency) only see
    ALL_CUSTOMERS rules; agency bookings see ALL_AGENCIES and their own
    SPECIFIC_AGENCY rules. Rounding to cents happens once, at the end.
    """
    base = _dec(base_price)
    price = base

    rule = select_rule(rules, hotel_code, board_type, agency_context, booking_date)
    if rule is not None:
        price = apply_rule(price, rule)

    agency_discount = ZERO
    if agency_context is not None and _dec(agency_context.discount_rate) > ZERO:
        agency_discount = price * _dec(agency_context.discount_rate) / HUNDRED
        price -= agency_discount

    price = max(ZERO, price)

    commission_amount = ZERO
    commission = select_commission(commissions, hotel_code, board_type, agency_context, booking_date)
    if commission is not None:
        if commission.type == CommissionType.PERCENTAGE:
            commission_amount = price * _dec(commission.value) / HUNDRED
        else:
            commission_amount = _dec(commission.value)

    return PriceResolution(
        base_price=_round(base),
        final_price=_round(price),
        currency=currency,
        applied_rule_id=rule.id if rule is not None else None,
        agency_discount=_round(agency_discount),
        commission=_round(commission_amount),
        commission_id=commission.id if commission is not None else None,
    )


class PricingEngine:
    """
    Database-backed front for ``resolve_price``.

    Active rules and the agency's commissions are loaded once per engine
    instance, so pricing every room of a search costs two queries.
    """

    def __init__(self, db: Session):
        self.db = db
        self._rules: Optional[List[PriceRule]] = None
        self._commissions = {}
        self._agencies = {}

    def get_active_rules(self) -> List[PriceRule]:
        if self._rules is None:
            self._rules = self.db.query(PriceRule).filter(PriceRule.is_active.is_(True)).all()
        return self._rules

    def get_active_commissions(self, agency_id: str) -> List[Commission]:
        if agency_id not in self._commissions:
            self._commissions[agency_id] = self.db.query(Commission).filter(
                Commission.agency_id == agency_id,
                Commission.is_active.is_(True)
            ).all()
        return self._commissions[agency_id]

    def get_agency_context(self, agency_id: Optional[str]) -> Optional[AgencyContext]:
        if not agency_id:
            return None
        if agency_id not in self._agencies:
            agency = self.db.query(Agency).filter(Agency.id == agency_id).first()
            discount_rate = _dec(agency.discount_rate) if agency and agency.is_active else ZERO
            self._agencies[agency_id] = AgencyContext(agency_id=agency_id, discount_rate=discount_rate)
        return self._agencies[agency_id]

    def quote(
        self,
        base_price,
        currency: str,
        hotel_code: Optional[str],
        board_type: Optional[str],
        agency_id: Optional[str] = None,
        booking_date: Optional[date] = None
    ) -> PriceResolution:
        agency_context = self.get_agency_context(agency_id)
        commissions = self.get_active_commissions(agency_id) if agency_id else []
        return resolve_price(
            base_price=base_price,
            currency=currency,
            hotel_code=hotel_code,
            board_type=board_type,
            agency_context=agency_context,
            booking_date=booking_date or datetime.utcnow().date(),
            rules=self.get_active_rules(),
            commissions=commissions,
        )
