"""
Tests for the Pricing Engine

Tests cover:
- Rule selection: priority, then scope specificity, then newest
- Rule arithmetic and the zero floor
- Agency discount and commission handling
- Determinism and independence from rule order
- Database-backed quoting
"""

import random
from datetime import date, datetime
from decimal import Decimal

import pytest

from broker.models.pricing import (
    Agency, Commission, CommissionType, PriceRule, PriceRuleTarget, PriceRuleType,
)
from broker.services.pricing_engine import (
    AgencyContext, PricingEngine, apply_rule, resolve_price, select_rule,
)

TODAY = date(2026, 6, 15)


def rule(id, type=PriceRuleType.PERCENTAGE_DISCOUNT, value="10", applies_to=PriceRuleTarget.ALL_CUSTOMERS,
         priority=0, agency_id=None, hotel_code=None, board_type=None, start_date=None, end_date=None,
         created_at=datetime(2026, 1, 1), is_active=True):
    return PriceRule(
        id=id, name=id, type=type.value, value=Decimal(value), applies_to=applies_to.value,
        priority=priority, agency_id=agency_id, hotel_code=hotel_code, board_type=board_type,
        start_date=start_date, end_date=end_date, created_at=created_at, is_active=is_active,
    )


def commission(id, agency_id="A1", type=CommissionType.PERCENTAGE, value="5", priority=0,
               hotel_code=None, board_type=None):
    return Commission(
        id=id, agency_id=agency_id, type=type.value, value=Decimal(value), priority=priority,
        hotel_code=hotel_code, board_type=board_type, is_active=True, created_at=datetime(2026, 1, 1),
    )


def price(rules, agency=None, base="1000", hotel_code="HTL1", board_type="BB", commissions=()):
    return resolve_price(
        base_price=base, currency="EUR", hotel_code=hotel_code, board_type=board_type,
        agency_context=agency, booking_date=TODAY, rules=rules, commissions=commissions,
    )


class TestRuleSelection:
    """Which rule wins"""

    def test_higher_priority_beats_more_specific_scope(self):
        """10% ALL_AGENCIES at priority 5 beats 5% markup for A1 at priority 1 -> 900"""
        rules = [
            rule("r-all", value="10", applies_to=PriceRuleTarget.ALL_AGENCIES, priority=5),
            rule("r-a1", type=PriceRuleType.MARKUP, value="5",
                 applies_to=PriceRuleTarget.SPECIFIC_AGENCY, agency_id="A1", priority=1),
        ]
        result = price(rules, agency=AgencyContext(agency_id="A1"))

        assert result.final_price == Decimal("900.00")
        assert result.applied_rule_id == "r-all"

    def test_specific_agency_wins_priority_tie(self):
        rules = [
            rule("r-all", value="10", applies_to=PriceRuleTarget.ALL_AGENCIES, priority=3),
            rule("r-a1", value="20", applies_to=PriceRuleTarget.SPECIFIC_AGENCY, agency_id="A1", priority=3),
        ]
        result = price(rules, agency=AgencyContext(agency_id="A1"))

        assert result.applied_rule_id == "r-a1"
        assert result.final_price == Decimal("800.00")

    def test_most_recently_created_wins_full_tie(self):
        rules = [
            rule("r-old", value="10", created_at=datetime(2026, 1, 1)),
            rule("r-new", value="30", created_at=datetime(2026, 3, 1)),
        ]
        assert price(rules).applied_rule_id == "r-new"

    def test_customer_only_sees_all_customers_rules(self):
        rules = [
            rule("r-agencies", value="50", applies_to=PriceRuleTarget.ALL_AGENCIES, priority=10),
            rule("r-customers", value="10", applies_to=PriceRuleTarget.ALL_CUSTOMERS),
        ]
        result = price(rules)

        assert result.applied_rule_id == "r-customers"
        assert result.final_price == Decimal("900.00")

    def test_other_agency_rule_does_not_apply(self):
        rules = [rule("r-a2", applies_to=PriceRuleTarget.SPECIFIC_AGENCY, agency_id="A2")]
        result = price(rules, agency=AgencyContext(agency_id="A1"))

        assert result.applied_rule_id is None
        assert result.final_price == Decimal("1000.00")

    def test_hotel_board_and_date_filters(self):
        rules = [
            rule("r-other-hotel", hotel_code="HTL9", priority=9),
            rule("r-other-board", board_type="AI", priority=9),
            rule("r-expired", end_date=date(2026, 6, 1), priority=9),
            rule("r-future", start_date=date(2026, 7, 1), priority=9),
            rule("r-inactive", is_active=False, priority=9),
            rule("r-match", hotel_code="HTL1", board_type="BB", priority=1),
        ]
        assert select_rule(rules, "HTL1", "BB", None, TODAY).id == "r-match"

    def test_no_matching_rule_returns_base(self):
        result = price([])
        assert result.final_price == result.base_price == Decimal("1000.00")
        assert result.applied_rule_id is None


class TestRuleArithmetic:
    def test_percentage_discount(self):
        assert apply_rule(Decimal("250"), rule("r", value="10")) == Decimal("225")

    def test_markup(self):
        r = rule("r", type=PriceRuleType.MARKUP, value="15")
        assert apply_rule(Decimal("200"), r) == Decimal("230")

    def test_fixed_discount_never_goes_negative(self):
        result = price([rule("r", type=PriceRuleType.FIXED_DISCOUNT, value="1500")])
        assert result.final_price == Decimal("0.00")

    def test_rounding_half_up_at_the_end(self):
        result = price([rule("r", value="12.5")], base="99.99")
        # 99.99 * 0.875 = 87.49125
        assert result.final_price == Decimal("87.49")

        result = price([rule("r", type=PriceRuleType.MARKUP, value="0.5")], base="0.99")
        # 0.99 * 1.005 = 0.99495 -> 0.99
        assert result.final_price == Decimal("0.99")


class TestAgencyAdjustments:
    def test_agency_discount_applies_after_rule(self):
        rules = [rule("r", value="10", applies_to=PriceRuleTarget.ALL_AGENCIES)]
        result = price(rules, agency=AgencyContext(agency_id="A1", discount_rate=Decimal("5")))

        # 1000 -> 900 -> 855
        assert result.final_price == Decimal("855.00")
        assert result.agency_discount == Decimal("45.00")

    def test_commission_is_recorded_not_subtracted(self):
        result = price([], agency=AgencyContext(agency_id="A1"),
                       commissions=[commission("c1", value="8")])

        assert result.final_price == Decimal("1000.00")
        assert result.commission == Decimal("80.00")
        assert result.commission_id == "c1"

    def test_most_specific_commission_wins(self):
        commissions = [
            commission("c-any", value="5"),
            commission("c-hotel", value="7", hotel_code="HTL1"),
            commission("c-hotel-board", type=CommissionType.FIXED, value="25", hotel_code="HTL1", board_type="BB"),
        ]
        result = price([], agency=AgencyContext(agency_id="A1"), commissions=commissions)

        assert result.commission_id == "c-hotel-board"
        assert result.commission == Decimal("25.00")

    def test_customers_never_get_commission(self):
        result = price([], commissions=[commission("c1")])
        assert result.commission_id is None
        assert result.commission == Decimal("0.00")


class TestDeterminism:
    def test_same_inputs_same_price(self):
        rules = [
            rule("r1", value="10", priority=2),
            rule("r2", type=PriceRuleType.MARKUP, value="5", priority=2, created_at=datetime(2026, 2, 1)),
        ]
        assert price(rules) == price(rules)

    def test_rule_order_does_not_matter(self):
        rules = [
            rule("r1", value="10", priority=2),
            rule("r2", type=PriceRuleType.MARKUP, value="5", priority=2),
            rule("r3", hotel_code="HTL9", priority=9),
            rule("r4", applies_to=PriceRuleTarget.ALL_AGENCIES, priority=9),
            rule("r5", type=PriceRuleType.FIXED_DISCOUNT, value="100", priority=1),
        ]
        expected = price(rules)
        rng = random.Random(7)
        for _ in range(10):
            shuffled = list(rules)
            rng.shuffle(shuffled)
            assert price(shuffled) == expected


class TestPricingEngineQueries:
    def test_quote_loads_rules_agency_and_commissions(self, db_session):
        agency = Agency(id="A1", company_name="Acme Travel", discount_rate=Decimal("10"), is_active=True)
        db_session.add(agency)
        db_session.add(rule("r-all", value="10", applies_to=PriceRuleTarget.ALL_AGENCIES, priority=5))
        db_session.add(rule("r-inactive", value="90", applies_to=PriceRuleTarget.ALL_AGENCIES,
                            priority=9, is_active=False))
        db_session.add(commission("c1", value="5"))
        db_session.commit()

        result = PricingEngine(db_session).quote(
            base_price=Decimal("1000"), currency="EUR", hotel_code="HTL1", board_type="BB",
            agency_id="A1", booking_date=TODAY,
        )

        assert result.applied_rule_id == "r-all"
        # 1000 -> 900 -> 810
        assert result.final_price == Decimal("810.00")
        assert result.commission == Decimal("40.50")

    def test_inactive_agency_gets_no_discount(self, db_session):
        db_session.add(Agency(id="A1", company_name="Closed", discount_rate=Decimal("10"), is_active=False))
        db_session.commit()

        result = PricingEngine(db_session).quote(
            base_price="500", currency="EUR", hotel_code="HTL1", board_type=None,
            agency_id="A1", booking_date=TODAY,
        )
        assert result.final_price == Decimal("500.00")
