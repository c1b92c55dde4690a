"""
Unit tests for the pricing rule engine.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from unittest.mock import MagicMock

from shared.errors import CalculationFailed, InvalidInput, NoRulesConfigured
from shared.test_helpers import FIXED_TIMESTAMP, fixed_clock
from service_pricing.app.rules.engine import PricingRuleEngine
from service_pricing.app.rules.events import RuleCategory
from service_pricing.app.rules.facts import FactBase
from service_pricing.app.rules.models import ResolvedRule
from service_pricing.app.rules.parser import parse_condition, parse_event


def make_rule(rule_id, event_type, params=None, priority=50, conditions=None, index=0):
    """Build a resolved rule from stored-row style arguments."""
    return ResolvedRule(
        rule_id=rule_id,
        name=rule_id.replace("-", " ").title(),
        priority=priority,
        conditions=parse_condition(conditions, rule_id),
        event=parse_event(event_type, params or {}, rule_id),
        binding_index=index,
    )


class TestPricingRuleEngine:
    """Test cases for PricingRuleEngine."""

    @pytest.fixture
    def engine(self):
        """Create engine with a fixed clock."""
        return PricingRuleEngine(max_price=Decimal("1000"), clock=fixed_clock())

    @pytest.fixture
    def facts(self):
        """Create a fact base for a non-exact 15-day selection."""
        return FactBase({
            "selectedBundle": {"cost": Decimal("15.00"), "group": "Standard Unlimited Essential", "validityDays": 15},
            "isExactMatch": False,
            "unusedDays": 3,
            "discountPerDay": Decimal("0.50"),
            "country": "US",
            "paymentMethod": "ISRAELI_CARD",
        })

    @pytest.fixture
    def pricing_rules(self):
        """Create base/markup/unused-days/rounding rules."""
        return [
            make_rule("base-price", "set-base-price", priority=100, conditions={"all": [
                {"fact": "selectedBundle", "path": "$.cost", "operator": "greaterThan", "value": 0},
            ]}, index=0),
            make_rule("markup", "apply-markup", {"markupMatrix": {
                "Standard Unlimited Essential": {15: 17},
            }}, priority=90, index=1),
            make_rule("unused-days-discount", "apply-unused-days-discount", priority=85, conditions={"all": [
                {"fact": "isExactMatch", "operator": "equal", "value": False},
                {"fact": "unusedDays", "operator": "greaterThan", "value": 0},
            ]}, index=2),
            make_rule("region-rounding", "apply-region-rounding", priority=10, index=3),
            make_rule("fixed-price-ua", "apply-fixed-price", {"value": 88}, priority=5, conditions={"all": [
                {"fact": "country", "operator": "equal", "value": "UA"},
            ]}, index=4),
        ]

    def test_empty_rule_set_raises(self, engine, facts):
        """Test an empty rule list is NoRulesConfigured."""
        with pytest.raises(NoRulesConfigured):
            engine.evaluate([], facts, strategy_code="empty")

    def test_no_satisfied_rule_keeps_seed(self, engine, facts):
        """Test the seed price survives when nothing fires."""
        rule = make_rule("ua-only", "apply-fixed-price", {"value": 88}, conditions={"all": [
            {"fact": "country", "operator": "equal", "value": "UA"},
        ]})
        result = engine.evaluate([rule], facts, seed_price=Decimal("5"))

        assert result.final_price == Decimal("5.00")
        assert result.steps == []
        assert result.rules_evaluated == 1

    def test_no_satisfied_rule_without_seed_is_zero(self, engine, facts):
        """Test the default seed is zero."""
        rule = make_rule("ua-only", "apply-fixed-price", {"value": 88}, conditions={"all": [
            {"fact": "country", "operator": "equal", "value": "UA"},
        ]})
        assert engine.evaluate([rule], facts).final_price == Decimal("0")

    @pytest.mark.parametrize("seed", [Decimal("-50"), Decimal("1e30"), Decimal("Infinity"), Decimal("NaN")])
    def test_seed_outside_bounds_rejected(self, engine, facts, seed):
        """Test the seed price obeys the same bounds as step prices."""
        rule = make_rule("ua-only", "apply-fixed-price", {"value": 88}, conditions={"all": [
            {"fact": "country", "operator": "equal", "value": "UA"},
        ]})
        with pytest.raises(InvalidInput) as exc_info:
            engine.evaluate([rule], facts, seed_price=seed)
        assert exc_info.value.details == {"seed_price": str(seed)}

    def test_priority_order_with_stable_ties(self, engine, facts):
        """Test higher priority first and ties in binding order."""
        rules = [
            make_rule("a", "apply-markup", {"value": 1}, priority=50, index=0),
            make_rule("b", "apply-markup", {"value": 1}, priority=90, index=1),
            make_rule("c", "apply-markup", {"value": 1}, priority=50, index=2),
            make_rule("d", "apply-markup", {"value": 1}, priority=90, index=3),
        ]
        result = engine.evaluate(rules, facts)

        assert [step.rule_id for step in result.steps] == ["b", "d", "a", "c"]
        assert [step.order for step in result.steps] == [0, 1, 2, 3]

    def test_unconditional_rule_always_fires(self, engine, facts):
        """Test all: [] contributes a step."""
        rule = make_rule("markup", "apply-markup", {"value": 2}, conditions={"all": []})
        result = engine.evaluate([rule], facts, seed_price=Decimal("10"))

        assert len(result.steps) == 1
        assert result.final_price == Decimal("12.00")

    def test_cascading_application(self, engine, facts):
        """Test every satisfied rule fires on the price left by the previous one."""
        rules = [
            make_rule("base", "set-base-price", {"source": 10}, priority=100),
            make_rule("double", "multiply-price", {"factor": 2}, priority=90),
            make_rule("discount", "apply-discount", {"type": "fixed", "value": 1}, priority=80),
        ]
        result = engine.evaluate(rules, facts)

        assert result.final_price == Decimal("19.00")
        assert [(step.price_before, step.price_after) for step in result.steps] == [
            (Decimal("0"), Decimal("10.00")),
            (Decimal("10.00"), Decimal("20.00")),
            (Decimal("20.00"), Decimal("19.00")),
        ]

    def test_price_quantized_after_each_step(self, engine, facts):
        """Test half-up quantization to cents after every mutation."""
        rule = make_rule("third", "multiply-price", {"factor": "0.3333"})
        result = engine.evaluate([rule], facts, seed_price=Decimal("10"))
        assert result.final_price == Decimal("3.33")

    def test_unused_days_discount_between_markup_and_rounding(self, engine, facts, pricing_rules):
        """Test the unused-days discount is exactly -1.50 and ordered after markup, before rounding."""
        result = engine.evaluate(pricing_rules, facts)
        steps = {step.rule_id: step for step in result.steps}

        discount = steps["unused-days-discount"]
        assert discount.impact == Decimal("-1.50")
        assert steps["markup"].order < discount.order < steps["region-rounding"].order
        assert discount.category is RuleCategory.DISCOUNT
        assert result.final_price == Decimal("30.99")

    def test_savings_and_customer_discounts(self, engine, facts, pricing_rules):
        """Test savings derive from the price after the last bundle adjustment."""
        result = engine.evaluate(pricing_rules, facts)

        assert result.savings_amount == Decimal("1.01")
        assert result.savings_percentage == 3.2
        assert len(result.customer_discounts) == 1
        discount = result.customer_discounts[0]
        assert discount.name == "Multi-day Savings"
        assert discount.amount == Decimal("1.50")
        assert discount.percentage == 4.7

    def test_fixed_price_for_ukraine(self, engine, facts, pricing_rules):
        """Test the UA fixed price wins over earlier steps."""
        ua_facts = FactBase({**dict(facts), "country": "UA"})
        result = engine.evaluate(pricing_rules, ua_facts)

        assert result.final_price == Decimal("88")
        assert result.steps[-1].rule_id == "fixed-price-ua"

    def test_region_rounding_applied_last(self, engine):
        """Test 19.42 snaps to 19.99 in the final step."""
        facts = FactBase({"selectedBundle": {"cost": Decimal("19.42")}})
        rules = [
            make_rule("region-rounding", "apply-region-rounding", priority=10, index=0),
            make_rule("base-price", "set-base-price", priority=100, index=1),
        ]
        result = engine.evaluate(rules, facts)

        assert result.final_price == Decimal("19.99")
        assert result.steps[-1].rule_id == "region-rounding"
        assert result.steps[-1].impact == Decimal("0.57")

    def test_negative_price_fails_with_rule_id(self, engine, facts):
        """Test a negative price is CalculationFailed attributed to the rule."""
        rule = make_rule("big-discount", "apply-discount", {"type": "fixed", "value": 50})
        with pytest.raises(CalculationFailed) as exc_info:
            engine.evaluate([rule], facts, seed_price=Decimal("10"))
        assert exc_info.value.rule_id == "big-discount"
        assert exc_info.value.details["rule_id"] == "big-discount"

    def test_price_above_maximum_fails(self, engine, facts):
        """Test prices above max_price are rejected."""
        rule = make_rule("huge", "apply-fixed-price", {"value": 5000})
        with pytest.raises(CalculationFailed) as exc_info:
            engine.evaluate([rule], facts)
        assert exc_info.value.rule_id == "huge"

    def test_condition_error_fails_with_rule_id(self, engine, facts):
        """Test incomparable condition operands surface as CalculationFailed."""
        rule = make_rule("broken", "apply-markup", {"value": 1}, conditions={"all": [
            {"fact": "country", "operator": "greaterThan", "value": 5},
        ]})
        with pytest.raises(CalculationFailed) as exc_info:
            engine.evaluate([rule], facts)
        assert exc_info.value.rule_id == "broken"

    def test_missing_operand_fact_fails(self, engine, facts):
        """Test an event operand referencing a missing fact fails."""
        rule = make_rule("surcharge", "multiply-price", {"factor": "$surchargeFactor"})
        with pytest.raises(CalculationFailed) as exc_info:
            engine.evaluate([rule], facts, seed_price=Decimal("10"))
        assert exc_info.value.rule_id == "surcharge"

    def test_derived_fact_read_by_later_rule(self, engine, facts):
        """Test a set-fact published early is visible to later rules."""
        rules = [
            make_rule("tier", "set-fact", {"fact": "surcharge", "value": 2}, priority=90),
            make_rule("surcharge", "apply-markup", {"value": "$surcharge"}, priority=80, conditions={"all": [
                {"fact": "surcharge", "operator": "isPresent"},
            ]}),
        ]
        result = engine.evaluate(rules, facts, seed_price=Decimal("10"))

        assert result.final_price == Decimal("12.00")
        assert result.steps[0].category is RuleCategory.FACT
        assert result.steps[0].impact == Decimal("0")

    def test_derived_fact_cannot_shadow_supplied_fact(self, engine, facts):
        """Test set-fact on a supplied fact name fails."""
        rule = make_rule("shadow", "set-fact", {"fact": "country", "value": "UA"})
        with pytest.raises(CalculationFailed) as exc_info:
            engine.evaluate([rule], facts)
        assert exc_info.value.rule_id == "shadow"

    def test_step_observer_sees_every_step(self, engine, facts, pricing_rules):
        """Test the observer is called once per step, in order."""
        observer = MagicMock()
        result = engine.evaluate(pricing_rules, facts, on_step=observer)

        assert observer.call_count == len(result.steps)
        assert [call.args[0].order for call in observer.call_args_list] == [0, 1, 2, 3]

    def test_steps_carry_injected_timestamp(self, engine, facts, pricing_rules):
        """Test step timestamps come from the injected clock."""
        result = engine.evaluate(pricing_rules, facts)
        assert {step.timestamp for step in result.steps} == {FIXED_TIMESTAMP}

    def test_repeated_runs_are_identical(self, engine, facts, pricing_rules):
        """Test re-running yields identical steps."""
        first = engine.evaluate(pricing_rules, facts)
        second = engine.evaluate(list(reversed(pricing_rules)), facts)

        # Reversing the input list changes ties only; priorities here are distinct
        assert [step.model_dump() for step in first.steps] == [step.model_dump() for step in second.steps]

    def test_concurrent_runs_are_identical(self, engine, facts, pricing_rules):
        """Test concurrent evaluation of the same inputs yields identical steps."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: engine.evaluate(pricing_rules, facts), range(16)))

        expected = [step.model_dump() for step in results[0].steps]
        for result in results[1:]:
            assert [step.model_dump() for step in result.steps] == expected
