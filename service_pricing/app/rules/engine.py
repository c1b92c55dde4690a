"""
Rule evaluation engine for pricing.
"""

import time
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from shared.errors import CalculationFailed, InvalidInput, NoRulesConfigured
from shared.logging import get_logger
from .conditions import evaluate_condition
from .context import Clock, PricingContext
from .events import apply_event
from .facts import FactBase
from .models import PricingResult, PricingStep, PricingStrategy, ResolvedRule
from .money import ZERO, quantize_money

StepObserver = Callable[[PricingStep], None]


class PricingRuleEngine:
    """Cascading rule engine: every satisfied rule fires, in priority order."""

    def __init__(self, max_price: Decimal = Decimal("100000"), clock: Optional[Clock] = None):
        self.logger = get_logger("pricing.rule_engine")
        self.max_price = max_price
        self.clock = clock

    @staticmethod
    def order_rules(rules: Sequence[ResolvedRule]) -> List[ResolvedRule]:
        """Sort by priority (higher first); ties keep binding order."""
        return sorted(rules, key=lambda rule: rule.priority, reverse=True)

    def evaluate(
        self,
        rules: Sequence[ResolvedRule],
        facts: FactBase,
        currency: str = "USD",
        seed_price: Optional[Decimal] = None,
        strategy_code: Optional[str] = None,
        on_step: Optional[StepObserver] = None,
    ) -> PricingResult:
        """Run every rule against ``facts`` and return the priced result."""
        if not rules:
            raise NoRulesConfigured(strategy_code or "<inline>")

        start_time = time.time()
        ordered = self.order_rules(rules)
        context = PricingContext(
            price=self._checked_seed(seed_price) if seed_price is not None else ZERO,
            currency=currency,
            clock=self.clock,
        )

        self.logger.info(
            "Pricing run started",
            strategy_code=strategy_code,
            rules=len(ordered),
            seed_price=str(context.price),
        )

        for rule in ordered:
            try:
                matched = evaluate_condition(rule.conditions, facts)
            except Exception as e:
                raise CalculationFailed(
                    f"Condition evaluation failed for rule '{rule.name}': {e}",
                    rule_id=rule.rule_id,
                ) from e
            if not matched:
                continue

            try:
                outcome = apply_event(rule.event, context.price, facts)
            except Exception as e:
                raise CalculationFailed(
                    f"Rule '{rule.name}' failed: {e}",
                    rule_id=rule.rule_id,
                    details={"event_type": rule.event.event_type},
                ) from e

            price_after = self._checked_price(outcome.price, rule)
            for name, value in outcome.derived_facts.items():
                try:
                    facts = facts.derive(name, value)
                except ValueError as e:
                    raise CalculationFailed(str(e), rule_id=rule.rule_id) from e

            step = context.record_step(
                name=rule.name,
                rule_id=rule.rule_id,
                category=rule.event.category,
                price_after=price_after,
                metadata={"description": outcome.description, **outcome.metadata},
            )
            self.logger.debug(
                "Rule applied",
                rule_id=rule.rule_id,
                order=step.order,
                price_before=str(step.price_before),
                price_after=str(step.price_after),
            )
            if on_step is not None:
                on_step(step)

        result = PricingResult(
            final_price=context.price,
            currency=context.currency,
            steps=list(context.steps),
            savings_amount=context.savings_amount,
            savings_percentage=context.savings_percentage,
            customer_discounts=context.customer_discounts(),
            strategy_code=strategy_code,
            rules_evaluated=len(ordered),
            calculation_time_ms=(time.time() - start_time) * 1000,
        )

        self.logger.info(
            "Pricing run finished",
            strategy_code=strategy_code,
            rules_evaluated=len(ordered),
            steps_applied=len(context.steps),
            final_price=str(result.final_price),
        )
        return result

    def evaluate_strategy(
        self,
        strategy: PricingStrategy,
        facts: FactBase,
        seed_price: Optional[Decimal] = None,
        on_step: Optional[StepObserver] = None,
    ) -> PricingResult:
        return self.evaluate(
            strategy.resolve_rules(),
            facts,
            currency=strategy.currency,
            seed_price=seed_price,
            strategy_code=strategy.code,
            on_step=on_step,
        )

    def _checked_seed(self, price: Decimal) -> Decimal:
        if not price.is_finite() or price < 0 or price > self.max_price:
            raise InvalidInput(
                f"Seed price {price} is outside [0, {self.max_price}]",
                details={"seed_price": str(price)},
            )
        return quantize_money(price)

    def _checked_price(self, price: Decimal, rule: ResolvedRule) -> Decimal:
        if not price.is_finite():
            raise CalculationFailed(f"Rule '{rule.name}' produced a non-finite price", rule_id=rule.rule_id)
        if price < 0:
            raise CalculationFailed(
                f"Rule '{rule.name}' produced a negative price",
                rule_id=rule.rule_id,
                details={"price": str(price)},
            )
        if price > self.max_price:
            raise CalculationFailed(
                f"Rule '{rule.name}' produced a price above {self.max_price}",
                rule_id=rule.rule_id,
                details={"price": str(price)},
            )
        return quantize_money(price)
