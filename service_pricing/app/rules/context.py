"""
Per-run pricing context and audit trail.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional

from .events import RuleCategory
from .money import ZERO
from .models import CustomerDiscount, PricingStep

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


# (keyword in block name, customer-facing name, reason)
_DISCOUNT_LABELS = (
    ("unused days", "Multi-day Savings", "Save more with longer validity periods"),
    ("volume", "Volume Discount", "Bulk purchase savings"),
    ("loyalty", "Loyalty Reward", "Thank you for being a valued customer"),
    ("promotional", "Special Promotion", "Limited time offer"),
)


class PricingContext:
    """Mutable state private to one evaluation: running price and steps."""

    def __init__(self, price: Decimal, currency: str, clock: Optional[Clock] = None):
        self.price = price
        self.seed_price = price
        self.currency = currency
        self.steps: List[PricingStep] = []
        self._clock = clock or utc_now

    def record_step(
        self,
        name: str,
        rule_id: Optional[str],
        category: RuleCategory,
        price_after: Decimal,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PricingStep:
        """Append a step and move the running price to ``price_after``."""
        step = PricingStep(
            order=len(self.steps),
            name=name,
            price_before=self.price,
            price_after=price_after,
            impact=price_after - self.price,
            rule_id=rule_id,
            category=category,
            metadata=_jsonable(metadata or {}),
            timestamp=self._clock(),
        )
        self.steps.append(step)
        self.price = price_after
        return step

    @property
    def reference_price(self) -> Decimal:
        """Price after the last bundle adjustment, before discounts and constraints."""
        for step in reversed(self.steps):
            if step.category is RuleCategory.BUNDLE_ADJUSTMENT:
                return step.price_after
        return self.seed_price

    @property
    def savings_amount(self) -> Decimal:
        return max(self.reference_price - self.price, ZERO)

    @property
    def savings_percentage(self) -> float:
        return self._percentage_of_reference(self.savings_amount)

    def _percentage_of_reference(self, amount: Decimal) -> float:
        reference = self.reference_price
        if reference <= 0:
            return 0.0
        percentage = amount / reference * Decimal(100)
        return float(percentage.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))

    def customer_discounts(self) -> List[CustomerDiscount]:
        discounts = []
        for step in self.steps:
            if step.category is not RuleCategory.DISCOUNT or step.impact >= 0:
                continue
            amount = -step.impact
            name, reason = step.name, "Special discount applied"
            lowered = step.name.lower()
            for keyword, label, label_reason in _DISCOUNT_LABELS:
                if keyword in lowered:
                    name, reason = label, label_reason
                    break
            discounts.append(
                CustomerDiscount(
                    name=name,
                    amount=amount,
                    percentage=self._percentage_of_reference(amount),
                    reason=reason,
                )
            )
        return discounts
