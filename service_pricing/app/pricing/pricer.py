"""
Single-input pricing: fact base, engine run, result enrichment.
"""

import time
from decimal import Decimal
from typing import Optional

from shared.config import BaseConfig
from shared.errors import CalculationFailed, PricingEngineException
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..catalog import CatalogLookup
from ..rules.engine import PricingRuleEngine, StepObserver
from ..rules.events import RuleCategory
from ..rules.facts import ABSENT
from ..rules.models import PricedBundle, PricingRequest, PricingResult, PricingStrategy
from ..rules.money import ZERO
from .fact_builder import DiscountPerDayProvider, build_fact_base


class Pricer:
    """Prices one request against one strategy. Safe to share across threads."""

    def __init__(
        self,
        catalog: CatalogLookup,
        engine: PricingRuleEngine,
        settings: BaseConfig,
        discount_per_day_provider: Optional[DiscountPerDayProvider] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.catalog = catalog
        self.engine = engine
        self.settings = settings
        self.discount_per_day_provider = discount_per_day_provider
        self.metrics = metrics
        self.logger = get_logger("pricing.pricer")

    def price(
        self,
        request: PricingRequest,
        strategy: PricingStrategy,
        requested_days: Optional[int] = None,
        on_step: Optional[StepObserver] = None,
    ) -> PricingResult:
        start_time = time.time()
        try:
            facts, selection = build_fact_base(
                request,
                self.catalog,
                self.settings,
                requested_days=requested_days,
                discount_per_day_provider=self.discount_per_day_provider,
            )
            result = self.engine.evaluate_strategy(
                strategy,
                facts,
                seed_price=request.provider_cost,
                on_step=on_step,
            )
        except PricingEngineException as e:
            self._record("error", start_time)
            self.logger.warning(
                "Pricing failed",
                destination=request.destination_or_bundle,
                code=e.code,
                error=e.message,
            )
            raise
        except Exception as e:
            self._record("error", start_time)
            self.logger.error(
                "Unexpected pricing error",
                destination=request.destination_or_bundle,
                error=str(e),
                exc_info=True,
            )
            raise CalculationFailed(f"Unexpected error: {e}") from e

        self._record("success", start_time, len(result.steps))

        steps = result.steps
        bundle = selection.selected
        country = facts.get_fact("country")
        return result.model_copy(update={
            "total_cost": bundle.cost,
            "discount_value": sum(
                (-step.impact for step in steps if step.category is RuleCategory.DISCOUNT and step.impact < 0),
                ZERO,
            ),
            "markup": sum(
                (Decimal(str(step.metadata["markupAmount"])) for step in steps if "markupAmount" in step.metadata),
                ZERO,
            ),
            "processing_cost": sum(
                (step.impact for step in steps if step.category is RuleCategory.FEE),
                ZERO,
            ),
            "duration": selection.requested_days,
            "unused_days": selection.unused_days,
            "discount_per_day": facts.get_fact("discountPerDay"),
            "bundle": PricedBundle(
                name=bundle.name,
                group=bundle.group,
                validity_days=bundle.validity_days,
                cost=bundle.cost,
                provider=bundle.provider,
                is_unlimited=bundle.is_unlimited,
                data_amount_mb=bundle.data_amount_mb,
            ),
            "country": None if country is ABSENT else country,
        })

    def _record(self, outcome: str, start_time: float, steps: int = 0):
        if self.metrics is not None:
            self.metrics.record_pricing_run(outcome, time.time() - start_time, steps)
