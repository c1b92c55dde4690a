"""
Pricing service for the bundle pricing engine.
"""

import json
from typing import Any, Dict, Optional

from fastapi import Query
from fastapi.responses import StreamingResponse

from shared.base_service import BaseService
from shared.errors import PricingEngineException
from shared.logging import set_correlation_id

from .catalog import CatalogLookup, load_catalog_from_yaml
from .pricing import BatchPricingCoordinator, Pricer
from .pricing.fact_builder import DiscountPerDayProvider
from .rules.conditions import referenced_facts
from .rules.engine import PricingRuleEngine
from .rules.models import BatchPricingRequest, PricingRequest, PricingStrategy
from .strategies import (
    CachedStrategyLoader, StrategyStore, default_strategy_store, load_strategies_from_yaml
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def sse_frame(payload: Dict[str, Any], event: Optional[str] = None) -> str:
    """Encode one Server-Sent Events frame."""
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {json.dumps(payload)}\n\n"


class PricingService(BaseService):
    """Pricing service implementation."""

    def __init__(
        self,
        catalog: Optional[CatalogLookup] = None,
        strategy_store: Optional[StrategyStore] = None,
        discount_per_day_provider: Optional[DiscountPerDayProvider] = None,
        **config_overrides,
    ):
        super().__init__("pricing", 8020, **config_overrides)

        if catalog is None:
            catalog = (
                load_catalog_from_yaml(self.config.catalog_file)
                if self.config.catalog_file else CatalogLookup([])
            )
        if strategy_store is None:
            strategy_store = (
                load_strategies_from_yaml(self.config.strategies_file, self.config.default_currency)
                if self.config.strategies_file else default_strategy_store(self.config.default_currency)
            )

        self.catalog = catalog
        self.strategy_store = CachedStrategyLoader(strategy_store, self.config.strategy_cache_ttl_seconds)
        self.engine = PricingRuleEngine(max_price=self.config.max_price)
        self.pricer = Pricer(
            catalog,
            self.engine,
            self.config,
            discount_per_day_provider=discount_per_day_provider,
            metrics=self.metrics,
        )
        self.coordinator = BatchPricingCoordinator(self.pricer, self.strategy_store, self.config)

        self._setup_pricing_routes()

    def _setup_pricing_routes(self):
        """Set up pricing-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "pricing",
                "message": "Bundle Pricing Engine - Pricing Service",
                "version": "1.0.0",
                "capabilities": ["rule_engine", "batch_streaming", "step_streaming"]
            }

        @self.app.post("/pricing/calculate")
        async def calculate_price(request: PricingRequest, strategy_code: Optional[str] = Query(None)):
            """Price a single input."""
            set_correlation_id()
            strategy = self.strategy_store.load_strategy(strategy_code or self.config.default_strategy_code)
            result = self.pricer.price(request, strategy)
            return result.model_dump(mode="json", by_alias=True)

        @self.app.post("/pricing/calculate/stream")
        async def calculate_price_stream(request: PricingRequest, strategy_code: Optional[str] = Query(None)):
            """Stream the steps of a single pricing run as Server-Sent Events."""
            updates = self.coordinator.stream_steps(request, strategy_code, set_correlation_id())

            async def generate():
                try:
                    async for update in updates:
                        yield sse_frame(update.model_dump(mode="json", by_alias=True))
                finally:
                    await updates.aclose()

            return StreamingResponse(generate(), media_type="text/event-stream", headers=SSE_HEADERS)

        @self.app.post("/pricing/batch")
        async def batch_pricing(request: BatchPricingRequest):
            """Price a batch, streaming each item as it completes."""
            correlation_id = set_correlation_id()
            items = self.coordinator.stream(
                request.inputs,
                requested_days=request.requested_days,
                strategy_code=request.strategy_code,
            )

            async def generate():
                total = failed = 0
                try:
                    async for item in items:
                        total += 1
                        if not item.ok:
                            failed += 1
                        yield sse_frame(item.model_dump(mode="json", by_alias=True))
                    yield sse_frame(
                        {"correlationId": correlation_id, "total": total, "failed": failed},
                        event="complete",
                    )
                finally:
                    await items.aclose()

            return StreamingResponse(generate(), media_type="text/event-stream", headers=SSE_HEADERS)

        @self.app.get("/pricing/strategies")
        async def list_strategies():
            """List available strategy codes."""
            return {
                "strategies": self.strategy_store.list_codes(),
                "defaultCode": self.strategy_store.default_code,
                "configuredDefault": self.config.default_strategy_code,
            }

        @self.app.get("/pricing/strategies/{code}")
        async def get_strategy(code: str):
            """Describe a strategy's bindings in execution order."""
            strategy = self.strategy_store.load_strategy(code)
            return self._describe_strategy(strategy)

    def _describe_strategy(self, strategy: PricingStrategy) -> Dict[str, Any]:
        bindings = []
        for position, rule in enumerate(self.engine.order_rules(strategy.resolve_rules())):
            binding = strategy.bindings[rule.binding_index]
            bindings.append({
                "order": position,
                "blockId": binding.block.block_id,
                "name": binding.block.name,
                "eventType": binding.event.event_type,
                "category": binding.event.category.value,
                "priority": binding.effective_priority,
                "blockPriority": binding.block.priority,
                "configOverrides": binding.config_overrides,
                "facts": list(referenced_facts(binding.block.conditions)),
            })
        disabled = [
            binding.block.block_id for binding in strategy.bindings
            if not (binding.is_enabled and binding.block.is_active)
        ]
        return {
            "code": strategy.code,
            "name": strategy.name,
            "currency": strategy.currency,
            "isDefault": strategy.is_default,
            "bindings": bindings,
            "disabled": disabled,
        }

    async def _check_dependencies(self):
        """Check pricing service dependencies."""
        dependencies = {}
        try:
            self.strategy_store.load_strategy(self.config.default_strategy_code)
            dependencies["strategies"] = "ok"
        except PricingEngineException:
            dependencies["strategies"] = "error"
        dependencies["catalog"] = "ok" if self.catalog.bundles else "empty"
        return dependencies


def create_app():
    """Create pricing service application."""
    service = PricingService()
    return service.app


if __name__ == "__main__":
    service = PricingService()
    service.run()
