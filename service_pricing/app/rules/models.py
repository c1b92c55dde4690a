"""
Pricing data models.

Blocks, bindings and strategies are plain dataclasses owned by the engine;
request/result shapes are pydantic models serialized with camelCase keys.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from shared.errors import ErrorResponse
from .conditions import AllCondition, Condition
from .events import PricingEvent, RuleCategory
from .money import DecimalParam

Money = Annotated[DecimalParam, PlainSerializer(float, return_type=float, when_used="json")]


@dataclass(frozen=True)
class PricingBlock:
    """Reusable rule: conditions plus one event."""
    block_id: str
    name: str
    priority: int
    event: PricingEvent
    conditions: Condition = field(default_factory=AllCondition)
    event_type: str = ""
    params: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    description: Optional[str] = None


@dataclass(frozen=True)
class StrategyBlockBinding:
    """Strategy-specific use of a block."""
    block: PricingBlock
    event: PricingEvent
    priority: Optional[int] = None
    is_enabled: bool = True
    config_overrides: Dict[str, Any] = field(default_factory=dict)

    @property
    def effective_priority(self) -> int:
        return self.priority if self.priority is not None else self.block.priority


@dataclass(frozen=True)
class ResolvedRule:
    """An enabled binding flattened for evaluation."""
    rule_id: str
    name: str
    priority: int
    conditions: Condition
    event: PricingEvent
    binding_index: int = 0


@dataclass
class PricingStrategy:
    """Ordered set of block bindings identified by a code."""
    code: str
    name: str
    bindings: List[StrategyBlockBinding] = field(default_factory=list)
    currency: str = "USD"
    is_default: bool = False
    description: Optional[str] = None

    def resolve_rules(self) -> List[ResolvedRule]:
        """Enabled bindings of active blocks, in declared binding order."""
        return [
            ResolvedRule(
                rule_id=binding.block.block_id,
                name=binding.block.name,
                priority=binding.effective_priority,
                conditions=binding.block.conditions,
                event=binding.event,
                binding_index=index,
            )
            for index, binding in enumerate(self.bindings)
            if binding.is_enabled and binding.block.is_active
        ]


class CamelModel(BaseModel):
    """Base for models exchanged with callers."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class PricingStep(CamelModel):
    """One audit record of a block's effect on price."""
    order: int = Field(..., ge=0, description="Execution index within the run")
    name: str
    price_before: Money
    price_after: Money
    impact: Money
    rule_id: Optional[str] = None
    category: RuleCategory
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class CustomerDiscount(CamelModel):
    """Customer-facing view of a discount step."""
    name: str
    amount: Money
    percentage: float
    reason: str


class PricedBundle(CamelModel):
    """Bundle the price was computed for."""
    name: str
    group: Optional[str] = None
    validity_days: int
    cost: Money
    provider: Optional[str] = None
    is_unlimited: bool = False
    data_amount_mb: Optional[int] = None


class PricingResult(CamelModel):
    """Outcome of one pricing run."""
    final_price: Money
    currency: str
    steps: List[PricingStep] = Field(default_factory=list, alias="pricingSteps")
    savings_amount: Money = Decimal("0")
    savings_percentage: float = 0.0
    customer_discounts: List[CustomerDiscount] = Field(default_factory=list)
    strategy_code: Optional[str] = None
    rules_evaluated: int = 0
    calculation_time_ms: float = 0.0

    # Filled in by the pricer from the fact base
    total_cost: Optional[Money] = None
    discount_value: Money = Decimal("0")
    markup: Money = Decimal("0")
    processing_cost: Money = Decimal("0")
    duration: Optional[int] = None
    unused_days: Optional[int] = None
    discount_per_day: Optional[Money] = None
    bundle: Optional[PricedBundle] = None
    country: Optional[str] = None


class PricingRequest(CamelModel):
    """Single pricing input."""
    destination_or_bundle: str = Field(..., description="Country ISO, region or bundle name")
    requested_duration: int = Field(..., description="Requested validity in days")
    group: Optional[str] = Field(None, description="Bundle group filter")
    payment_method: Optional[str] = Field(None, description="Payment method for processing fees")
    discount_per_day: Optional[Money] = Field(None, ge=0, description="Per-day unused-days discount")
    provider_cost: Optional[Money] = Field(None, ge=0, description="Provider base cost used as seed price")


class BatchPricingRequest(CamelModel):
    """Batch of independent pricing inputs."""
    inputs: List[PricingRequest] = Field(..., min_length=1)
    requested_days: Optional[int] = Field(None, description="Overrides every input's duration")
    strategy_code: Optional[str] = None


class BatchPricingItem(CamelModel):
    """Result or error for one batch input."""
    index: int
    input: PricingRequest
    result: Optional[PricingResult] = None
    error: Optional[ErrorResponse] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PricingStepUpdate(CamelModel):
    """Incremental update for a single streamed pricing run."""
    correlation_id: str
    step: Optional[PricingStep] = None
    is_complete: bool = False
    completed_steps: int = 0
    final_breakdown: Optional[PricingResult] = None
    error: Optional[ErrorResponse] = None
