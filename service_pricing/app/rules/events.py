"""
Pricing event variants and their application.

Each variant is a frozen pydantic model with an explicit parameter schema.
Stored definitions use camelCase keys (``discountPerDay``); numeric
parameters are operands, so they can be literals or fact references.
``apply_event`` is the single interpreter for every variant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, Any, Callable, ClassVar, Dict, Literal, Mapping, Optional, Type, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .facts import ABSENT, FactBase, FactRef, Operand, Value, resolve_operand
from .money import ZERO, DecimalParam, is_number, to_decimal


class RuleCategory(str, Enum):
    """Category of a pricing step."""
    BUNDLE_ADJUSTMENT = "BUNDLE_ADJUSTMENT"
    DISCOUNT = "DISCOUNT"
    FEE = "FEE"
    CONSTRAINT = "CONSTRAINT"
    FACT = "FACT"


class EventParameterError(ValueError):
    """An event parameter could not be resolved to a usable value."""


def parse_operand(raw: Any) -> Operand:
    """Turn a stored parameter into a literal or fact reference.

    ``"$unusedDays"``, ``"$selectedBundle.cost"`` and
    ``{"fact": "selectedBundle", "path": "$.cost"}`` are fact references;
    anything else is a literal.
    """
    if isinstance(raw, (Value, FactRef)):
        return raw
    if isinstance(raw, Mapping) and "fact" in raw:
        return FactRef(fact=str(raw["fact"]), path=raw.get("path"))
    if isinstance(raw, str) and len(raw) > 1 and raw.startswith("$") and raw[1] != ".":
        name, _, path = raw[1:].partition(".")
        return FactRef(fact=name, path=path or None)
    return Value(raw)


OperandParam = Annotated[Any, BeforeValidator(parse_operand)]


class PricingEventBase(BaseModel):
    """Common configuration for event variants."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
    )

    event_type: ClassVar[str] = ""
    category: ClassVar[RuleCategory] = RuleCategory.BUNDLE_ADJUSTMENT


class SetBasePrice(PricingEventBase):
    event_type: ClassVar[str] = "set-base-price"
    category: ClassVar[RuleCategory] = RuleCategory.BUNDLE_ADJUSTMENT

    source: OperandParam = FactRef("selectedBundle", "cost")


class ApplyMarkup(PricingEventBase):
    event_type: ClassVar[str] = "apply-markup"
    category: ClassVar[RuleCategory] = RuleCategory.BUNDLE_ADJUSTMENT

    value: Optional[OperandParam] = None
    markup_matrix: Optional[Dict[str, Dict[str, DecimalParam]]] = None
    bundle_fact: str = "selectedBundle"

    @field_validator("markup_matrix", mode="before")
    @classmethod
    def _stringify_keys(cls, matrix: Any) -> Any:
        if isinstance(matrix, Mapping):
            return {
                str(group): (
                    {str(days): amount for days, amount in row.items()}
                    if isinstance(row, Mapping) else row
                )
                for group, row in matrix.items()
            }
        return matrix

    @model_validator(mode="after")
    def _require_source(self) -> "ApplyMarkup":
        if self.value is None and self.markup_matrix is None:
            raise ValueError("apply-markup needs either 'value' or 'markupMatrix'")
        return self


class MultiplyPrice(PricingEventBase):
    event_type: ClassVar[str] = "multiply-price"
    category: ClassVar[RuleCategory] = RuleCategory.BUNDLE_ADJUSTMENT

    factor: OperandParam


class ApplyDiscount(PricingEventBase):
    event_type: ClassVar[str] = "apply-discount"
    category: ClassVar[RuleCategory] = RuleCategory.DISCOUNT

    type: Literal["percentage", "fixed"] = "percentage"
    value: OperandParam

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, raw: Any) -> Any:
        aliases = {
            "APPLY_DISCOUNT_PERCENTAGE": "percentage",
            "APPLY_FIXED_DISCOUNT": "fixed",
            "PERCENT": "percentage",
        }
        if isinstance(raw, str):
            return aliases.get(raw.upper(), raw.lower())
        return raw


class ApplyUnusedDaysDiscount(PricingEventBase):
    event_type: ClassVar[str] = "apply-unused-days-discount"
    category: ClassVar[RuleCategory] = RuleCategory.DISCOUNT

    unused_days: OperandParam = FactRef("unusedDays")
    discount_per_day: OperandParam = FactRef("discountPerDay")


class ProcessingFee(BaseModel):
    """Fee schedule for one payment method."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    percentage_fee: DecimalParam = ZERO
    fixed_fee: DecimalParam = ZERO


class ApplyProcessingFee(PricingEventBase):
    event_type: ClassVar[str] = "apply-processing-fee"
    category: ClassVar[RuleCategory] = RuleCategory.FEE

    fees_matrix: Dict[str, ProcessingFee]
    payment_method: OperandParam = FactRef("paymentMethod")


class ApplyProfitConstraint(PricingEventBase):
    event_type: ClassVar[str] = "apply-profit-constraint"
    category: ClassVar[RuleCategory] = RuleCategory.CONSTRAINT

    min_profit: OperandParam
    cost: OperandParam = FactRef("selectedBundle", "cost")

    @model_validator(mode="before")
    @classmethod
    def _accept_value_alias(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "value" in data and "minProfit" not in data and "min_profit" not in data:
            data = dict(data)
            data["minProfit"] = data.pop("value")
        return data


class ApplyPsychologicalRounding(PricingEventBase):
    event_type: ClassVar[str] = "apply-psychological-rounding"
    category: ClassVar[RuleCategory] = RuleCategory.CONSTRAINT

    strategy: Literal["nearest-whole"] = "nearest-whole"


class ApplyRegionRounding(PricingEventBase):
    event_type: ClassVar[str] = "apply-region-rounding"
    category: ClassVar[RuleCategory] = RuleCategory.CONSTRAINT

    ending: DecimalParam = Decimal("0.99")

    @model_validator(mode="before")
    @classmethod
    def _accept_value_alias(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "value" in data and "ending" not in data:
            data = dict(data)
            data["ending"] = data.pop("value")
        return data

    @field_validator("ending")
    @classmethod
    def _ending_is_fractional(cls, ending: Decimal) -> Decimal:
        if not (ZERO <= ending < 1):
            raise ValueError("ending must be in [0, 1)")
        return ending


class ApplyFixedPrice(PricingEventBase):
    event_type: ClassVar[str] = "apply-fixed-price"
    category: ClassVar[RuleCategory] = RuleCategory.CONSTRAINT

    value: OperandParam


class ClampPrice(PricingEventBase):
    event_type: ClassVar[str] = "clamp-price"
    category: ClassVar[RuleCategory] = RuleCategory.CONSTRAINT

    minimum: Optional[OperandParam] = None
    maximum: Optional[OperandParam] = None

    @model_validator(mode="after")
    def _require_bound(self) -> "ClampPrice":
        if self.minimum is None and self.maximum is None:
            raise ValueError("clamp-price needs 'minimum' and/or 'maximum'")
        return self


class SetFact(PricingEventBase):
    event_type: ClassVar[str] = "set-fact"
    category: ClassVar[RuleCategory] = RuleCategory.FACT

    fact: str = Field(min_length=1)
    value: OperandParam


PricingEvent = Union[
    SetBasePrice,
    ApplyMarkup,
    MultiplyPrice,
    ApplyDiscount,
    ApplyUnusedDaysDiscount,
    ApplyProcessingFee,
    ApplyProfitConstraint,
    ApplyPsychologicalRounding,
    ApplyRegionRounding,
    ApplyFixedPrice,
    ClampPrice,
    SetFact,
]

EVENT_TYPES: Dict[str, Type[PricingEventBase]] = {
    model.event_type: model
    for model in (
        SetBasePrice,
        ApplyMarkup,
        MultiplyPrice,
        ApplyDiscount,
        ApplyUnusedDaysDiscount,
        ApplyProcessingFee,
        ApplyProfitConstraint,
        ApplyPsychologicalRounding,
        ApplyRegionRounding,
        ApplyFixedPrice,
        ClampPrice,
        SetFact,
    )
}


def normalize_event_type(event_type: str) -> str:
    """``APPLY_FIXED_PRICE`` and ``apply-fixed-price`` name the same event."""
    return event_type.strip().lower().replace("_", "-")


@dataclass(frozen=True)
class EventOutcome:
    """Price produced by one event plus what to record about it."""
    price: Decimal
    description: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    derived_facts: Dict[str, Any] = field(default_factory=dict)


def _number(operand: Operand, facts: FactBase, name: str) -> Decimal:
    value = resolve_operand(operand, facts)
    if value is ABSENT:
        raise EventParameterError(f"Parameter '{name}' references a missing fact: {operand!r}")
    if not (is_number(value) or isinstance(value, str)):
        raise EventParameterError(f"Parameter '{name}' is not numeric: {value!r}")
    try:
        return to_decimal(value)
    except ValueError as exc:
        raise EventParameterError(f"Parameter '{name}' is not numeric: {value!r}") from exc


def _apply_set_base_price(event: SetBasePrice, price: Decimal, facts: FactBase) -> EventOutcome:
    base = _number(event.source, facts, "source")
    return EventOutcome(
        price=base,
        description=f"Base price set to {base}",
        metadata={"originalPrice": base},
    )


def _apply_markup(event: ApplyMarkup, price: Decimal, facts: FactBase) -> EventOutcome:
    if event.markup_matrix is not None:
        group = facts.get_fact(event.bundle_fact, "group")
        days = facts.get_fact(event.bundle_fact, "validityDays")
        group_key = "" if group is ABSENT or group is None else str(group)
        days_key = "" if days is ABSENT or days is None else str(days)
        amount = event.markup_matrix.get(group_key, {}).get(days_key, ZERO)
        return EventOutcome(
            price=price + amount,
            description=f"Applied markup of {amount} for {group_key} ({days_key} days)",
            metadata={"group": group_key, "days": days_key, "markupAmount": amount},
        )
    amount = _number(event.value, facts, "value")
    return EventOutcome(
        price=price + amount,
        description=f"Applied fixed markup of {amount}",
        metadata={"markupAmount": amount},
    )


def _apply_multiply(event: MultiplyPrice, price: Decimal, facts: FactBase) -> EventOutcome:
    factor = _number(event.factor, facts, "factor")
    return EventOutcome(
        price=price * factor,
        description=f"Multiplied price by {factor}",
        metadata={"factor": factor},
    )


def _apply_discount(event: ApplyDiscount, price: Decimal, facts: FactBase) -> EventOutcome:
    value = _number(event.value, facts, "value")
    if event.type == "percentage":
        amount = price * value / Decimal(100)
        description = f"Applied {value}% discount"
        metadata = {"discountPercent": value, "discountAmount": amount}
    else:
        amount = value
        description = f"Applied fixed discount of {value}"
        metadata = {"discountAmount": amount}
    return EventOutcome(price=price - amount, description=description, metadata=metadata)


def _apply_unused_days_discount(event: ApplyUnusedDaysDiscount, price: Decimal, facts: FactBase) -> EventOutcome:
    unused_days = _number(event.unused_days, facts, "unusedDays")
    per_day = _number(event.discount_per_day, facts, "discountPerDay")
    amount = unused_days * per_day
    return EventOutcome(
        price=price - amount,
        description=f"Applied unused days discount for {unused_days} days",
        metadata={"unusedDays": unused_days, "discountPerDay": per_day, "discountAmount": amount},
    )


def _apply_processing_fee(event: ApplyProcessingFee, price: Decimal, facts: FactBase) -> EventOutcome:
    method = resolve_operand(event.payment_method, facts)
    fees = event.fees_matrix.get(str(method)) if method is not ABSENT else None
    if fees is None:
        return EventOutcome(
            price=price,
            description=f"No processing fee for payment method: {method}",
            metadata={"method": None if method is ABSENT else method, "feeAmount": ZERO},
        )
    percentage_fee = price * fees.percentage_fee / Decimal(100)
    total_fee = percentage_fee + fees.fixed_fee
    return EventOutcome(
        price=price + total_fee,
        description=f"Applied processing fee of {total_fee} for {method}",
        metadata={
            "method": method,
            "rate": fees.percentage_fee,
            "percentageFee": percentage_fee,
            "fixedFee": fees.fixed_fee,
            "totalFee": total_fee,
        },
    )


def _apply_profit_constraint(event: ApplyProfitConstraint, price: Decimal, facts: FactBase) -> EventOutcome:
    min_profit = _number(event.min_profit, facts, "minProfit")
    cost = _number(event.cost, facts, "cost")
    if price - cost >= min_profit:
        return EventOutcome(
            price=price,
            description=f"Minimum profit of {min_profit} already met",
            metadata={"minProfit": min_profit, "cost": cost},
        )
    adjusted = cost + min_profit
    return EventOutcome(
        price=adjusted,
        description=f"Adjusted price to ensure minimum profit of {min_profit}",
        metadata={"minProfit": min_profit, "cost": cost, "adjustment": adjusted - price},
    )


def _apply_psychological_rounding(event: ApplyPsychologicalRounding, price: Decimal, facts: FactBase) -> EventOutcome:
    rounded = price.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return EventOutcome(
        price=rounded,
        description="Applied psychological rounding to nearest whole number",
        metadata={"strategy": event.strategy, "adjustment": rounded - price},
    )


def _apply_region_rounding(event: ApplyRegionRounding, price: Decimal, facts: FactBase) -> EventOutcome:
    rounded = price.to_integral_value(rounding=ROUND_FLOOR) + event.ending
    return EventOutcome(
        price=rounded,
        description=f"Applied region rounding to {event.ending}",
        metadata={"roundingValue": event.ending},
    )


def _apply_fixed_price(event: ApplyFixedPrice, price: Decimal, facts: FactBase) -> EventOutcome:
    fixed = _number(event.value, facts, "value")
    return EventOutcome(
        price=fixed,
        description=f"Set fixed price to {fixed}",
        metadata={"fixedPrice": fixed},
    )


def _apply_clamp(event: ClampPrice, price: Decimal, facts: FactBase) -> EventOutcome:
    minimum = _number(event.minimum, facts, "minimum") if event.minimum is not None else None
    maximum = _number(event.maximum, facts, "maximum") if event.maximum is not None else None
    if minimum is not None and maximum is not None and minimum > maximum:
        raise EventParameterError(f"Clamp minimum {minimum} exceeds maximum {maximum}")
    clamped = price
    if minimum is not None and clamped < minimum:
        clamped = minimum
    if maximum is not None and clamped > maximum:
        clamped = maximum
    return EventOutcome(
        price=clamped,
        description=f"Clamped price to [{minimum}, {maximum}]",
        metadata={"minimum": minimum, "maximum": maximum},
    )


def _apply_set_fact(event: SetFact, price: Decimal, facts: FactBase) -> EventOutcome:
    value = resolve_operand(event.value, facts)
    if value is ABSENT:
        raise EventParameterError(f"Derived fact '{event.fact}' references a missing fact: {event.value!r}")
    return EventOutcome(
        price=price,
        description=f"Published fact '{event.fact}'",
        metadata={"fact": event.fact, "value": value},
        derived_facts={event.fact: value},
    )


_HANDLERS: Dict[Type[PricingEventBase], Callable[[Any, Decimal, FactBase], EventOutcome]] = {
    SetBasePrice: _apply_set_base_price,
    ApplyMarkup: _apply_markup,
    MultiplyPrice: _apply_multiply,
    ApplyDiscount: _apply_discount,
    ApplyUnusedDaysDiscount: _apply_unused_days_discount,
    ApplyProcessingFee: _apply_processing_fee,
    ApplyProfitConstraint: _apply_profit_constraint,
    ApplyPsychologicalRounding: _apply_psychological_rounding,
    ApplyRegionRounding: _apply_region_rounding,
    ApplyFixedPrice: _apply_fixed_price,
    ClampPrice: _apply_clamp,
    SetFact: _apply_set_fact,
}


def apply_event(event: PricingEvent, price: Decimal, facts: FactBase) -> EventOutcome:
    """Apply one event to the running price."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unsupported pricing event: {event!r}")
    return handler(event, price, facts)
