"""
Turn stored block and strategy rows into typed rules.

Rows arrive as plain dicts, the shape the storage layer hands over:

    block:    {id, name, priority, conditions, event_type, params, is_active}
    strategy: {code, name, currency, is_default, blocks: [
                  {block_id, priority, is_enabled, config_overrides}]}

Everything is validated here so evaluation never sees an unknown operator
or a malformed event.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from shared.errors import InvalidBlockDefinition
from .conditions import AllCondition, AnyCondition, Condition, ConditionOperator, FactCondition
from .events import EVENT_TYPES, PricingEvent, normalize_event_type, parse_operand
from .models import PricingBlock, PricingStrategy, StrategyBlockBinding


def _validation_messages(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
        for error in exc.errors()
    ]


def parse_condition(raw: Any, block_id: str = "<inline>") -> Condition:
    """Parse a condition tree.

    ``None`` and bare lists are treated as ``all`` groups, so a block stored
    with ``conditions: []`` fires unconditionally.
    """
    if raw is None:
        return AllCondition()
    if isinstance(raw, list):
        return AllCondition(tuple(parse_condition(child, block_id) for child in raw))
    if not isinstance(raw, Mapping):
        raise InvalidBlockDefinition(block_id, f"Condition must be an object, got {type(raw).__name__}")

    if "all" in raw or "any" in raw:
        if "all" in raw and "any" in raw:
            raise InvalidBlockDefinition(block_id, "Condition group cannot mix 'all' and 'any'")
        key = "all" if "all" in raw else "any"
        children = raw[key] or []
        if not isinstance(children, list):
            raise InvalidBlockDefinition(block_id, f"'{key}' must be a list")
        parsed = tuple(parse_condition(child, block_id) for child in children)
        return AllCondition(parsed) if key == "all" else AnyCondition(parsed)

    fact = raw.get("fact")
    if not fact or not isinstance(fact, str):
        raise InvalidBlockDefinition(block_id, "Leaf condition needs a 'fact' name")
    try:
        operator = ConditionOperator(raw.get("operator"))
    except ValueError:
        raise InvalidBlockDefinition(
            block_id,
            f"Unknown condition operator: {raw.get('operator')!r}",
            {"fact": fact},
        )
    return FactCondition(
        fact=fact,
        operator=operator,
        value=parse_operand(raw.get("value")),
        path=raw.get("path"),
    )


def _flatten_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    # Older rows nest the payload under "actions"
    flattened = dict(params)
    actions = flattened.pop("actions", None)
    if isinstance(actions, Mapping):
        for key, value in actions.items():
            flattened.setdefault(key, value)
    return flattened


def parse_event(event_type: str, params: Optional[Mapping[str, Any]], block_id: str) -> PricingEvent:
    """Validate ``params`` against the schema for ``event_type``."""
    if not event_type:
        raise InvalidBlockDefinition(block_id, "Missing event_type")
    model = EVENT_TYPES.get(normalize_event_type(event_type))
    if model is None:
        raise InvalidBlockDefinition(block_id, f"Unknown event type: {event_type}")
    if params is not None and not isinstance(params, Mapping):
        raise InvalidBlockDefinition(block_id, "Event params must be an object")
    try:
        return model.model_validate(_flatten_params(params or {}))
    except ValidationError as exc:
        raise InvalidBlockDefinition(
            block_id,
            f"Invalid params for {model.event_type}",
            {"errors": _validation_messages(exc)},
        )


def parse_block(row: Mapping[str, Any]) -> PricingBlock:
    """Parse one stored pricing block."""
    block_id = str(row.get("id") or row.get("block_id") or "")
    if not block_id:
        raise InvalidBlockDefinition("<unknown>", "Block has no id")

    priority = row.get("priority", 0)
    if priority is None:
        priority = 0
    if isinstance(priority, bool) or not isinstance(priority, int) or priority < 0:
        raise InvalidBlockDefinition(block_id, f"Priority must be a non-negative integer, got {priority!r}")

    event_type = row.get("event_type") or ""
    params = dict(row.get("params") or {})
    return PricingBlock(
        block_id=block_id,
        name=row.get("name") or block_id,
        priority=priority,
        conditions=parse_condition(row.get("conditions"), block_id),
        event=parse_event(event_type, params, block_id),
        event_type=normalize_event_type(event_type),
        params=params,
        is_active=bool(row.get("is_active", True)),
        description=row.get("description"),
    )


def parse_binding(row: Mapping[str, Any], blocks: Mapping[str, PricingBlock]) -> StrategyBlockBinding:
    """Parse a strategy binding, applying config overrides to a copy of the block params."""
    block_id = str(row.get("block_id") or "")
    block = blocks.get(block_id)
    if block is None:
        raise InvalidBlockDefinition(block_id or "<unknown>", "Binding references an unknown block")

    priority = row.get("priority")
    if priority is not None and (isinstance(priority, bool) or not isinstance(priority, int) or priority < 0):
        raise InvalidBlockDefinition(block_id, f"Binding priority must be a non-negative integer, got {priority!r}")

    overrides = dict(row.get("config_overrides") or {})
    event = block.event
    if overrides:
        event = parse_event(block.event_type, {**block.params, **overrides}, block_id)

    return StrategyBlockBinding(
        block=block,
        event=event,
        priority=priority,
        is_enabled=bool(row.get("is_enabled", True)),
        config_overrides=overrides,
    )


def parse_strategy(
    row: Mapping[str, Any],
    blocks: Mapping[str, PricingBlock],
    default_currency: str = "USD",
) -> PricingStrategy:
    """Parse a strategy row; bindings keep their declared order."""
    code = row.get("code")
    if not code:
        raise InvalidBlockDefinition("<strategy>", "Strategy has no code")
    return PricingStrategy(
        code=code,
        name=row.get("name") or code,
        bindings=[parse_binding(binding, blocks) for binding in row.get("blocks") or []],
        currency=row.get("currency") or default_currency,
        is_default=bool(row.get("is_default", False)),
        description=row.get("description"),
    )
