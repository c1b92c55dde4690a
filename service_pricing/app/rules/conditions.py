"""
Condition tree for pricing blocks.

The tree has three node kinds: a leaf comparison against one fact, an
``all`` group (AND) and an ``any`` group (OR). Groups short-circuit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .facts import ABSENT, FactBase, Operand, Value, resolve_operand
from .money import is_number, to_decimal


class ConditionOperator(str, Enum):
    """Leaf condition operators."""
    EQUAL = "equal"
    NOT_EQUAL = "notEqual"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_INCLUSIVE = "greaterThanInclusive"
    LESS_THAN = "lessThan"
    LESS_THAN_INCLUSIVE = "lessThanInclusive"
    IN = "in"
    NOT_IN = "notIn"
    CONTAINS = "contains"
    DOES_NOT_CONTAIN = "doesNotContain"
    IS_ABSENT = "isAbsent"
    IS_PRESENT = "isPresent"


@dataclass(frozen=True)
class FactCondition:
    """Leaf comparison: ``fact[path] <operator> value``."""
    fact: str
    operator: ConditionOperator
    value: Operand = Value(None)
    path: Optional[str] = None


@dataclass(frozen=True)
class AllCondition:
    """AND group; an empty group is vacuously true."""
    conditions: Tuple["Condition", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AnyCondition:
    """OR group; an empty group is false."""
    conditions: Tuple["Condition", ...] = field(default_factory=tuple)


Condition = Union[FactCondition, AllCondition, AnyCondition]


def _numeric_pair(left: Any, right: Any) -> Optional[Tuple[Decimal, Decimal]]:
    if is_number(left) and is_number(right):
        return to_decimal(left), to_decimal(right)
    return None


def _equal(left: Any, right: Any) -> bool:
    pair = _numeric_pair(left, right)
    if pair is not None:
        return pair[0] == pair[1]
    return left == right


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _member(item: Any, container: Any) -> bool:
    if _is_collection(container):
        return any(_equal(item, candidate) for candidate in container)
    # str / dict membership; anything else raises TypeError
    return item in container


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def evaluate(left: Any, right: Any) -> bool:
        pair = _numeric_pair(left, right)
        if pair is not None:
            return compare(*pair)
        return compare(left, right)
    return evaluate


_COMPARATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUAL: _equal,
    ConditionOperator.NOT_EQUAL: lambda left, right: not _equal(left, right),
    ConditionOperator.GREATER_THAN: _ordered(lambda left, right: left > right),
    ConditionOperator.GREATER_THAN_INCLUSIVE: _ordered(lambda left, right: left >= right),
    ConditionOperator.LESS_THAN: _ordered(lambda left, right: left < right),
    ConditionOperator.LESS_THAN_INCLUSIVE: _ordered(lambda left, right: left <= right),
    ConditionOperator.IN: _member,
    ConditionOperator.NOT_IN: lambda left, right: not _member(left, right),
    ConditionOperator.CONTAINS: lambda left, right: _member(right, left),
    ConditionOperator.DOES_NOT_CONTAIN: lambda left, right: not _member(right, left),
}


def _evaluate_leaf(condition: FactCondition, facts: FactBase) -> bool:
    left = facts.get_fact(condition.fact, condition.path)

    if condition.operator is ConditionOperator.IS_ABSENT:
        return left is ABSENT or left is None
    if condition.operator is ConditionOperator.IS_PRESENT:
        return left is not ABSENT and left is not None

    if left is ABSENT:
        return False

    right = resolve_operand(condition.value, facts)
    if right is ABSENT:
        return False

    return _COMPARATORS[condition.operator](left, right)


def evaluate_condition(condition: Condition, facts: FactBase) -> bool:
    """Evaluate a condition tree against the fact base.

    Comparison errors (e.g. ordering a string against a number) propagate to
    the caller; absent facts never raise.
    """
    if isinstance(condition, AllCondition):
        return all(evaluate_condition(child, facts) for child in condition.conditions)
    if isinstance(condition, AnyCondition):
        return any(evaluate_condition(child, facts) for child in condition.conditions)
    if isinstance(condition, FactCondition):
        return _evaluate_leaf(condition, facts)
    raise TypeError(f"Unsupported condition node: {condition!r}")


def referenced_facts(condition: Condition) -> Tuple[str, ...]:
    """Names of facts a condition tree reads, in first-seen order."""
    if isinstance(condition, FactCondition):
        return (condition.fact,)
    seen: Dict[str, None] = {}
    for child in condition.conditions:
        for name in referenced_facts(child):
            seen.setdefault(name, None)
    return tuple(seen)
