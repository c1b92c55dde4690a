"""
Monetary helpers shared by conditions, events and the engine.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Annotated, Any

from pydantic import BeforeValidator

CENT = Decimal("0.01")
ZERO = Decimal("0")


def is_number(value: Any) -> bool:
    """True for int/float/Decimal values (bool excluded)."""
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def to_decimal(value: Any) -> Decimal:
    """Convert a numeric value (or numeric string) to Decimal.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Boolean {value!r} is not a number")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"{value!r} is not a number")
    raise ValueError(f"{value!r} is not a number")


def quantize_money(value: Decimal) -> Decimal:
    """Fix a monetary amount to two decimal places (half-up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _float_to_decimal(raw: Any) -> Any:
    # 1.4 must become Decimal("1.4"), not its binary expansion
    return to_decimal(raw) if isinstance(raw, float) else raw


DecimalParam = Annotated[Decimal, BeforeValidator(_float_to_decimal)]
