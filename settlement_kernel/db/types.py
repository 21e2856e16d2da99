"""
Module: settlement_kernel.db.types
Responsibility: Coercion and rounding helpers for money columns.
    Centralizes precision and rounding so that every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    CRITICAL: No floats anywhere in the settlement kernel.  All commission
        amounts use Decimal with explicit precision.
    round_money() is the ONLY sanctioned rounding function for amounts.

Failure modes:
    - to_money() never raises: unparseable input degrades to Decimal("0")
      so that one malformed order cannot block aggregation.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

MONEY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_money(value: Any) -> Decimal:
    """
    Coerce a stored or user-supplied amount into a Decimal.

    None, empty strings and non-numeric values become Decimal("0").
    Floats go through str() so that 0.1 becomes Decimal("0.1").
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for commission amounts.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)
