"""
Commission snapshot taken when an order is accepted.

Order management calls ``snapshot_commission_amount`` once, with the
pharmacy's rate at that moment, and stores the result on the order.  The
kernel never recomputes it: later rate changes do not alter past
obligations.
"""

from decimal import Decimal
from typing import Any

from settlement_kernel.db.types import ZERO, round_money, to_money


def snapshot_commission_amount(
    total: Any,
    commission_rate: Any = None,
    default_rate: Decimal | None = None,
) -> Decimal:
    """
    Commission owed on ``total`` at ``commission_rate`` percent.

    A missing or non-positive rate falls back to ``default_rate`` (the
    ``default_commission_rate`` setting when not given).
    """
    rate = to_money(commission_rate)
    if rate <= ZERO:
        if default_rate is None:
            from settlement_kernel.settings import get_settings

            default_rate = get_settings().default_commission_rate
        rate = default_rate
    amount = to_money(total) * rate / Decimal("100")
    return round_money(max(ZERO, amount))
